from dataclasses import dataclass

import structlog
from fastapi import BackgroundTasks

from overlay_service.config import settings
from overlay_service.core.exceptions import MissingParameterError
from overlay_service.schemas.overlay import CacheRecord, OverlayQuery
from overlay_service.services import image_fetcher
from overlay_service.services.dimensions import Dimensions, sniff_dimensions
from overlay_service.services.image_cache import get_image_cache
from overlay_service.services.renderer import (
    SVG_MEDIA_TYPE,
    OverlayStyle,
    inline_href,
    reference_href,
    render_overlay,
)
from overlay_service.services.text_layout import LineLayout, layout_caption, wrap_text
from overlay_service.services.url_validator import build_allow_list, validate_image_url

logger = structlog.get_logger()

USAGE_IMAGE_URL = "https://images.unsplash.com/photo-1484417894907-623942c8ee29?w=1200"
USAGE_TEXT = "Usage: ?img=<ALLOWED_URL>&text=<TEXT>&name=<NAME>"
USAGE_BADGE = "Example"
NO_CACHE = "no-cache"


@dataclass(frozen=True)
class RenderedOutput:
    body: bytes
    content_type: str
    cache_control: str


def immutable_cache_control(max_age: int) -> str:
    return f"public, max-age={max_age}, immutable"


def allowed_hosts() -> frozenset[str]:
    return build_allow_list(settings.allowed_hosts)


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip()


async def acquire_background(url: str, background_tasks: BackgroundTasks | None = None) -> CacheRecord:
    """Return the cached ``{image, width, height}`` record for ``url``.

    On a miss the image is fetched and sniffed. The cache write is handed to
    ``background_tasks`` so the response does not wait for it; without
    background tasks it happens inline.
    """
    cache = get_image_cache()
    record = cache.get(url)
    if record is not None:
        return record

    fetched = await image_fetcher.fetch_image(url)
    dims = sniff_dimensions(fetched.data, Dimensions(settings.default_width, settings.default_height))
    record = CacheRecord.from_bytes(_media_type(fetched.content_type), fetched.data, dims.width, dims.height)
    if background_tasks is not None:
        background_tasks.add_task(cache.put, url, record)
    else:
        cache.put(url, record)
    return record


def _style(query: OverlayQuery) -> OverlayStyle:
    defaults = OverlayStyle(padding=settings.padding, line_height=settings.line_height)
    return OverlayStyle(
        band_color=query.band_color or defaults.band_color,
        text_color=query.text_color or defaults.text_color,
        padding=defaults.padding,
        line_height=defaults.line_height,
    )


def render_usage(query: OverlayQuery) -> RenderedOutput:
    dims = Dimensions(settings.default_width, settings.default_height)
    font_size = dims.height * settings.font_ratio
    lines = wrap_text(USAGE_TEXT, dims.width - settings.padding * 2, font_size)
    svg = render_overlay(
        USAGE_IMAGE_URL,
        dims,
        LineLayout(lines=tuple(lines), font_size=font_size),
        badge_name=USAGE_BADGE,
        style=_style(query),
    )
    return RenderedOutput(body=svg.encode(), content_type=SVG_MEDIA_TYPE, cache_control=NO_CACHE)


def layout_for(caption: str, dims: Dimensions, font_size: float | None = None) -> LineLayout:
    initial = font_size or max(settings.min_initial_font_size, dims.height * settings.font_ratio)
    return layout_caption(
        caption,
        max_width=dims.width - settings.padding * 2,
        initial_font_size=initial,
        max_text_height=dims.height * settings.max_text_height_ratio,
        min_font_size=settings.min_font_size,
        step=settings.font_step,
        line_height=settings.line_height,
    )


async def compose_overlay(
    query: OverlayQuery,
    background_tasks: BackgroundTasks | None = None,
    base_url: str = "",
) -> RenderedOutput:
    if query.background_url:
        validate_image_url(query.background_url, allowed_hosts())

    if not query.background_url or not query.caption:
        if settings.require_text:
            raise MissingParameterError("img" if not query.background_url else "text")
        return render_usage(query)

    record = await acquire_background(query.background_url, background_tasks)
    dims = Dimensions(record.width, record.height)
    layout = layout_for(query.caption, dims, query.font_size)

    if settings.embed_strategy == "reference":
        href = reference_href(settings.public_base_url or base_url, query.background_url)
    else:
        href = inline_href(record.content_type, record.data)

    svg = render_overlay(href, dims, layout, badge_name=query.badge_name or None, style=_style(query))
    logger.info(
        "overlay_rendered",
        url=query.background_url,
        width=dims.width,
        height=dims.height,
        lines=len(layout.lines),
        font_size=layout.font_size,
    )
    return RenderedOutput(
        body=svg.encode(),
        content_type=SVG_MEDIA_TYPE,
        cache_control=immutable_cache_control(settings.cache_ttl),
    )
