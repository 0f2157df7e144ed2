"""SVG composition of background image, caption band and name badge."""

import re
from dataclasses import dataclass
from urllib.parse import quote
from xml.sax.saxutils import escape

from overlay_service.services.dimensions import Dimensions
from overlay_service.services.text_layout import LineLayout

SVG_MEDIA_TYPE = "image/svg+xml; charset=utf-8"
FONT_FAMILY = "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif"

_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}
# code points XML 1.0 forbids in a document
INVALID_XML_CHAR_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")

BADGE_FONT_RATIO = 0.75
BADGE_HEIGHT_RATIO = 1.8
BADGE_CHAR_WIDTH = 0.6
BADGE_PADDING_RATIO = 0.8
BADGE_SLANT_RATIO = 0.5


@dataclass(frozen=True)
class OverlayStyle:
    band_color: str = "rgba(0,0,0,0.6)"
    text_color: str = "white"
    badge_color: str = "rgba(255,255,255,0.25)"
    padding: float = 40.0
    line_height: float = 1.4
    font_family: str = FONT_FAMILY


def escape_xml(value: str) -> str:
    return escape(INVALID_XML_CHAR_RE.sub("", value), _XML_ENTITIES)


def fmt(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def inline_href(content_type: str, base64_data: str) -> str:
    return f"data:{content_type};base64,{base64_data}"


def reference_href(base_url: str, image_url: str) -> str:
    return f"{base_url.rstrip('/')}/images/proxy?url={quote(image_url, safe='')}"


def band_height(layout: LineLayout, padding: float, line_height: float, has_badge: bool) -> float:
    text_height = len(layout.lines) * layout.font_size * line_height
    return text_height + padding * 1.5 + (layout.font_size if has_badge else 0)


def _badge(name: str, top: float, font_size: float, style: OverlayStyle) -> str:
    name_fs = font_size * BADGE_FONT_RATIO
    box_h = name_fs * BADGE_HEIGHT_RATIO
    text_w = len(name) * name_fs * BADGE_CHAR_WIDTH
    pad = name_fs * BADGE_PADDING_RATIO
    right = text_w + pad * 2
    points = " ".join(
        [
            f"0,{fmt(top)}",
            f"{fmt(right)},{fmt(top)}",
            f"{fmt(right + box_h * BADGE_SLANT_RATIO)},{fmt(top + box_h)}",
            f"0,{fmt(top + box_h)}",
        ]
    )
    return (
        f'<polygon points="{points}" fill="{escape_xml(style.badge_color)}"/>'
        f'<text x="{fmt(pad)}" y="{fmt(top + box_h / 2)}" class="name" '
        f'fill="{escape_xml(style.text_color)}" dominant-baseline="central">{escape_xml(name)}</text>'
    )


def render_overlay(
    image_href: str,
    dims: Dimensions,
    layout: LineLayout,
    badge_name: str | None = None,
    style: OverlayStyle | None = None,
) -> str:
    """Compose the overlay document.

    The caption band is anchored to the bottom edge and grows upwards with the
    number of lines. The first caption line sits on an absolute baseline and
    each following line is placed relative to the previous one.
    """
    style = style or OverlayStyle()
    width, height = dims
    font_size = layout.font_size
    box_h = band_height(layout, style.padding, style.line_height, bool(badge_name))
    box_y = height - box_h

    badge = _badge(badge_name, box_y, font_size, style) if badge_name else ""
    text_offset = font_size * 1.5 if badge_name else style.padding * 0.5
    line_dy = f"{fmt(style.line_height)}em"
    spans = "".join(
        f'<tspan x="{fmt(style.padding)}" dy="{line_dy if i else 0}">{escape_xml(line)}</tspan>'
        for i, line in enumerate(layout.lines)
    )
    family = escape_xml(style.font_family)
    color = escape_xml(style.text_color)

    return (
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" '
        f'xmlns="http://www.w3.org/2000/svg">'
        f"<style>"
        f".txt{{font-family:{family};font-size:{fmt(font_size)}px;font-weight:600;}}"
        f".name{{font-family:{family};font-size:{fmt(font_size * BADGE_FONT_RATIO)}px;"
        f"font-weight:700;}}"
        f"</style>"
        f'<image href="{escape_xml(image_href)}" width="100%" height="100%" preserveAspectRatio="xMidYMid slice"/>'
        f'<rect y="{fmt(box_y)}" width="100%" height="{fmt(box_h)}" fill="{escape_xml(style.band_color)}"/>'
        f"{badge}"
        f'<text x="{fmt(style.padding)}" y="{fmt(box_y + text_offset + font_size)}" class="txt" fill="{color}">{spans}</text>'
        f"</svg>"
    )


def render_error_svg(message: str, width: int = 900, height: int = 400) -> str:
    chunks = [message[i : i + 80] for i in range(0, min(len(message), 240), 80)] or [""]
    spans = "".join(f'<tspan x="15" dy="1.5em">{escape_xml(chunk)}</tspan>' for chunk in chunks)
    return (
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" '
        f'xmlns="http://www.w3.org/2000/svg">'
        f'<rect width="100%" height="100%" fill="#f8d7da"/>'
        f'<text x="15" y="35" font-family="monospace" font-size="14" fill="#721c24">'
        f'<tspan x="15" dy="1.2em">AN ERROR OCCURRED:</tspan>{spans}</text>'
        f"</svg>"
    )
