from io import BytesIO
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import BackgroundTasks
from PIL import Image

from overlay_service.core.exceptions import FetchFailedError, HostNotAllowedError, MissingParameterError
from overlay_service.schemas.overlay import CacheRecord, OverlayQuery
from overlay_service.services import overlay
from overlay_service.services.dimensions import Dimensions
from overlay_service.services.image_cache import ImageCache
from overlay_service.services.image_fetcher import FetchedImage

URL = "https://images.unsplash.com/photo-X"


def _make_test_image(width: int = 100, height: int = 100, fmt: str = "JPEG") -> bytes:
    img = Image.new("RGB", (width, height), color="red")
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def _fetched(width: int = 1200, height: int = 630) -> FetchedImage:
    return FetchedImage(content_type="image/jpeg", data=_make_test_image(width, height))


def _query(**kwargs: object) -> OverlayQuery:
    params: dict[str, object] = {"background_url": URL, "caption": "Hello World"}
    params.update(kwargs)
    return OverlayQuery(**params)


class TestAcquireBackground:
    async def test_miss_fetches_and_sniffs(self, isolated_cache: ImageCache) -> None:
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = _fetched(800, 450)
            record = await overlay.acquire_background(URL)
        mock_fetch.assert_awaited_once_with(URL)
        assert (record.width, record.height) == (800, 450)
        assert record.content_type == "image/jpeg"
        assert isolated_cache.get(URL) == record

    async def test_hit_skips_fetch(self, isolated_cache: ImageCache) -> None:
        cached = CacheRecord.from_bytes("image/png", b"\x89PNG", 640, 480)
        isolated_cache.put(URL, cached)
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock) as mock_fetch:
            record = await overlay.acquire_background(URL)
        mock_fetch.assert_not_called()
        assert record == cached

    async def test_cache_write_deferred_to_background(self, isolated_cache: ImageCache) -> None:
        tasks = BackgroundTasks()
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = _fetched()
            await overlay.acquire_background(URL, tasks)
        assert len(tasks.tasks) == 1
        assert isolated_cache.get(URL) is None
        await tasks()
        assert isolated_cache.get(URL) is not None

    async def test_unsniffable_image_uses_default_dimensions(self) -> None:
        with patch(
            "overlay_service.services.image_fetcher.fetch_image",
            new_callable=AsyncMock,
            return_value=FetchedImage(content_type="image/gif", data=_make_test_image(fmt="GIF")),
        ):
            record = await overlay.acquire_background(URL)
        assert (record.width, record.height) == (1200, 630)

    async def test_strips_content_type_parameters(self) -> None:
        with patch(
            "overlay_service.services.image_fetcher.fetch_image",
            new_callable=AsyncMock,
            return_value=FetchedImage(content_type="image/jpeg; charset=binary", data=_make_test_image()),
        ):
            record = await overlay.acquire_background(URL)
        assert record.content_type == "image/jpeg"

    async def test_fetch_failure_is_not_cached(self, isolated_cache: ImageCache) -> None:
        with patch(
            "overlay_service.services.image_fetcher.fetch_image",
            new_callable=AsyncMock,
            side_effect=FetchFailedError(404),
        ):
            with pytest.raises(FetchFailedError):
                await overlay.acquire_background(URL)
        assert isolated_cache.get(URL) is None


class TestLayoutFor:
    def test_default_font_size_from_height(self) -> None:
        layout = overlay.layout_for("Hello World", Dimensions(1200, 630))
        assert layout.font_size == pytest.approx(25.2)
        assert layout.lines == ("Hello World",)

    def test_font_size_floor_for_small_images(self) -> None:
        layout = overlay.layout_for("Hi", Dimensions(300, 200))
        assert layout.font_size == 20

    def test_font_size_override(self) -> None:
        layout = overlay.layout_for("Hi", Dimensions(1200, 630), font_size=64)
        assert layout.font_size == 64

    def test_long_caption_shrinks(self) -> None:
        caption = " ".join(["overlay"] * 120)
        layout = overlay.layout_for(caption, Dimensions(600, 400))
        assert layout.font_size < 20


class TestComposeOverlay:
    async def test_renders_with_immutable_cache(self) -> None:
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock, return_value=_fetched()):
            rendered = await overlay.compose_overlay(_query(badge_name="Alice"))
        body = rendered.body.decode()
        assert rendered.content_type.startswith("image/svg+xml")
        assert rendered.cache_control == "public, max-age=2592000, immutable"
        assert 'width="1200" height="630"' in body
        assert "data:image/jpeg;base64," in body
        assert ">Hello World</tspan>" in body
        assert ">Alice</text>" in body

    async def test_rejects_host_before_fetching(self) -> None:
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock) as mock_fetch:
            with pytest.raises(HostNotAllowedError):
                await overlay.compose_overlay(_query(background_url="https://evil.example.com/x.jpg"))
        mock_fetch.assert_not_called()

    async def test_usage_card_when_caption_missing(self) -> None:
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock) as mock_fetch:
            rendered = await overlay.compose_overlay(_query(caption=None))
        mock_fetch.assert_not_called()
        body = rendered.body.decode()
        assert rendered.cache_control == "no-cache"
        assert "Usage: ?img=&lt;ALLOWED_URL&gt;" in body
        assert ">Example</text>" in body
        assert overlay.USAGE_IMAGE_URL in body

    async def test_usage_card_when_url_missing(self) -> None:
        rendered = await overlay.compose_overlay(OverlayQuery(caption="Hello"))
        assert rendered.cache_control == "no-cache"

    async def test_usage_card_still_validates_url(self) -> None:
        with pytest.raises(HostNotAllowedError):
            await overlay.compose_overlay(_query(background_url="https://evil.example.com/x.jpg", caption=None))

    async def test_strict_mode_requires_text(self) -> None:
        with patch.object(overlay.settings, "require_text", True):
            with pytest.raises(MissingParameterError) as exc_info:
                await overlay.compose_overlay(_query(caption=""))
        assert exc_info.value.detail == "Missing text parameter."

    async def test_strict_mode_requires_img(self) -> None:
        with patch.object(overlay.settings, "require_text", True):
            with pytest.raises(MissingParameterError) as exc_info:
                await overlay.compose_overlay(OverlayQuery(caption="Hello"))
        assert exc_info.value.name == "img"

    async def test_reference_strategy_links_proxy_endpoint(self) -> None:
        with (
            patch.object(overlay.settings, "embed_strategy", "reference"),
            patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock, return_value=_fetched()),
        ):
            rendered = await overlay.compose_overlay(_query(), base_url="http://svc/")
        body = rendered.body.decode()
        assert "data:image" not in body
        assert 'href="http://svc/images/proxy?url=https%3A%2F%2Fimages.unsplash.com%2Fphoto-X"' in body

    async def test_reference_strategy_prefers_public_base_url(self) -> None:
        with (
            patch.object(overlay.settings, "embed_strategy", "reference"),
            patch.object(overlay.settings, "public_base_url", "https://cdn.example.org"),
            patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock, return_value=_fetched()),
        ):
            rendered = await overlay.compose_overlay(_query(), base_url="http://svc/")
        assert b"https://cdn.example.org/images/proxy?url=" in rendered.body

    async def test_style_overrides(self) -> None:
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock, return_value=_fetched()):
            rendered = await overlay.compose_overlay(_query(band_color="#112233", text_color="#ffcc00", font_size=48))
        body = rendered.body.decode()
        assert 'fill="#112233"' in body
        assert 'fill="#ffcc00"' in body
        assert "font-size:48px" in body

    async def test_same_request_renders_same_bytes(self) -> None:
        with patch("overlay_service.services.image_fetcher.fetch_image", new_callable=AsyncMock, return_value=_fetched()):
            first = await overlay.compose_overlay(_query(badge_name="Alice"))
            second = await overlay.compose_overlay(_query(badge_name="Alice"))
        assert first == second
