from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from overlay_service.main import app
from overlay_service.services import image_cache, image_fetcher
from overlay_service.services.image_cache import FileCacheStore, ImageCache


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[ImageCache]:
    cache = ImageCache(FileCacheStore(tmp_path / "cache"), version="test", ttl=60)
    monkeypatch.setattr(image_cache, "_cache", cache)
    yield cache


@pytest.fixture(autouse=True)
def no_shared_http_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(image_fetcher, "_client", None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
