import asyncio

import structlog

from overlay_service.config import settings
from overlay_service.core.exceptions import OverlayError
from overlay_service.schemas.overlay import CacheWarmResponse
from overlay_service.services.overlay import acquire_background, allowed_hosts
from overlay_service.services.url_validator import validate_image_url

logger = structlog.get_logger()


async def warm_cache(urls: list[str], max_concurrent: int | None = None) -> CacheWarmResponse:
    """Populate the background cache for ``urls``; per-URL failures are reported, not raised."""
    semaphore = asyncio.Semaphore(max_concurrent or settings.warm_max_concurrent)
    hosts = allowed_hosts()
    warmed: list[str] = []
    failed: dict[str, str] = {}

    async def _warm(url: str) -> None:
        async with semaphore:
            try:
                validate_image_url(url, hosts)
                await acquire_background(url)
            except OverlayError as e:
                logger.warning("cache_warm_failed", url=url[:80], error=e.detail)
                failed[url] = e.detail
                return
            warmed.append(url)

    await asyncio.gather(*[_warm(url) for url in dict.fromkeys(urls)])
    logger.info("cache_warm_complete", warmed=len(warmed), failed=len(failed))
    return CacheWarmResponse(warmed=sorted(warmed), failed=failed)
