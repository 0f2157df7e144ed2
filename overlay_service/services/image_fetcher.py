from dataclasses import dataclass

import httpx
import structlog

from overlay_service.config import settings
from overlay_service.core.exceptions import BadContentTypeError, FetchFailedError, TooLargeError

logger = structlog.get_logger()

_client: httpx.AsyncClient | None = None


@dataclass(frozen=True)
class FetchedImage:
    content_type: str
    data: bytes


def get_http_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=settings.fetch_timeout,
            headers={"User-Agent": settings.user_agent, "Accept": "image/*"},
            follow_redirects=True,
        )
    return _client


def _declared_length(response: httpx.Response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def fetch_image(url: str, max_bytes: int | None = None) -> FetchedImage:
    """GET ``url`` once and return its body if it is an image within the size limit."""
    limit = max_bytes if max_bytes is not None else settings.max_fetch_bytes
    client = get_http_client()
    try:
        async with client.stream("GET", url) as response:
            if not response.is_success:
                logger.warning("image_fetch_failed", url=url, status_code=response.status_code)
                raise FetchFailedError(response.status_code)

            declared = _declared_length(response)
            if declared is not None and declared > limit:
                logger.warning("image_too_large", url=url, content_length=declared, limit=limit)
                raise TooLargeError(limit)

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise TooLargeError(limit)
                chunks.append(chunk)

            content_type = response.headers.get("Content-Type", "")
            if not content_type.startswith("image/"):
                logger.warning("image_bad_content_type", url=url, content_type=content_type)
                raise BadContentTypeError(content_type or None)
    except httpx.TimeoutException as e:
        logger.error("image_fetch_timeout", url=url, error=str(e))
        raise FetchFailedError(reason="timeout") from e
    except httpx.InvalidURL as e:
        logger.error("image_fetch_failed", url=url, error=str(e))
        raise FetchFailedError(reason="invalid url") from e
    except httpx.HTTPError as e:
        logger.error("image_fetch_failed", url=url, error=str(e))
        raise FetchFailedError(reason=type(e).__name__) from e

    logger.info("image_fetched", url=url, content_type=content_type, size=received)
    return FetchedImage(content_type=content_type, data=b"".join(chunks))


async def close_client() -> None:
    global _client
    if _client:
        await _client.aclose()
        _client = None
