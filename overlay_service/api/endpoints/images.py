from fastapi import APIRouter, BackgroundTasks
from fastapi.responses import Response

from overlay_service.config import settings
from overlay_service.services import overlay
from overlay_service.services.url_validator import validate_image_url

router = APIRouter(prefix="/images")


@router.get("/proxy")
async def proxy_image(url: str, background_tasks: BackgroundTasks) -> Response:
    validate_image_url(url, overlay.allowed_hosts())
    record = await overlay.acquire_background(url, background_tasks)
    max_age = settings.proxy_max_age
    return Response(
        content=record.image_bytes(),
        media_type=record.content_type,
        headers={"Cache-Control": f"public, max-age={max_age}, s-maxage={max_age}, immutable"},
    )
