from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import Response

from overlay_service.schemas.overlay import OverlayQuery
from overlay_service.services import overlay

router = APIRouter()


@router.get("/overlay")
@router.get("/", include_in_schema=False)
async def get_overlay(
    request: Request,
    background_tasks: BackgroundTasks,
    img: str | None = None,
    bg_img: str | None = Query(None, alias="bgImg"),
    text: str | None = None,
    name: str | None = None,
    bg_color: str | None = Query(None, alias="bgColor"),
    text_color: str | None = Query(None, alias="textColor"),
    font_size: int | None = Query(None, alias="fontSize", ge=8, le=400),
) -> Response:
    query = OverlayQuery(
        background_url=img or bg_img,
        caption=text,
        badge_name=name,
        band_color=bg_color,
        text_color=text_color,
        font_size=font_size,
    )
    rendered = await overlay.compose_overlay(query, background_tasks, base_url=str(request.base_url))
    return Response(
        content=rendered.body,
        media_type=rendered.content_type,
        headers={"Cache-Control": rendered.cache_control},
    )
