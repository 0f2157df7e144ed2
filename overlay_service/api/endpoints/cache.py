from fastapi import APIRouter

from overlay_service.schemas.overlay import CacheWarmRequest, CacheWarmResponse
from overlay_service.services import cache_warmer

router = APIRouter(prefix="/cache")


@router.post("/warm", response_model=CacheWarmResponse)
async def warm(body: CacheWarmRequest) -> CacheWarmResponse:
    return await cache_warmer.warm_cache(body.urls)
