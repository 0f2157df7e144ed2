from fastapi import APIRouter

from overlay_service.api.endpoints import cache, health, images, overlay

router = APIRouter()
router.include_router(health.router, tags=["health"])
router.include_router(overlay.router, tags=["overlay"])
router.include_router(images.router, tags=["images"])
router.include_router(cache.router, tags=["cache"])
