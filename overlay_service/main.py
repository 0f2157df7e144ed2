from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from overlay_service.api.router import router
from overlay_service.config import settings
from overlay_service.core.exceptions import register_exception_handlers
from overlay_service.core.logging import configure_logging
from overlay_service.services import image_fetcher

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("app_starting", app_name=settings.app_name, allowed_hosts=settings.allowed_hosts)
    yield
    await image_fetcher.close_client()
    logger.info("app_stopped")


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
register_exception_handlers(app)
app.include_router(router)


def run() -> None:
    uvicorn.run(
        "overlay_service.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
