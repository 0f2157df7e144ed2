import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from overlay_service.config import settings
from overlay_service.services.renderer import render_error_svg

logger = structlog.get_logger()

NO_STORE = "no-store"


class AppError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class OverlayError(AppError):
    """Base for failures of the overlay pipeline.

    Client errors are answered with a short plain-text body. Upstream errors
    are answered with a rendered error image so that ``<img>`` consumers still
    receive a valid document.
    """

    status_code = 500

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(status_code or type(self).status_code, detail)

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class InvalidProtocolError(OverlayError):
    status_code = 400

    def __init__(self, detail: str = "Invalid image URL.") -> None:
        super().__init__(detail)


class HostNotAllowedError(OverlayError):
    status_code = 400

    def __init__(self, host: str | None = None) -> None:
        super().__init__("Host not allowed.")
        self.host = host


class MissingParameterError(OverlayError):
    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing {name} parameter.")
        self.name = name


class FetchFailedError(OverlayError):
    def __init__(self, upstream_status: int | None = None, reason: str | None = None) -> None:
        if upstream_status is not None:
            detail = f"Fetch failed: {upstream_status}"
        else:
            detail = f"Fetch failed: {reason or 'network error'}"
        super().__init__(detail)
        self.upstream_status = upstream_status


class TooLargeError(OverlayError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Image size exceeds {limit / (1024 * 1024):g}MB")
        self.limit = limit


class BadContentTypeError(OverlayError):
    def __init__(self, content_type: str | None) -> None:
        super().__init__(f"Invalid content type: '{content_type}'")
        self.content_type = content_type


def overlay_error_response(exc: OverlayError) -> Response:
    headers = {"Cache-Control": NO_STORE}
    if exc.is_client_error or settings.error_format == "text":
        return Response(
            content=exc.detail if exc.is_client_error else f"Error: {exc.detail}",
            status_code=exc.status_code,
            media_type="text/plain; charset=utf-8",
            headers=headers,
        )
    return Response(
        content=render_error_svg(exc.detail).encode(),
        status_code=exc.status_code,
        media_type="image/svg+xml; charset=utf-8",
        headers=headers,
    )


async def _overlay_error_handler(request: Request, exc: OverlayError) -> Response:
    log = logger.warning if exc.is_client_error else logger.error
    log(
        "overlay_request_failed",
        path=request.url.path,
        query=request.url.query,
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.detail,
        upstream_status=getattr(exc, "upstream_status", None),
    )
    return overlay_error_response(exc)


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{k: v for k, v in error.items() if k in ("loc", "msg", "type")} for error in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": errors})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OverlayError, _overlay_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
