from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi import FastAPI, Request

from core.logging import get_logger
from core.resilience import StorageUnavailableError
from schemas.common import error_response, ApiStatus

log = get_logger(__name__)


def setup_middleware(app: FastAPI):
    """Register the global exception handlers"""

    # Global exception handler for validation errors
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log.warning("request_validation_failed", path=request.url.path, errors=exc.errors())
        return JSONResponse(
            status_code=422,
            content=error_response(
                message="Request validation failed",
                status=ApiStatus.VALIDATION_ERROR,
                error_code="VALIDATION_ERROR",
                data={"errors": exc.errors()}
            )
        )

    # Unknown match / team ids
    @app.exception_handler(LookupError)
    async def not_found_handler(request: Request, exc: LookupError):
        return JSONResponse(
            status_code=404,
            content=error_response(
                message=str(exc),
                status=ApiStatus.NOT_FOUND,
                error_code="NOT_FOUND",
            )
        )

    # Database unreachable: never expose partial totals, ask the caller to retry
    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
        log.error("storage_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content=error_response(
                message="Scores temporarily unavailable, retry",
                status=ApiStatus.SERVER_ERROR,
                error_code="STORAGE_UNAVAILABLE",
            )
        )
