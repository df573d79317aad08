"""Translation of usage ledger errors into HTTP responses."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import get_settings
from services.usage_errors import (
    PageLimitExceeded,
    ReconciliationFailed,
    SnapshotUnavailable,
    UsageError,
    UsageRecordNotFound,
    UsageUnavailable,
)

settings = get_settings()
logger = settings.logger

STATUS_CODES = {
    PageLimitExceeded: 403,
    UsageRecordNotFound: 409,
    SnapshotUnavailable: 503,
    ReconciliationFailed: 503,
    UsageUnavailable: 503,
}


def status_code_for(error: UsageError) -> int:
    for error_class, status_code in STATUS_CODES.items():
        if isinstance(error, error_class):
            return status_code
    return 503


async def usage_error_handler(request: Request, error: UsageError) -> JSONResponse:
    """Answers ledger failures with the user-facing message of the error."""
    status_code = status_code_for(error)
    if status_code >= 500:
        logger.error("Usage ledger unavailable for %s: %s", request.url.path, error)
    else:
        logger.info("Usage request rejected for %s: %s", request.url.path, error)

    content = {"detail": error.user_message, "error": type(error).__name__}
    if isinstance(error, PageLimitExceeded):
        content["remaining"] = error.remaining
        content["requested"] = error.requested
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(asgi_app: FastAPI) -> None:
    asgi_app.add_exception_handler(UsageError, usage_error_handler)
