"""HTTP mapping for the tasklanes error taxonomy."""

import logging

from fastapi.responses import JSONResponse

from tasklanes.errors import TaskLanesError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "validation_error": 422,
    "unauthenticated": 401,
    "not_found": 404,
    "sync_failed": 502,
}


def status_for(error: TaskLanesError) -> int:
    return STATUS_BY_KIND.get(error.kind, 500)


def error_response(error: TaskLanesError) -> JSONResponse:
    """JSON error body: ``{"error", "operation", "detail"}``."""
    code = status_for(error)
    if code >= 500:
        logger.error(f"{error.operation or 'request'} failed: {error}")
    headers = {"WWW-Authenticate": "Bearer"} if code == 401 else None
    return JSONResponse(status_code=code, content=error.to_dict(), headers=headers)
