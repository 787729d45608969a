from typing import Optional, Any
from enum import Enum

from core.logging import get_correlation_id

# ------------------------------- Status ------------------------------- #

class ApiStatus(str, Enum):
    """Response status shared by every endpoint and by pipeline results"""
    SUCCESS = "success"
    ERROR = "error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"

# ------------------------------- Envelopes ------------------------------- #

def success_response(
    message: str = "OK",
    data: Any = None,
    timestamp: Optional[str] = None
) -> dict:
    return {
        "status": ApiStatus.SUCCESS.value,
        "message": message,
        "data": data,
        "timestamp": timestamp
    }

def error_response(
    message: str = "An error occurred",
    status: ApiStatus = ApiStatus.ERROR,
    error_code: Optional[str] = None,
    data: Any = None,
) -> dict:
    """Error envelope; carries the request's correlation ID so callers can quote it."""
    return {
        "status": status.value,
        "message": message,
        "data": data,
        "error_code": error_code,
        "correlation_id": get_correlation_id() or None,
    }
