"""Common module."""
from common.error_messages import (
    ErrorCode,
    ERROR_MESSAGES,
    ERROR_STATUS_CODES,
    get_error_response,
    get_status_code,
    error_code_for_kind
)

__all__ = [
    "ErrorCode",
    "ERROR_MESSAGES",
    "ERROR_STATUS_CODES",
    "get_error_response",
    "get_status_code",
    "error_code_for_kind"
]
