"""
User-friendly error messages and status codes.

This module provides centralized error message definitions that are
user-friendly and avoid exposing technical implementation details.
"""
from typing import Tuple, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for different types of failures."""

    # Validation Errors (400)
    INVALID_IMAGE_DATA = "INVALID_IMAGE_DATA"
    NO_SOURCE_IMAGE = "NO_SOURCE_IMAGE"
    UPLOAD_TOO_LARGE = "UPLOAD_TOO_LARGE"

    # Not Found Errors (404)
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    NO_RESULT_AVAILABLE = "NO_RESULT_AVAILABLE"

    # Conflict Errors (409)
    GENERATION_IN_PROGRESS = "GENERATION_IN_PROGRESS"

    # External API Errors (502)
    GEMINI_API_ERROR = "GEMINI_API_ERROR"
    NO_CANDIDATES = "NO_CANDIDATES"
    NO_IMAGE_GENERATED = "NO_IMAGE_GENERATED"

    # Configuration Errors (500)
    MISSING_API_KEY = "MISSING_API_KEY"

    # Generic Errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# User-friendly error messages mapped to error codes
ERROR_MESSAGES = {
    # Validation Errors
    ErrorCode.INVALID_IMAGE_DATA: "Please upload an image file.",
    ErrorCode.NO_SOURCE_IMAGE: "Upload a source image before generating.",
    ErrorCode.UPLOAD_TOO_LARGE: "The image is too large. Please try with a smaller image.",

    # Not Found Errors
    ErrorCode.SESSION_NOT_FOUND: "We couldn't find your session. Please start a new one.",
    ErrorCode.NO_RESULT_AVAILABLE: "There is no generated image to download yet.",

    # Conflict Errors
    ErrorCode.GENERATION_IN_PROGRESS: "A generation is already running. Please wait for it to finish.",

    # External API Errors
    ErrorCode.GEMINI_API_ERROR: "Failed to generate image.",
    ErrorCode.NO_CANDIDATES: "No candidates returned from Gemini.",
    ErrorCode.NO_IMAGE_GENERATED: "No image generated in the response.",

    # Configuration Errors
    ErrorCode.MISSING_API_KEY: "API Key is missing. Please check your environment configuration.",

    # Generic Errors
    ErrorCode.UNKNOWN_ERROR: "Something went wrong",
}


# HTTP status codes for each error type
ERROR_STATUS_CODES = {
    # Validation Errors
    ErrorCode.INVALID_IMAGE_DATA: 400,
    ErrorCode.NO_SOURCE_IMAGE: 400,
    ErrorCode.UPLOAD_TOO_LARGE: 413,

    # Not Found Errors
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.NO_RESULT_AVAILABLE: 404,

    # Conflict Errors
    ErrorCode.GENERATION_IN_PROGRESS: 409,

    # External API Errors
    ErrorCode.GEMINI_API_ERROR: 502,
    ErrorCode.NO_CANDIDATES: 502,
    ErrorCode.NO_IMAGE_GENERATED: 502,

    # Configuration Errors
    ErrorCode.MISSING_API_KEY: 500,

    # Generic Errors
    ErrorCode.UNKNOWN_ERROR: 500,
}


# Generation failure kinds (image.models.GenerationErrorKind values) mapped onto error codes
GENERATION_ERROR_CODES = {
    "configuration": ErrorCode.MISSING_API_KEY,
    "no_candidates": ErrorCode.NO_CANDIDATES,
    "no_image": ErrorCode.NO_IMAGE_GENERATED,
    "upstream": ErrorCode.GEMINI_API_ERROR,
}


def get_error_response(
    error_code: ErrorCode,
    custom_message: Optional[str] = None,
) -> Tuple[str, int]:
    """
    Get user-friendly error message and HTTP status code.

    Args:
        error_code: The error code enum
        custom_message: Optional message to use instead of the standard one

    Returns:
        Tuple of (error_message, status_code)
    """
    message = custom_message or ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCode.UNKNOWN_ERROR])
    return message, get_status_code(error_code)


def get_status_code(error_code: ErrorCode) -> int:
    """HTTP status code for an error code (500 when unmapped)."""
    return ERROR_STATUS_CODES.get(error_code, 500)


def error_code_for_kind(kind: Optional[str]) -> ErrorCode:
    """Map a generation failure kind onto an error code."""
    if kind is None:
        return ErrorCode.UNKNOWN_ERROR
    return GENERATION_ERROR_CODES.get(getattr(kind, "value", kind), ErrorCode.UNKNOWN_ERROR)
