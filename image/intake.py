"""Upload intake and data URI helpers.

Uploads arrive either as a data URI (what a browser FileReader produces) or as
raw bytes with a content type. Both end up as an ``UploadedImage`` holding the
full data URI for previews and the bare base64 payload for the Gemini call.
"""
import re
import time
import base64
import binascii
from typing import Optional, Tuple

from config import Config
from common.error_messages import ErrorCode, ERROR_MESSAGES
from image.models import UploadedImage
from utils.logger import get_logger

logger = get_logger("image.intake")

DATA_URI_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^;,]*)*;base64,(?P<data>.*)$", re.DOTALL)


class InvalidImageError(ValueError):
    """Raised when an upload is not an acceptable image."""

    def __init__(self, message: Optional[str] = None, code: ErrorCode = ErrorCode.INVALID_IMAGE_DATA):
        self.code = code
        super().__init__(message or ERROR_MESSAGES[code])


def is_image_mime(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.lower().startswith("image/")


def build_data_uri(mime_type: str, payload: str) -> str:
    return f"data:{mime_type};base64,{payload}"


def split_data_uri(data_uri: str) -> Tuple[str, str]:
    """
    Split a base64 data URI into (mime_type, payload).

    The mime type is empty when the URI does not declare one.
    Raises InvalidImageError for anything that is not a base64 data URI.
    """
    match = DATA_URI_RE.match(data_uri.strip())
    if not match:
        raise InvalidImageError("The upload is not a base64 data URI.")
    return match.group("mime"), match.group("data").strip()


def decode_base64(payload: str) -> bytes:
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"The image data is not valid base64: {e}")


def decode_data_uri(data_uri: str) -> Tuple[str, bytes]:
    """Decode a data URI into (mime_type, bytes)."""
    mime_type, payload = split_data_uri(data_uri)
    return mime_type, decode_base64(payload)


def upload_limit(max_bytes: Optional[int] = None) -> int:
    """Effective upload limit in bytes; 0 means unlimited."""
    return Config.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes


def _check_size(size: int, max_bytes: Optional[int]) -> None:
    limit = upload_limit(max_bytes)
    if limit and size > limit:
        raise InvalidImageError(code=ErrorCode.UPLOAD_TOO_LARGE)


def check_base64_size(payload: str, max_bytes: Optional[int] = None) -> None:
    """Reject a base64 payload whose decoded size would exceed the upload limit, without decoding it."""
    payload = payload.strip()
    decoded = len(payload) * 3 // 4 - payload[-2:].count("=")
    _check_size(decoded, max_bytes)


def accept_data_uri(
    data_uri: str,
    filename: str = "",
    fallback_mime_type: str = "",
    max_bytes: Optional[int] = None,
) -> UploadedImage:
    """
    Accept an upload given as a data URI.

    The mime type declared in the URI wins; ``fallback_mime_type`` (the
    browser-reported file type) is used only when the URI has none.
    """
    mime_type, payload = split_data_uri(data_uri)
    mime_type = mime_type or fallback_mime_type
    if not is_image_mime(mime_type):
        logger.warning(f"Rejected upload {filename or '<unnamed>'} with type {mime_type or '<none>'}")
        raise InvalidImageError()

    check_base64_size(payload, max_bytes)
    data = decode_base64(payload)

    logger.info(f"Accepted upload {filename or '<unnamed>'} ({mime_type}, {len(data)} bytes)")
    return UploadedImage(
        filename=filename,
        preview_uri=build_data_uri(mime_type, payload),
        raw_base64=payload,
        mime_type=mime_type,
        size_bytes=len(data),
    )


def accept_file(filename: str, content_type: str, data: bytes, max_bytes: Optional[int] = None) -> UploadedImage:
    """Accept an upload given as raw bytes plus its content type."""
    if not is_image_mime(content_type):
        logger.warning(f"Rejected upload {filename or '<unnamed>'} with type {content_type or '<none>'}")
        raise InvalidImageError()
    _check_size(len(data), max_bytes)

    payload = base64.b64encode(data).decode("ascii")
    return UploadedImage(
        filename=filename,
        preview_uri=build_data_uri(content_type, payload),
        raw_base64=payload,
        mime_type=content_type,
        size_bytes=len(data),
    )


def download_filename(timestamp_ms: Optional[int] = None, prefix: Optional[str] = None) -> str:
    """File name offered for a generated image download, e.g. ratioflip-1700000000000.png."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{prefix or Config.DOWNLOAD_PREFIX}-{timestamp_ms}.png"
