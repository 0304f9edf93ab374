import os
import base64
import struct
import zlib
from unittest.mock import AsyncMock, MagicMock

import pytest

# Must be set before config is imported
os.environ["PROGRESS_DELAY_SECONDS"] = "0"

from google.genai import types

from image.models import GeminiSettings


def make_png(width: int, height: int, rgb) -> bytes:
    """Build a minimal solid-colour RGB PNG."""
    def chunk(tag: bytes, data: bytes) -> bytes:
        return (
            struct.pack(">I", len(data))
            + tag
            + data
            + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)
        )

    raw = b"".join(b"\x00" + bytes(rgb) * width for _ in range(height))
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", ihdr)
        + chunk(b"IDAT", zlib.compress(raw))
        + chunk(b"IEND", b"")
    )


def image_response(*blobs: types.Blob, text: str = None) -> types.GenerateContentResponse:
    parts = []
    if text is not None:
        parts.append(types.Part(text=text))
    parts.extend(types.Part(inline_data=blob) for blob in blobs)
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=parts))]
    )


def fake_sdk(response=None, error=None):
    """Return (factory, sdk_client) standing in for genai.Client."""
    sdk = MagicMock()
    sdk.aio.models.generate_content = AsyncMock(return_value=response, side_effect=error)
    factory = MagicMock(return_value=sdk)
    return factory, sdk


@pytest.fixture
def red_png() -> bytes:
    return make_png(2, 2, (255, 0, 0))


@pytest.fixture
def blue_png() -> bytes:
    return make_png(2, 2, (0, 0, 255))


@pytest.fixture
def red_png_base64(red_png) -> str:
    return base64.b64encode(red_png).decode("ascii")


@pytest.fixture
def blue_png_base64(blue_png) -> str:
    return base64.b64encode(blue_png).decode("ascii")


@pytest.fixture
def settings() -> GeminiSettings:
    return GeminiSettings(api_key="test-key", model="gemini-2.5-flash-image")
