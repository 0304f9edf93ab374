"""Image generation module."""
from image.models import (
    AspectRatio,
    GeminiSettings,
    GenerationErrorKind,
    GenerationOutcome,
    UploadedImage,
)
from image.services import DEFAULT_INSTRUCTION, GenerationClient, ImageGenerationError
from image.session import DEFAULT_PROMPT, SessionRegistry, StudioSession

__all__ = [
    "AspectRatio",
    "GeminiSettings",
    "GenerationErrorKind",
    "GenerationOutcome",
    "UploadedImage",
    "DEFAULT_INSTRUCTION",
    "GenerationClient",
    "ImageGenerationError",
    "DEFAULT_PROMPT",
    "SessionRegistry",
    "StudioSession",
]
