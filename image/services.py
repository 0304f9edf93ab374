"""Image generation services - Gemini integration."""
import base64
from typing import Any, Callable, Optional

from google import genai
from google.genai import types

from image.models import GeminiSettings, GenerationErrorKind, GenerationOutcome
from utils.logger import get_logger

logger = get_logger("image.services")

DEFAULT_INSTRUCTION = "Transform this image to 9:16 portrait aspect ratio, maintaining the subject and style."
DEFAULT_OUTPUT_MIME_TYPE = "image/png"

MISSING_API_KEY_MESSAGE = "API Key is missing. Please check your environment configuration."
NO_CANDIDATES_MESSAGE = "No candidates returned from Gemini."
NO_IMAGE_MESSAGE = "No image generated in the response."
GENERIC_FAILURE_MESSAGE = "Failed to generate image."


class ImageGenerationError(RuntimeError):
    """Raised by GenerationClient.generate_image_uri when a generation fails."""

    def __init__(self, kind: GenerationErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


def effective_prompt(prompt: Optional[str]) -> str:
    """The instruction actually sent: the prompt itself, or the default when it is empty."""
    if prompt:
        return prompt
    return DEFAULT_INSTRUCTION


def build_contents(image_bytes: bytes, mime_type: str, prompt: str) -> types.Content:
    """Single user turn: the inline source image followed by the instruction text."""
    return types.Content(
        role="user",
        parts=[
            types.Part(inline_data=types.Blob(mime_type=mime_type, data=image_bytes)),
            types.Part.from_text(text=effective_prompt(prompt)),
        ],
    )


def build_config(settings: GeminiSettings) -> types.GenerateContentConfig:
    return types.GenerateContentConfig(
        image_config=types.ImageConfig(aspect_ratio=settings.aspect_ratio.value),
    )


def extract_image_uri(response: Any) -> GenerationOutcome:
    """
    Pull the first inline image out of a generate_content response.

    Only the first candidate is inspected and only its first inline image
    part is used. The data URI carries the mime type reported by the part,
    falling back to image/png when the response does not say.
    """
    candidates = getattr(response, "candidates", None)
    if not candidates:
        return GenerationOutcome.failure(GenerationErrorKind.NO_CANDIDATES, NO_CANDIDATES_MESSAGE)

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    for part in parts:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline else None
        if not data:
            continue
        if isinstance(data, (bytes, bytearray)):
            payload = base64.b64encode(bytes(data)).decode("ascii")
        else:
            payload = str(data)
        mime_type = getattr(inline, "mime_type", None) or DEFAULT_OUTPUT_MIME_TYPE
        return GenerationOutcome.success(f"data:{mime_type};base64,{payload}")

    return GenerationOutcome.failure(GenerationErrorKind.NO_IMAGE, NO_IMAGE_MESSAGE)


class GenerationClient:
    """
    Issues one Gemini image generation call per invocation.

    The client holds only its settings; a fresh SDK client is created for
    every call and nothing about previous calls is remembered. Callers are
    responsible for not running two generations for the same user at once.
    """

    def __init__(self, settings: GeminiSettings, client_factory: Optional[Callable[..., Any]] = None):
        self.settings = settings
        self._client_factory = client_factory or genai.Client

    async def generate(self, image_base64: str, mime_type: str, prompt: str = "") -> GenerationOutcome:
        """
        Generate a reworked image from a base64 source image.

        Args:
            image_base64: Base64 image payload without a data URI prefix
            mime_type: Source image MIME type
            prompt: Edit instruction; empty uses DEFAULT_INSTRUCTION

        Returns:
            GenerationOutcome with either image_uri or error_kind/message set
        """
        if not self.settings.api_key:
            logger.error("Gemini API key is not configured")
            return GenerationOutcome.failure(GenerationErrorKind.CONFIGURATION, MISSING_API_KEY_MESSAGE)

        try:
            image_bytes = base64.b64decode(image_base64, validate=True)
            contents = build_contents(image_bytes, mime_type, prompt)
            config = build_config(self.settings)

            client = self._client_factory(api_key=self.settings.api_key)
            logger.info(
                f"Requesting {self.settings.aspect_ratio.value} image from {self.settings.model} "
                f"({mime_type}, {len(image_bytes)} bytes, prompt {len(effective_prompt(prompt))} chars)"
            )
            response = await client.aio.models.generate_content(
                model=self.settings.model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini API Error: {e}")
            return GenerationOutcome.failure(GenerationErrorKind.UPSTREAM, str(e) or GENERIC_FAILURE_MESSAGE)

        outcome = extract_image_uri(response)
        if outcome.ok:
            logger.info(f"Gemini returned an image ({len(outcome.image_uri)} chars as data URI)")
        else:
            logger.error(f"Gemini API Error: {outcome.message}")
        return outcome

    async def generate_image_uri(self, image_base64: str, mime_type: str, prompt: str = "") -> str:
        """Like generate, but returns the data URI directly and raises ImageGenerationError on failure."""
        outcome = await self.generate(image_base64, mime_type, prompt)
        if not outcome.ok:
            raise ImageGenerationError(outcome.error_kind, outcome.message)
        return outcome.image_uri
