"""Image generation Pydantic models."""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class AspectRatio(str, Enum):
    """Output aspect ratios understood by the image model."""
    SQUARE = "1:1"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT = "9:16"
    LANDSCAPE = "16:9"


class GenerationErrorKind(str, Enum):
    """Why a generation call failed."""
    CONFIGURATION = "configuration"
    NO_CANDIDATES = "no_candidates"
    NO_IMAGE = "no_image"
    UPSTREAM = "upstream"


class GeminiSettings(BaseModel):
    """Explicit settings handed to the generation client."""
    api_key: str = Field("", description="Gemini API key; empty means not configured")
    model: str = Field("gemini-2.5-flash-image", description="Image generation model identifier")
    aspect_ratio: AspectRatio = Field(AspectRatio.PORTRAIT, description="Requested output aspect ratio")


class UploadedImage(BaseModel):
    """An accepted source image.

    ``preview_uri`` always carries the ``data:<mime>;base64,`` prefix,
    ``raw_base64`` never does.
    """
    filename: str = Field("", description="Original file name, if known")
    preview_uri: str = Field(..., description="Data URI used for previews")
    raw_base64: str = Field(..., description="Base64 payload without the data URI prefix")
    mime_type: str = Field(..., description="Image MIME type (e.g., image/png, image/jpeg)")
    size_bytes: int = Field(0, description="Decoded payload size")


class GenerationRequest(BaseModel):
    """Stateless generation request body."""
    image_base64: str = Field(..., min_length=1, description="Base64-encoded image data, no data URI prefix")
    mime_type: str = Field(..., description="Image MIME type (e.g., image/png, image/jpeg)")
    prompt: str = Field("", description="Optional edit instruction; empty uses the default instruction")


class GenerationResponse(BaseModel):
    image_uri: str = Field(..., description="Generated image as a data URI")


class GeneratedImage(BaseModel):
    """The current result of a session."""
    url: str = Field(..., description="Generated image as a data URI")
    prompt: str = Field("", description="Prompt text the image was generated with")
    timestamp: int = Field(..., description="Generation time in epoch milliseconds")


class GenerationOutcome(BaseModel):
    """Tagged result of one generation call: either an image URI or an error kind and message."""
    ok: bool
    image_uri: Optional[str] = None
    error_kind: Optional[GenerationErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, image_uri: str) -> "GenerationOutcome":
        return cls(ok=True, image_uri=image_uri)

    @classmethod
    def failure(cls, kind: GenerationErrorKind, message: str) -> "GenerationOutcome":
        return cls(ok=False, error_kind=kind, message=message)


class ProcessingState(BaseModel):
    is_loading: bool = False
    error: Optional[str] = None
    progress: str = ""


class SourceImageInfo(BaseModel):
    """Source image as reported back to clients (no raw payload)."""
    filename: str
    preview_uri: str
    mime_type: str
    size_bytes: int


class SessionSnapshot(BaseModel):
    """Everything a front-end needs to render a session."""
    session_id: str
    prompt: str
    source_image: Optional[SourceImageInfo] = None
    result: Optional[GeneratedImage] = None
    processing: ProcessingState = Field(default_factory=ProcessingState)
    can_generate: bool = False
    # A request started before a clear() may still be running; uploads wait for it
    in_flight: bool = False
    can_upload: bool = True


class UploadImageRequest(BaseModel):
    data_uri: str = Field(..., min_length=1, description="Image as a data URI (data:<mime>;base64,<payload>)")
    filename: str = Field("", description="Original file name")
    mime_type: str = Field("", description="Browser-reported file type, used when the data URI declares none")


class PromptUpdateRequest(BaseModel):
    prompt: str = Field("", description="Edit instruction; may be empty")
