"""Image generation and session routes."""
from fastapi import APIRouter, HTTPException, Path, Depends, UploadFile, File
from fastapi.responses import Response

from config import Config
from common.error_messages import ErrorCode, get_error_response, error_code_for_kind
from image.intake import InvalidImageError, accept_data_uri, accept_file, check_base64_size, upload_limit
from image.models import (
    GenerationRequest,
    GenerationResponse,
    PromptUpdateRequest,
    SessionSnapshot,
    UploadImageRequest,
)
from image.services import GenerationClient
from image.session import SessionError, StudioSession, sessions
from utils.logger import get_logger

logger = get_logger("image")
router = APIRouter(prefix="/api", tags=["image"])

UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_generation_client() -> GenerationClient:
    """Build a client from the environment as it is right now."""
    return GenerationClient(Config.gemini_settings())


def _get_session(session_id: str) -> StudioSession:
    try:
        return sessions.get(session_id)
    except KeyError:
        message, status_code = get_error_response(ErrorCode.SESSION_NOT_FOUND)
        raise HTTPException(status_code=status_code, detail=message)


def _raise_for(code: ErrorCode, message: str = None):
    message, status_code = get_error_response(code, message)
    raise HTTPException(status_code=status_code, detail=message)


async def _read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file in chunks, stopping as soon as it exceeds the upload limit."""
    limit = upload_limit()
    chunks = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if limit and total > limit:
            logger.warning(f"Rejected upload {file.filename or '<unnamed>'}: over {limit} bytes")
            _raise_for(ErrorCode.UPLOAD_TOO_LARGE)
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/generate", response_model=GenerationResponse)
async def generate(req: GenerationRequest, client: GenerationClient = Depends(get_generation_client)):
    """
    Stateless generation.

    Accepts:
      { image_base64: "...", mime_type: "image/png", prompt?: "..." }

    Returns { image_uri: "data:image/png;base64,..." }. Failures answer with
    the client's message; the status depends on the failure kind. Images over
    MAX_UPLOAD_BYTES are rejected with 413 before anything is sent.
    """
    try:
        check_base64_size(req.image_base64)
    except InvalidImageError as e:
        _raise_for(e.code, str(e))
    outcome = await client.generate(req.image_base64, req.mime_type, req.prompt)
    if not outcome.ok:
        _raise_for(error_code_for_kind(outcome.error_kind), outcome.message)
    return GenerationResponse(image_uri=outcome.image_uri)


# ---------- Session endpoints ----------
# Handlers that touch a session are async so every mutation runs on the event loop.
@router.post("/sessions", response_model=SessionSnapshot)
async def create_session():
    """Start a new session with the default prompt."""
    return sessions.create().snapshot()


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str = Path(...)):
    return _get_session(session_id).snapshot()


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str = Path(...)):
    try:
        sessions.delete(session_id)
    except KeyError:
        _raise_for(ErrorCode.SESSION_NOT_FOUND)
    return {"deleted": True, "session_id": session_id}


@router.post("/sessions/{session_id}/image", response_model=SessionSnapshot)
async def upload_image(req: UploadImageRequest, session_id: str = Path(...)):
    """
    Set the source image from a data URI.

    ``mime_type`` is the browser-reported file type and only applies when the
    data URI declares none. Non-image uploads are rejected with 400.
    """
    session = _get_session(session_id)
    try:
        upload = accept_data_uri(req.data_uri, filename=req.filename, fallback_mime_type=req.mime_type)
        session.select_image(upload)
    except InvalidImageError as e:
        _raise_for(e.code, str(e))
    except SessionError as e:
        _raise_for(e.code, str(e))
    return session.snapshot()


@router.post("/sessions/{session_id}/image/file", response_model=SessionSnapshot)
async def upload_image_file(session_id: str = Path(...), file: UploadFile = File(...)):
    """Set the source image from a multipart file upload."""
    session = _get_session(session_id)
    try:
        image_data = await _read_upload(file)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to read uploaded file: {e}")
        _raise_for(ErrorCode.INVALID_IMAGE_DATA, "Failed to read uploaded file")
    try:
        upload = accept_file(file.filename or "", file.content_type or "", image_data)
        session.select_image(upload)
    except InvalidImageError as e:
        _raise_for(e.code, str(e))
    except SessionError as e:
        _raise_for(e.code, str(e))
    return session.snapshot()


@router.delete("/sessions/{session_id}/image", response_model=SessionSnapshot)
async def clear_image(session_id: str = Path(...)):
    """Drop the source image, result and error."""
    session = _get_session(session_id)
    session.clear()
    return session.snapshot()


@router.put("/sessions/{session_id}/prompt", response_model=SessionSnapshot)
async def update_prompt(req: PromptUpdateRequest, session_id: str = Path(...)):
    session = _get_session(session_id)
    session.set_prompt(req.prompt)
    return session.snapshot()


@router.post("/sessions/{session_id}/generate", response_model=SessionSnapshot)
async def generate_for_session(session_id: str = Path(...), client: GenerationClient = Depends(get_generation_client)):
    """
    Generate (or regenerate) the portrait for the session's source image.

    Answers 400 without a source image and 409 while another generation for
    the session is running. A failed generation still answers 200; the error
    message is in processing.error and any earlier result is kept.
    """
    session = _get_session(session_id)
    try:
        await session.generate(client)
    except SessionError as e:
        _raise_for(e.code, str(e))
    return session.snapshot()


@router.get("/sessions/{session_id}/download")
async def download_result(session_id: str = Path(...)):
    """Download the current result as an attachment named ratioflip-<timestamp>.png."""
    session = _get_session(session_id)
    try:
        filename, mime_type, data = session.download()
    except SessionError as e:
        _raise_for(e.code, str(e))
    logger.info(f"Session {session_id}: download {filename} ({len(data)} bytes)")
    return Response(
        content=data,
        media_type=mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
