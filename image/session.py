"""Generation sessions - the state kept between upload, generate and download."""
import asyncio
import time
from threading import Lock
from typing import Callable, Dict, Optional, Tuple
from uuid import uuid4

from config import Config
from common.error_messages import ErrorCode, ERROR_MESSAGES
from image.intake import decode_data_uri, download_filename
from image.models import (
    GeneratedImage,
    GenerationOutcome,
    ProcessingState,
    SessionSnapshot,
    SourceImageInfo,
    UploadedImage,
)
from image.services import GenerationClient
from utils.logger import get_logger

logger = get_logger("image.session")

DEFAULT_PROMPT = "Convert this landscape image to a 9:16 portrait composition, expanding the background naturally."
PROGRESS_ANALYZING = "Analyzing image..."
PROGRESS_GENERATING = "Generating new aspect ratio..."


class SessionError(Exception):
    """Base class for operations a session refuses in its current state."""
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or ERROR_MESSAGES[self.code])


class NoSourceImageError(SessionError):
    code = ErrorCode.NO_SOURCE_IMAGE


class GenerationInProgressError(SessionError):
    code = ErrorCode.GENERATION_IN_PROGRESS


class NoResultError(SessionError):
    code = ErrorCode.NO_RESULT_AVAILABLE


class StudioSession:
    """
    One user's source image, prompt, current result and processing state.

    States: idle (nothing loading), loading (a request in flight), and after a
    request settles either a stored result or a stored error message. At most
    one generation request is outstanding per session.

    Policies:
      - A failed (re)generation leaves the previous result in place; only the
        error is recorded.
      - clear() always returns to the empty idle state. A request already in
        flight keeps running; its outcome is discarded when it settles, and no
        new upload or generation can start until it has. Snapshots report this
        through ``in_flight`` and ``can_upload``.
    """

    def __init__(self, session_id: Optional[str] = None, prompt: str = DEFAULT_PROMPT,
                 progress_delay: Optional[float] = None):
        self.session_id = session_id or str(uuid4())
        self.prompt = prompt
        self.progress_delay = Config.PROGRESS_DELAY_SECONDS if progress_delay is None else progress_delay
        self.source_image: Optional[UploadedImage] = None
        self.result: Optional[GeneratedImage] = None
        self.processing = ProcessingState()
        self._in_flight = False
        # Bumped whenever the source image changes; stale outcomes are dropped
        self._epoch = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def can_generate(self) -> bool:
        return self.source_image is not None and not self._in_flight

    def select_image(self, upload: UploadedImage) -> None:
        """Replace the source image; the previous result and error are discarded."""
        if self._in_flight:
            raise GenerationInProgressError()
        self.source_image = upload
        self.result = None
        self.processing = ProcessingState()
        self._epoch += 1
        logger.info(f"Session {self.session_id}: source image set ({upload.mime_type}, {upload.size_bytes} bytes)")

    def clear(self) -> None:
        self.source_image = None
        self.result = None
        self.processing = ProcessingState()
        self._epoch += 1
        logger.info(f"Session {self.session_id}: cleared")

    def set_prompt(self, prompt: str) -> None:
        self.prompt = prompt

    async def generate(self, client: GenerationClient) -> GenerationOutcome:
        """
        Run one generation for the current source image and prompt.

        Raises NoSourceImageError or GenerationInProgressError without
        contacting the client when the session cannot generate.
        """
        if self.source_image is None:
            raise NoSourceImageError()
        if self._in_flight:
            raise GenerationInProgressError()

        source = self.source_image
        prompt = self.prompt
        epoch = self._epoch

        self._in_flight = True
        self.processing = ProcessingState(is_loading=True, error=None, progress=PROGRESS_ANALYZING)
        try:
            if self.progress_delay > 0:
                await asyncio.sleep(self.progress_delay)
            if epoch == self._epoch:
                self.processing.progress = PROGRESS_GENERATING

            logger.info(f"Session {self.session_id}: generating")
            outcome = await client.generate(source.raw_base64, source.mime_type, prompt)

            if epoch != self._epoch:
                logger.info(f"Session {self.session_id}: discarding outcome for a replaced source image")
            elif outcome.ok:
                self.result = GeneratedImage(url=outcome.image_uri, prompt=prompt, timestamp=int(time.time() * 1000))
                logger.info(f"Session {self.session_id}: generation succeeded")
            else:
                self.processing.error = outcome.message or ERROR_MESSAGES[ErrorCode.UNKNOWN_ERROR]
                logger.warning(f"Session {self.session_id}: generation failed ({outcome.error_kind}): {outcome.message}")
            return outcome
        finally:
            self._in_flight = False
            if epoch == self._epoch:
                self.processing.is_loading = False
                self.processing.progress = ""

    def download(self) -> Tuple[str, str, bytes]:
        """Return (filename, mime_type, image bytes) for the current result."""
        if self.result is None:
            raise NoResultError()
        mime_type, data = decode_data_uri(self.result.url)
        return download_filename(), mime_type, data

    def snapshot(self) -> SessionSnapshot:
        source = None
        if self.source_image is not None:
            source = SourceImageInfo(
                filename=self.source_image.filename,
                preview_uri=self.source_image.preview_uri,
                mime_type=self.source_image.mime_type,
                size_bytes=self.source_image.size_bytes,
            )
        return SessionSnapshot(
            session_id=self.session_id,
            prompt=self.prompt,
            source_image=source,
            result=self.result,
            processing=self.processing.model_copy(),
            can_generate=self.can_generate,
            in_flight=self._in_flight,
            can_upload=not self._in_flight,
        )


class SessionRegistry:
    """
    Thread-safe in-memory map of session id -> StudioSession.

    Sessions idle for longer than ``ttl_seconds`` are dropped, and ``create``
    evicts the least recently used sessions to stay within ``max_sessions``.
    A value of 0 disables the corresponding limit.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, max_sessions: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = Config.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.max_sessions = Config.MAX_SESSIONS if max_sessions is None else max_sessions
        self._clock = clock
        self._lock = Lock()
        self._sessions: Dict[str, StudioSession] = {}
        self._last_access: Dict[str, float] = {}

    def _expired(self, session_id: str, now: float) -> bool:
        return bool(self.ttl_seconds) and now - self._last_access[session_id] > self.ttl_seconds

    def _drop(self, session_id: str, reason: str) -> None:
        # Caller holds the lock
        self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        logger.info(f"Evicted session {session_id} ({reason})")

    def _evict(self, now: float) -> None:
        for session_id in [sid for sid in self._sessions if self._expired(sid, now)]:
            self._drop(session_id, "idle")
        if self.max_sessions:
            while len(self._sessions) >= self.max_sessions:
                oldest = min(self._last_access, key=self._last_access.get)
                self._drop(oldest, "session limit")

    def create(self, prompt: Optional[str] = None) -> StudioSession:
        session = StudioSession(prompt=DEFAULT_PROMPT if prompt is None else prompt)
        with self._lock:
            now = self._clock()
            self._evict(now)
            self._sessions[session.session_id] = session
            self._last_access[session.session_id] = now
        logger.info(f"Created session {session.session_id}")
        return session

    def get(self, session_id: str) -> StudioSession:
        with self._lock:
            now = self._clock()
            session = self._sessions.get(session_id)
            if session is not None and self._expired(session_id, now):
                self._drop(session_id, "idle")
                session = None
            if session is not None:
                self._last_access[session_id] = now
        if session is None:
            raise KeyError("session not found")
        return session

    def delete(self, session_id: str) -> StudioSession:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            self._last_access.pop(session_id, None)
        if session is None:
            raise KeyError("session not found")
        logger.info(f"Deleted session {session_id}")
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


sessions = SessionRegistry()
