"""
Speech capture lifecycle.

One controller owns at most one recognition session. Each start() builds a
brand-new session through the recognizer factory and tags it with a fresh
session id; callbacks that arrive for any other id are dropped.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol

from voicecmd.errors import CaptureError

logger = logging.getLogger(__name__)

# --------------------
# CONFIG
# --------------------

CAPTURE_ERROR_MESSAGES = {
    "permission-denied": "Microphone permission was denied. Please allow access and try again.",
    "no-speech": "No speech detected. Please speak clearly and try again.",
    "audio-capture": "No microphone detected. Please check your audio device.",
    "aborted": "Voice capture was interrupted.",
    "unsupported": "Speech recognition is not supported in this environment.",
}

# backend-specific codes folded into the taxonomy above
_CODE_ALIASES = {
    "not-allowed": "permission-denied",
    "service-not-allowed": "permission-denied",
    "no-microphone": "audio-capture",
}

RESUME_NOTICE = "Dictation stopped (silence/timeout). Tap the mic to resume."


def normalize_error_code(code: Optional[str]) -> str:
    if not code:
        return "aborted"
    code = _CODE_ALIASES.get(code, code)
    return code if code in CAPTURE_ERROR_MESSAGES else "aborted"


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


@dataclass
class CaptureConfig:
    continuous: bool = True
    interim_results: bool = True
    language: str = "en-US"
    reset_on_start: bool = True


@dataclass(frozen=True)
class Segment:
    text: str
    is_final: bool


@dataclass
class Transcript:
    segments: List[str] = field(default_factory=list)
    interim: str = ""
    # segments already handed downstream by take()
    delivered: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.segments)

    def add_final(self, text: str) -> None:
        text = text.strip()
        if text:
            self.segments.append(text)
        self.interim = ""

    def set_interim(self, text: str) -> None:
        self.interim = text

    def take(self) -> str:
        """Final text not yet handed downstream; each segment is returned once."""
        fresh = self.segments[self.delivered:]
        self.delivered = len(self.segments)
        return "\n".join(fresh)


# --------------------
# BACKEND CONTRACT
# --------------------

class RecognitionSession(Protocol):
    def start(self) -> None: ...

    def stop(self) -> Optional[str]:
        """Stop recognition; return any trailing final text not yet delivered."""
        ...


class SessionSink:
    """Callback target handed to one recognition session."""

    def __init__(self, controller: "SpeechCaptureController", session_id: int):
        self._controller = controller
        self.session_id = session_id

    def result(self, segments: List[Segment]) -> None:
        self._controller._on_result(self.session_id, segments)

    def error(self, code: Optional[str]) -> None:
        self._controller._on_error(self.session_id, code)

    def end(self) -> None:
        self._controller._on_end(self.session_id)


RecognizerFactory = Callable[[CaptureConfig, SessionSink], RecognitionSession]


# --------------------
# CONTROLLER
# --------------------

class SpeechCaptureController:
    def __init__(
        self,
        recognizer_factory: Optional[RecognizerFactory],
        config: Optional[CaptureConfig] = None,
        on_error: Optional[Callable[[CaptureError], None]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        on_final: Optional[Callable[[str], None]] = None,
    ):
        self._factory = recognizer_factory
        self.config = config or CaptureConfig()
        self._on_error_cb = on_error
        self._on_notice_cb = on_notice
        self._on_final_cb = on_final

        self.state = CaptureState.IDLE
        self.transcript = Transcript()
        self.last_error: Optional[CaptureError] = None
        self.notice: Optional[str] = None

        self._session_id = 0
        self._handle: Optional[RecognitionSession] = None

    @property
    def listening(self) -> bool:
        return self.state is CaptureState.LISTENING

    @property
    def handle(self) -> Optional[RecognitionSession]:
        return self._handle

    def start(self) -> bool:
        """
        Begin a recognition session.
        Returns False when already listening or when the session could not start.
        """
        if self.listening:
            return False

        self.last_error = None
        self.notice = None

        if self._factory is None:
            self._fail("unsupported")
            return False

        if self.config.reset_on_start:
            self.transcript = Transcript()

        self._session_id += 1
        sink = SessionSink(self, self._session_id)

        try:
            handle = self._factory(self.config, sink)
            handle.start()
        except CaptureError as e:
            self._session_id += 1
            self._fail(normalize_error_code(e.code))
            return False

        self._handle = handle
        self.state = CaptureState.LISTENING
        logger.info("[CAPTURE] session %s started", self._session_id)
        return True

    def stop(self) -> str:
        """
        End the session (if any) and return the final text finalized since
        the previous stop(). Repeated calls with no new speech return "".
        """
        handle = self._handle
        self._handle = None
        self._session_id += 1
        self.state = CaptureState.IDLE
        self.transcript.interim = ""

        if handle is not None:
            residual = handle.stop()
            if residual:
                self._append_final(residual)
            logger.info("[CAPTURE] stopped by user")

        return self.transcript.take()

    # --------------------
    # SESSION CALLBACKS
    # --------------------

    def _is_current(self, session_id: int) -> bool:
        return self.listening and session_id == self._session_id

    def _on_result(self, session_id: int, segments: List[Segment]) -> None:
        if not self._is_current(session_id):
            return

        interim_parts = []
        got_final = False
        for segment in segments:
            if segment.is_final:
                self._append_final(segment.text)
                got_final = True
            elif self.config.interim_results:
                interim_parts.append(segment.text)

        if interim_parts:
            self.transcript.set_interim("".join(interim_parts))

        if got_final and not self.config.continuous:
            self.stop()

    def _on_error(self, session_id: int, code: Optional[str]) -> None:
        if not self._is_current(session_id):
            return
        self._handle = None
        self._session_id += 1
        self._fail(normalize_error_code(code))

    def _on_end(self, session_id: int) -> None:
        if not self._is_current(session_id):
            return
        self._handle = None
        self._session_id += 1
        self.state = CaptureState.IDLE
        self.transcript.interim = ""
        self.notice = RESUME_NOTICE
        logger.info("[CAPTURE] session ended unexpectedly")
        if self._on_notice_cb:
            self._on_notice_cb(RESUME_NOTICE)

    # --------------------
    # HELPERS
    # --------------------

    def _append_final(self, text: str) -> None:
        before = len(self.transcript.segments)
        self.transcript.add_final(text)
        if self._on_final_cb and len(self.transcript.segments) > before:
            self._on_final_cb(self.transcript.segments[-1])

    def _fail(self, code: str) -> None:
        self.state = CaptureState.IDLE
        self.transcript.interim = ""
        error = CaptureError(code, CAPTURE_ERROR_MESSAGES[code])
        self.last_error = error
        logger.warning("[CAPTURE] %s", code)
        if self._on_error_cb:
            self._on_error_cb(error)
