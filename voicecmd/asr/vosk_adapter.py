import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from vosk import Model, KaldiRecognizer

from voicecmd.asr.capture import (
    CaptureConfig,
    RecognizerFactory,
    Segment,
    SessionSink,
)
from voicecmd.config import settings
from voicecmd.errors import CaptureError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def load_model(model_path: str) -> Model:
    if not Path(model_path).exists():
        raise CaptureError("unsupported", f"Vosk model not found at {model_path}")
    return Model(model_path)


class VoskRecognitionSession:
    """
    Streams PCM16 mono chunks through a KaldiRecognizer and reports
    partial / final segments to the capture controller.
    """

    def __init__(
        self,
        model: Model,
        config: CaptureConfig,
        sink: SessionSink,
        sample_rate: int = settings.SAMPLE_RATE,
    ):
        self.config = config
        self.sink = sink
        self.sample_rate = sample_rate
        self._recognizer = KaldiRecognizer(model, sample_rate)
        self._recognizer.SetPartialWords(config.interim_results)
        self._active = False

    def start(self) -> None:
        self._active = True

    def stop(self) -> Optional[str]:
        if not self._active:
            return None
        self._active = False
        result = json.loads(self._recognizer.FinalResult())
        return result.get("text", "").strip() or None

    def feed(self, data: bytes) -> None:
        if not self._active or not data:
            return

        if self._recognizer.AcceptWaveform(data):
            result = json.loads(self._recognizer.Result())
            text = result.get("text", "").strip()
            if text:
                self.sink.result([Segment(text=text, is_final=True)])
        elif self.config.interim_results:
            partial = json.loads(self._recognizer.PartialResult())
            if partial.get("partial"):
                self.sink.result([Segment(text=partial["partial"], is_final=False)])

    def fail(self, code: str) -> None:
        if not self._active:
            return
        self._active = False
        self.sink.error(code)

    def end(self) -> None:
        """Audio source closed without an explicit stop."""
        if not self._active:
            return
        self._active = False
        self.sink.end()


def _primary_language(tag: str) -> str:
    return (tag or "").replace("_", "-").split("-")[0].lower()


def vosk_recognizer_factory(
    model_path: str = settings.VOSK_MODEL_PATH,
    sample_rate: int = settings.SAMPLE_RATE,
    model_language: str = settings.SPEECH_LANGUAGE,
) -> Optional[RecognizerFactory]:
    """
    Return a recognizer factory bound to the Vosk model,
    or None when no model is available.

    A Vosk model recognizes one language; sessions asking for another
    are refused as unsupported.
    """
    try:
        model = load_model(model_path)
    except CaptureError as e:
        logger.warning("[CAPTURE] %s", e)
        return None

    def factory(config: CaptureConfig, sink: SessionSink) -> VoskRecognitionSession:
        if _primary_language(config.language) != _primary_language(model_language):
            raise CaptureError(
                "unsupported",
                f"No Vosk model loaded for {config.language} (model is {model_language})",
            )
        return VoskRecognitionSession(model, config, sink, sample_rate)

    return factory
