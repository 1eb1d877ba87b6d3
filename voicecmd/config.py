import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    ENV = os.getenv("ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

    ENDPOINTS_BASE_URL = os.getenv("ENDPOINTS_BASE_URL", "http://localhost:3000")
    ENDPOINT_TIMEOUT_SECONDS = float(os.getenv("ENDPOINT_TIMEOUT_SECONDS", "15"))

    VOSK_MODEL_PATH = os.getenv("VOSK_MODEL_PATH", "models/vosk/en/vosk-model-small-en-us-0.15")
    SPEECH_LANGUAGE = os.getenv("SPEECH_LANGUAGE", "en-US")
    SAMPLE_RATE = int(os.getenv("SAMPLE_RATE", "16000"))

    # stream a free-text reply when an utterance is not a command
    ASSISTANT_FREE_TEXT = _flag("ASSISTANT_FREE_TEXT", "true")


settings = Settings()
