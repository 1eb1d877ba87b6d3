import asyncio
import logging
from typing import AsyncIterator, Optional

from google import genai

from voicecmd.config import settings
from voicecmd.errors import ClassificationError
from voicecmd.llm.prompt import build_assistant_prompt, build_command_prompt

logger = logging.getLogger(__name__)

_default_client: Optional[genai.Client] = None


def get_client() -> genai.Client:
    global _default_client
    if _default_client is None:
        _default_client = genai.Client(api_key=settings.GEMINI_API_KEY)
    return _default_client


class IntentClassifier:
    """
    Sends a transcript plus the command contract to Gemini and returns
    the raw reply text. No parsing happens here.
    """

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GEMINI_MODEL

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_client()
        return self._client

    def classify(self, transcript: str) -> str:
        if not transcript or not transcript.strip():
            raise ClassificationError("No transcript received.")

        prompt = build_command_prompt(transcript.strip())

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config={"temperature": 0.0},
            )
        except Exception as e:
            logger.error("[INTENT] llm call failed: %s", e)
            raise ClassificationError(str(e)) from e

        raw_text = (response.text or "").strip()
        logger.debug("[INTENT] raw reply: %s", raw_text)
        return raw_text

    async def aclassify(self, transcript: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.classify, transcript)


class AssistantResponder:
    """Streams a free-text reply for utterances that are not commands."""

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GEMINI_MODEL

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def stream_reply(self, text: str, specialists_hint: str = "") -> AsyncIterator[str]:
        prompt = build_assistant_prompt(text, specialists_hint)

        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=prompt,
                config={"temperature": 0.3},
            )
            async for chunk in stream:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            logger.error("[ASSISTANT] stream failed: %s", e)
            raise ClassificationError(str(e)) from e
