from typing import Optional


class VoiceCommandError(Exception):
    """Base class for every error raised by the command engine."""


class CaptureError(VoiceCommandError):
    """
    Speech capture failure.
    `code` is one of CAPTURE_ERROR_CODES.
    """

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code)


class ClassificationError(VoiceCommandError):
    """The language-model call failed or returned nothing."""


class EndpointError(VoiceCommandError):
    """A mutation or lookup endpoint was unreachable or answered with a non-JSON body."""

    def __init__(self, detail: str, status: Optional[int] = None):
        self.detail = detail
        self.status = status
        super().__init__(detail)


class TurnInFlightError(VoiceCommandError):
    """A new utterance was submitted while the previous turn is still running."""


class ConversationNotFoundError(VoiceCommandError):
    """No open conversation has the requested id."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")
