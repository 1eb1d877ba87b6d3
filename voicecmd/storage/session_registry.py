"""In-process conversation registry, keyed by conversation id."""
import logging
from typing import Dict

from voicecmd.core.session_models import Conversation, new_conversation
from voicecmd.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)

_conversations: Dict[str, Conversation] = {}


def open_conversation(with_welcome: bool = True) -> Conversation:
    conversation = new_conversation(with_welcome=with_welcome)
    _conversations[conversation.conversation_id] = conversation
    logger.info("[SESSION] conversation %s opened", conversation.conversation_id)
    return conversation


def get_conversation(conversation_id: str) -> Conversation:
    try:
        return _conversations[conversation_id]
    except KeyError:
        raise ConversationNotFoundError(conversation_id) from None


def close_conversation(conversation_id: str) -> bool:
    """Forget a conversation. Returns False if it was not registered."""
    closed = _conversations.pop(conversation_id, None) is not None
    if closed:
        logger.info("[SESSION] conversation %s closed", conversation_id)
    return closed
