from dataclasses import dataclass, field
from typing import List, Literal, Optional
from datetime import datetime
import uuid

Role = Literal["user", "assistant"]

WELCOME_MESSAGE = (
    "Hello doctor 👋\nI’m your voice assistant.\n\nYou can:\n"
    "• Ask clinical questions\n"
    "• Say: “Find patient John Smith”\n"
    "• Say: “Add BP 130/80”\n"
    "• Say: “Prescribe amoxicillin 500mg”\n\n"
    "How can I help you today?"
)


@dataclass
class ConversationTurn:
    turn_id: str
    role: Role
    content: str
    created_at: str
    order: int
    streaming: bool = False


@dataclass
class Conversation:
    conversation_id: str
    created_at: str

    turns: List[ConversationTurn] = field(default_factory=list)
    location: str = "/"

    in_flight: bool = False
    call_suggestion: Optional[dict] = None

    def append(self, role: Role, content: str, streaming: bool = False) -> ConversationTurn:
        turn = ConversationTurn(
            turn_id=str(uuid.uuid4()),
            role=role,
            content=content,
            created_at=datetime.utcnow().isoformat(),
            order=len(self.turns),
            streaming=streaming,
        )
        self.turns.append(turn)
        return turn


def new_conversation(with_welcome: bool = True) -> Conversation:
    now = datetime.utcnow()
    conversation = Conversation(
        conversation_id=now.strftime("%Y-%m-%d_%H-%M-%S_%f"),
        created_at=now.isoformat(),
    )
    if with_welcome:
        conversation.append("assistant", WELCOME_MESSAGE)
    return conversation
