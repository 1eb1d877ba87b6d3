from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from voicecmd.core.session_models import Conversation, ConversationTurn
from voicecmd.errors import ClassificationError, ConversationNotFoundError, TurnInFlightError
from voicecmd.llm.gemini import AssistantResponder, IntentClassifier
from voicecmd.models import Action, DispatchOutcome, NavigationTarget
from voicecmd.pipeline.endpoints import EndpointClient
from voicecmd.pipeline.feedback import CLASSIFICATION_FAILURE, CommandLoop
from voicecmd.pipeline.parser import parse_command
from voicecmd.storage.session_registry import get_conversation, open_conversation

router = APIRouter(tags=["commands"])

_classifier = IntentClassifier()
_endpoints = EndpointClient()
_responder = AssistantResponder()


def get_classifier() -> IntentClassifier:
    return _classifier


def get_endpoints() -> EndpointClient:
    return _endpoints


def get_responder() -> Optional[AssistantResponder]:
    return _responder


# --------------------
# BODIES
# --------------------

@dataclass
class CommandRequest:
    transcript: str


@dataclass
class TurnRequest:
    text: str
    location: Optional[str] = None


# --------------------
# SERIALIZATION
# --------------------

def navigation_to_dict(target: Optional[NavigationTarget]) -> Optional[Dict[str, Any]]:
    if target is None:
        return None
    return {"path": target.path, "query": dict(target.query), "url": target.url}


def outcome_to_dict(outcome: DispatchOutcome) -> Dict[str, Any]:
    return {
        "success": outcome.success,
        "kind": outcome.kind,
        "message": outcome.message,
        "error": outcome.error,
        "navigation": navigation_to_dict(outcome.navigation),
    }


def turn_to_dict(turn: ConversationTurn) -> Dict[str, Any]:
    return asdict(turn)


def conversation_to_dict(conversation: Conversation) -> Dict[str, Any]:
    return {
        "conversation_id": conversation.conversation_id,
        "created_at": conversation.created_at,
        "location": conversation.location,
        "in_flight": conversation.in_flight,
        "call_suggestion": conversation.call_suggestion,
        "turns": [turn_to_dict(t) for t in conversation.turns],
    }


class RecordingNavigator:
    """Navigation effect for request/response clients: the shell applies it."""

    def __init__(self):
        self.targets: List[NavigationTarget] = []

    async def navigate(self, target: NavigationTarget) -> None:
        self.targets.append(target)


def _lookup(conversation_id: str) -> Conversation:
    try:
        return get_conversation(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")


# --------------------
# ROUTES
# --------------------

@router.post("/voice/command")
async def classify_command(
    body: CommandRequest,
    classifier: IntentClassifier = Depends(get_classifier),
):
    """Classify + parse only; nothing is dispatched."""
    if not body.transcript or not body.transcript.strip():
        return {"success": False, "error": "No transcript received."}

    try:
        raw = await classifier.aclassify(body.transcript)
    except ClassificationError:
        return {
            "success": True,
            "action": Action.UNKNOWN.value,
            "payload": {"message": CLASSIFICATION_FAILURE},
        }

    command = parse_command(raw)
    return {"success": True, **command.to_dict()}


@router.post("/conversations")
async def create_conversation():
    return conversation_to_dict(open_conversation())


@router.get("/conversations/{conversation_id}")
async def read_conversation(conversation_id: str):
    return conversation_to_dict(_lookup(conversation_id))


@router.post("/conversations/{conversation_id}/turns")
async def submit_turn(
    conversation_id: str,
    body: TurnRequest,
    classifier: IntentClassifier = Depends(get_classifier),
    endpoints: EndpointClient = Depends(get_endpoints),
    responder: Optional[AssistantResponder] = Depends(get_responder),
):
    conversation = _lookup(conversation_id)
    navigator = RecordingNavigator()
    loop = CommandLoop(
        conversation,
        classifier=classifier,
        endpoints=endpoints,
        navigator=navigator,
        responder=responder,
    )

    first_new = len(conversation.turns)
    try:
        result = await loop.handle_utterance(body.text, location=body.location)
    except TurnInFlightError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if result is None:
        raise HTTPException(status_code=400, detail="No transcript received.")

    return {
        "conversation_id": conversation.conversation_id,
        **result.command.to_dict(),
        "patient_id": result.context.patient_id,
        "outcome": outcome_to_dict(result.outcome),
        "navigation": navigation_to_dict(navigator.targets[-1] if navigator.targets else None),
        "call_suggestion": conversation.call_suggestion,
        "turns": [turn_to_dict(t) for t in conversation.turns[first_new:]],
    }
