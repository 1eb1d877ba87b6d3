import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from voicecmd.api.commands import (
    get_classifier,
    get_endpoints,
    get_responder,
    outcome_to_dict,
    navigation_to_dict,
    turn_to_dict,
)
from voicecmd.asr.capture import CaptureConfig, SpeechCaptureController
from voicecmd.asr.vosk_adapter import vosk_recognizer_factory
from voicecmd.config import settings
from voicecmd.core.session_models import ConversationTurn
from voicecmd.errors import CaptureError, TurnInFlightError
from voicecmd.llm.gemini import AssistantResponder, IntentClassifier
from voicecmd.models import NavigationTarget
from voicecmd.pipeline.endpoints import EndpointClient
from voicecmd.pipeline.feedback import CommandLoop
from voicecmd.storage.session_registry import close_conversation, open_conversation

logger = logging.getLogger(__name__)

ws_router = APIRouter()


class WebSocketNavigator:
    def __init__(self, ws: WebSocket):
        self.ws = ws

    async def navigate(self, target: NavigationTarget) -> None:
        await self.ws.send_json({"type": "navigate", **navigation_to_dict(target)})


def _parse_control(raw: str) -> Dict[str, Any]:
    raw = raw.strip()
    # frontend may send a bare "start" / "stop"
    if raw in ("start", "stop"):
        return {"type": raw}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return {"type": "text", "text": raw}
    return payload if isinstance(payload, dict) else {}


@ws_router.websocket("/ws/assistant")
async def assistant_socket(
    ws: WebSocket,
    classifier: IntentClassifier = Depends(get_classifier),
    endpoints: EndpointClient = Depends(get_endpoints),
    responder: Optional[AssistantResponder] = Depends(get_responder),
):
    await ws.accept()

    conversation = open_conversation()

    # --------------------
    # CAPTURE EVENTS
    # --------------------

    outbox: List[Dict[str, Any]] = []

    def on_error(error: CaptureError):
        outbox.append({"type": "capture_error", "code": error.code, "message": str(error)})

    def on_notice(notice: str):
        outbox.append({"type": "notice", "message": notice})

    def on_final(segment: str):
        outbox.append({"type": "segment", "text": segment})

    controller = SpeechCaptureController(
        vosk_recognizer_factory(),
        CaptureConfig(language=settings.SPEECH_LANGUAGE),
        on_error=on_error,
        on_notice=on_notice,
        on_final=on_final,
    )

    async def flush():
        while outbox:
            await ws.send_json(outbox.pop(0))

    async def send_token(turn: ConversationTurn, token: str):
        await ws.send_json({"type": "token", "turn_id": turn.turn_id, "text": token})

    loop = CommandLoop(
        conversation,
        classifier=classifier,
        endpoints=endpoints,
        navigator=WebSocketNavigator(ws),
        responder=responder,
        on_token=send_token,
    )

    async def run_turn(text: str):
        try:
            result = await loop.handle_utterance(text)
        except TurnInFlightError as e:
            logger.info("[ASSISTANT] turn rejected: %s", e)
            await ws.send_json({"type": "busy", "message": str(e)})
            return
        if result is None:
            return
        await ws.send_json({
            "type": "turn",
            **result.command.to_dict(),
            "outcome": outcome_to_dict(result.outcome),
            "turn": turn_to_dict(result.turn),
            "call_suggestion": conversation.call_suggestion,
        })

    await ws.send_json({
        "type": "welcome",
        "conversation_id": conversation.conversation_id,
        "turns": [turn_to_dict(t) for t in conversation.turns],
    })

    # --------------------
    # MAIN LOOP
    # --------------------

    try:
        while True:
            msg = await ws.receive()

            if msg.get("type") == "websocket.disconnect":
                break

            if msg.get("bytes"):
                handle = controller.handle
                if controller.listening and hasattr(handle, "feed"):
                    before = controller.transcript.interim
                    handle.feed(msg["bytes"])
                    interim = controller.transcript.interim
                    if interim and interim != before:
                        outbox.append({"type": "partial", "text": interim})
                await flush()
                continue

            if not msg.get("text"):
                continue

            control = _parse_control(msg["text"])
            kind = control.get("type")

            if kind == "start":
                started = controller.start()
                await flush()
                await ws.send_json({"type": "state", "state": controller.state.value, "started": started})

            elif kind == "stop":
                text = controller.stop()
                await flush()
                await ws.send_json({"type": "state", "state": controller.state.value})
                await ws.send_json({"type": "transcript", "text": text})
                await run_turn(text)

            elif kind == "end":
                handle = controller.handle
                if hasattr(handle, "end"):
                    handle.end()
                await flush()
                await ws.send_json({"type": "state", "state": controller.state.value})

            elif kind == "error":
                # microphone failures are detected by the client that owns the mic
                handle = controller.handle
                if hasattr(handle, "fail"):
                    handle.fail(str(control.get("code") or "aborted"))
                await flush()
                await ws.send_json({"type": "state", "state": controller.state.value})

            elif kind == "location":
                conversation.location = str(control.get("path") or "/")

            elif kind == "text":
                await run_turn(str(control.get("text") or ""))

    except WebSocketDisconnect:
        pass
    finally:
        controller.stop()
        close_conversation(conversation.conversation_id)
