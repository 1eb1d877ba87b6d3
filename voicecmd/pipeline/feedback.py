"""
Execution & feedback loop.

One call to CommandLoop.handle_utterance() is one turn: the user turn is
appended, the utterance is classified, parsed, routed against the patient
context resolved for this turn, the plan is executed, and exactly one
assistant turn reports the outcome.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from voicecmd.config import settings
from voicecmd.core.session_models import Conversation, ConversationTurn
from voicecmd.errors import ClassificationError, EndpointError, TurnInFlightError
from voicecmd.llm.gemini import AssistantResponder, IntentClassifier
from voicecmd.models import Action, Command, DispatchOutcome, NavigationTarget, Specialist
from voicecmd.pipeline.context import PatientContext, resolve_context
from voicecmd.pipeline.endpoints import EndpointClient
from voicecmd.pipeline.parser import parse_command
from voicecmd.pipeline.router import (
    LookupPlan,
    MutationPlan,
    NavigationPlan,
    ReplyPlan,
    SpecialistPlan,
    DispatchPlan,
    plan_dispatch,
    resolve_lookup,
    resolve_specialist,
)
from voicecmd.pipeline.specialists import find_specialist_mention, specialists_hint

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = (
    "An unexpected error occurred during command processing. Check your network."
)
CONNECTION_LOST_MESSAGE = "Connection lost. Please try again."
CLASSIFICATION_FAILURE = "classification failure"


class Navigator(Protocol):
    async def navigate(self, target: NavigationTarget) -> None: ...


TokenListener = Callable[[ConversationTurn, str], Awaitable[None]]


@dataclass
class TurnResult:
    command: Command
    context: PatientContext
    outcome: DispatchOutcome
    turn: ConversationTurn


class CommandLoop:
    def __init__(
        self,
        conversation: Conversation,
        classifier: IntentClassifier,
        endpoints: EndpointClient,
        navigator: Navigator,
        responder: Optional[AssistantResponder] = None,
        free_text: Optional[bool] = None,
        on_token: Optional[TokenListener] = None,
    ):
        self.conversation = conversation
        self.classifier = classifier
        self.endpoints = endpoints
        self.navigator = navigator
        self.responder = responder
        self.free_text = settings.ASSISTANT_FREE_TEXT if free_text is None else free_text
        self.on_token = on_token
        self._specialists: Optional[List[Specialist]] = None

    @property
    def busy(self) -> bool:
        return self.conversation.in_flight

    async def handle_utterance(self, text: str, location: Optional[str] = None) -> Optional[TurnResult]:
        """
        Run one turn. Blank input is ignored and returns None.
        Raises TurnInFlightError if the previous turn has not finished.
        """
        text = (text or "").strip()
        if not text:
            return None

        if self.conversation.in_flight:
            raise TurnInFlightError("A command is already being processed.")

        self.conversation.in_flight = True
        try:
            if location is not None:
                self.conversation.location = location
            self.conversation.append("user", text)
            return await self._run_turn(text)
        finally:
            self.conversation.in_flight = False

    async def _run_turn(self, text: str) -> TurnResult:
        turns_before = len(self.conversation.turns)
        context = PatientContext(location=self.conversation.location)
        command = Command(Action.UNKNOWN)

        try:
            context = resolve_context(self.conversation.location)
            command = await self._classify(text)
            plan = plan_dispatch(command, context)
            outcome, turn = await self._execute(plan, text)
        except Exception:
            logger.exception("[DISPATCH] fatal error while executing %s", command.action.value)
            outcome = DispatchOutcome(False, "error", UNEXPECTED_ERROR_MESSAGE, error="unexpected")
            if len(self.conversation.turns) > turns_before:
                # a streaming placeholder already exists for this turn
                turn = self.conversation.turns[-1]
                turn.content = UNEXPECTED_ERROR_MESSAGE
                turn.streaming = False
            else:
                turn = self.conversation.append("assistant", UNEXPECTED_ERROR_MESSAGE)

        return TurnResult(command=command, context=context, outcome=outcome, turn=turn)

    async def _classify(self, text: str) -> Command:
        try:
            raw = await self.classifier.aclassify(text)
        except ClassificationError as e:
            logger.warning("[INTENT] classification failed: %s", e)
            return Command(Action.UNKNOWN, {"message": CLASSIFICATION_FAILURE})
        return parse_command(raw)

    # --------------------
    # EXECUTION
    # --------------------

    async def _execute(self, plan: DispatchPlan, text: str):
        if isinstance(plan, MutationPlan):
            outcome = await self._mutate(plan)
        elif isinstance(plan, NavigationPlan):
            await self.navigator.navigate(plan.target)
            outcome = DispatchOutcome(True, "navigation", plan.message, navigation=plan.target)
        elif isinstance(plan, LookupPlan):
            outcome = await self._lookup(plan)
        elif isinstance(plan, SpecialistPlan):
            outcome = await self._suggest(plan)
        elif isinstance(plan, ReplyPlan):
            if plan.outcome.kind == "not_understood" and self.free_text and self.responder:
                return await self._stream_reply(text)
            outcome = plan.outcome
        else:
            raise TypeError(f"unhandled plan {plan!r}")

        turn = self.conversation.append("assistant", outcome.message or "")
        return outcome, turn

    async def _mutate(self, plan: MutationPlan) -> DispatchOutcome:
        try:
            result = await self.endpoints.mutate(plan.endpoint, plan.body)
        except EndpointError as e:
            return DispatchOutcome(False, "error", f"Error recording data: {e.detail}", error=e.detail)

        if result.get("success"):
            logger.info("[DISPATCH] %s saved", plan.action.value)
            return DispatchOutcome(True, "mutation", plan.success_message)

        reason = result.get("error") or "Missing required data."
        return DispatchOutcome(False, "error", f"Error recording data: {reason}", error=reason)

    async def _lookup(self, plan: LookupPlan) -> DispatchOutcome:
        try:
            matches = await self.endpoints.search_patients(plan.name)
        except EndpointError as e:
            return DispatchOutcome(False, "error", f"Patient search failed: {e.detail}", error=e.detail)

        outcome = resolve_lookup(plan.name, matches)
        if outcome.navigation is not None:
            await self.navigator.navigate(outcome.navigation)
        return outcome

    async def _suggest(self, plan: SpecialistPlan) -> DispatchOutcome:
        try:
            specialist = await self.endpoints.match_specialist(plan.question)
        except EndpointError as e:
            return DispatchOutcome(False, "error", f"Specialist lookup failed: {e.detail}", error=e.detail)
        return resolve_specialist(plan.question, specialist)

    async def _stream_reply(self, text: str):
        specialists = await self.load_specialists()
        placeholder = self.conversation.append("assistant", "", streaming=True)

        try:
            async for token in self.responder.stream_reply(text, specialists_hint(specialists)):
                placeholder.content += token
                if self.on_token:
                    await self.on_token(placeholder, token)
        except ClassificationError:
            if placeholder.content:
                placeholder.content += f"\n\n{CONNECTION_LOST_MESSAGE}"
            else:
                placeholder.content = CONNECTION_LOST_MESSAGE
            placeholder.streaming = False
            return DispatchOutcome(False, "error", placeholder.content, error="stream_failed"), placeholder

        placeholder.streaming = False
        self.scan_for_call(placeholder.content, specialists)
        return DispatchOutcome(True, "reply", placeholder.content), placeholder

    # --------------------
    # CALL-NOW AFFORDANCE
    # --------------------

    async def load_specialists(self) -> List[Specialist]:
        if self._specialists is None:
            try:
                self._specialists = await self.endpoints.list_specialists()
            except EndpointError as e:
                logger.warning("[ASSISTANT] specialists directory unavailable: %s", e)
                self._specialists = []
        return self._specialists

    def scan_for_call(self, message: str, specialists: List[Specialist]) -> Optional[Specialist]:
        match = find_specialist_mention(message, specialists)
        self.conversation.call_suggestion = dict(match) if match else None
        return match
