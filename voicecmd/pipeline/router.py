"""
Dispatch table.

plan_dispatch() is pure: it turns a Command plus the resolved PatientContext
into exactly one DispatchPlan. The feedback loop performs the (at most one)
side effect the plan describes.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import quote

from voicecmd.models import (
    GLOBAL_NAV_TARGETS,
    PATIENT_SECTIONS,
    Action,
    Command,
    DispatchOutcome,
    LookupMatch,
    NavigationTarget,
)
from voicecmd.pipeline.context import PatientContext

logger = logging.getLogger(__name__)

# --------------------
# MESSAGES
# --------------------

NEED_PATIENT_MESSAGE = (
    "I need to know which patient you're referring to first. "
    "Try saying “Find patient [Name]”."
)
NOT_UNDERSTOOD_MESSAGE = "Sorry, I didn't understand that command. Please try rephrasing it."
NOT_SUPPORTED_MESSAGE = "That command is not yet supported."
MULTIPLE_MATCHES_MESSAGE = "Multiple matches found. Showing patient directory."

# every write action routes to exactly one endpoint
WRITE_TARGETS: Dict[Action, str] = {
    Action.ADD_VITAL_SIGNS: "/api/voice/add-vitals",
    Action.ADD_MEDICATION: "/api/voice/add-medication",
    Action.PRESCRIBE_MEDICATION: "/api/voice/add-medication",
    Action.ADD_ALLERGY: "/api/voice/add-allergy",
    Action.REMOVE_ALLERGY: "/api/voice/remove-allergy",
    Action.ADD_CHRONIC_CONDITION: "/api/voice/add-chronic",
    Action.REMOVE_CHRONIC_CONDITION: "/api/voice/remove-chronic",
    Action.ADD_NOTE: "/api/voice/add-note",
    Action.ADD_SOAP_NOTE: "/api/voice/add-soap",
    Action.ADD_HISTORY: "/api/voice/add-history",
    Action.UPDATE_HISTORY: "/api/voice/add-history",
    Action.CLEAR_HISTORY: "/api/voice/add-history",
    Action.CREATE_REFERRAL: "/api/voice/add-referral",
}

SUCCESS_MESSAGES: Dict[Action, str] = {
    Action.ADD_VITAL_SIGNS: "Vital signs recorded successfully.",
    Action.ADD_MEDICATION: "Medication added successfully.",
    Action.PRESCRIBE_MEDICATION: "Medication prescribed successfully.",
    Action.ADD_ALLERGY: "Allergy added successfully.",
    Action.REMOVE_ALLERGY: "Allergy removed successfully.",
    Action.ADD_CHRONIC_CONDITION: "Chronic condition added successfully.",
    Action.REMOVE_CHRONIC_CONDITION: "Chronic condition removed successfully.",
    Action.ADD_NOTE: "Note added successfully.",
    Action.ADD_SOAP_NOTE: "SOAP note added successfully.",
    Action.ADD_HISTORY: "History added successfully.",
    Action.UPDATE_HISTORY: "Updated history successfully.",
    Action.CLEAR_HISTORY: "History section cleared successfully.",
    Action.CREATE_REFERRAL: "New referral created successfully.",
}


# --------------------
# PLANS
# --------------------

@dataclass(frozen=True)
class MutationPlan:
    action: Action
    endpoint: str
    body: Dict[str, Any]
    success_message: str


@dataclass(frozen=True)
class NavigationPlan:
    target: NavigationTarget
    message: str


@dataclass(frozen=True)
class LookupPlan:
    name: str


@dataclass(frozen=True)
class SpecialistPlan:
    question: str


@dataclass(frozen=True)
class ReplyPlan:
    """Terminal answer with no side effect."""
    outcome: DispatchOutcome = field(
        default_factory=lambda: DispatchOutcome(False, "not_understood", NOT_UNDERSTOOD_MESSAGE)
    )


DispatchPlan = Union[MutationPlan, NavigationPlan, LookupPlan, SpecialistPlan, ReplyPlan]


def _incomplete(command: Command, missing: List[str]) -> ReplyPlan:
    label = command.action.value.replace("_", " ")
    return ReplyPlan(DispatchOutcome(
        success=False,
        kind="incomplete",
        message=f"I couldn't complete “{label}”: missing {', '.join(missing)}.",
        error="Missing required data.",
    ))


def section_label(section: str) -> str:
    return section[:1].upper() + section[1:]


# --------------------
# HANDLERS
# --------------------

def _plan_write(command: Command, context: PatientContext) -> DispatchPlan:
    if not context.has_patient:
        return ReplyPlan(DispatchOutcome(False, "refusal", NEED_PATIENT_MESSAGE))

    endpoint = WRITE_TARGETS.get(command.action)
    if endpoint is None:
        return ReplyPlan(DispatchOutcome(False, "unsupported", NOT_SUPPORTED_MESSAGE))

    payload = dict(command.payload)
    if command.action is Action.CLEAR_HISTORY and not payload.get("mode"):
        payload["mode"] = "clear"
        command = Command(command.action, payload)

    missing = command.missing_fields()
    if missing:
        return _incomplete(command, missing)

    return MutationPlan(
        action=command.action,
        endpoint=endpoint,
        body={"patientId": context.patient_id, "payload": payload},
        success_message=SUCCESS_MESSAGES.get(command.action, "Saved successfully."),
    )


def _plan_navigation(command: Command, context: PatientContext) -> DispatchPlan:
    section = command.action.nav_target or ""

    if section in GLOBAL_NAV_TARGETS:
        target = NavigationTarget(GLOBAL_NAV_TARGETS[section])
    elif section not in PATIENT_SECTIONS:
        return ReplyPlan(DispatchOutcome(False, "unsupported", NOT_SUPPORTED_MESSAGE))
    elif context.has_patient:
        target = NavigationTarget(
            f"/patients/{quote(context.patient_id, safe='')}",
            {"tab": section},
        )
    else:
        return ReplyPlan(DispatchOutcome(
            False,
            "refusal",
            f"To navigate to the {section} section, please select a patient first.",
        ))

    return NavigationPlan(target, f"Navigating to the {section_label(section)} section.")


def _plan_find_patient(command: Command, context: PatientContext) -> DispatchPlan:
    missing = command.missing_fields()
    if missing:
        return _incomplete(command, missing)
    return LookupPlan(name=str(command.payload["name"]).strip())


def _plan_specialist(command: Command, context: PatientContext) -> DispatchPlan:
    missing = command.missing_fields()
    if missing:
        return _incomplete(command, missing)
    return SpecialistPlan(question=str(command.payload["question"]).strip())


def _plan_unknown(command: Command, context: PatientContext) -> DispatchPlan:
    return ReplyPlan()


Handler = Callable[[Command, PatientContext], DispatchPlan]

ROUTES: Dict[Action, Handler] = {}
for _action in Action:
    if _action.is_write:
        ROUTES[_action] = _plan_write
    elif _action.is_navigation:
        ROUTES[_action] = _plan_navigation
ROUTES[Action.FIND_PATIENT] = _plan_find_patient
ROUTES[Action.SUGGEST_SPECIALIST] = _plan_specialist
ROUTES[Action.UNKNOWN] = _plan_unknown


def plan_dispatch(command: Command, context: PatientContext) -> DispatchPlan:
    handler = ROUTES.get(command.action)
    if handler is None:
        logger.warning("[DISPATCH] no route for %s", command.action)
        return ReplyPlan()
    plan = handler(command, context)
    logger.info("[DISPATCH] %s -> %s", command.action.value, type(plan).__name__)
    return plan


# --------------------
# RESULT INTERPRETATION
# --------------------

def resolve_lookup(name: str, matches: List[LookupMatch]) -> DispatchOutcome:
    if not matches:
        return DispatchOutcome(False, "lookup", f"No patient found matching “{name}”.")

    if len(matches) == 1:
        match = matches[0]
        return DispatchOutcome(
            True,
            "navigation",
            f"Opening patient {match.get('name') or name}.",
            navigation=NavigationTarget(f"/patients/{quote(str(match['id']), safe='')}"),
        )

    return DispatchOutcome(
        True,
        "navigation",
        MULTIPLE_MATCHES_MESSAGE,
        navigation=NavigationTarget(GLOBAL_NAV_TARGETS["patients"]),
    )


def resolve_specialist(question: str, specialist: Optional[str]) -> DispatchOutcome:
    if not specialist:
        return DispatchOutcome(False, "suggestion", f"I couldn't suggest a specialist for “{question}”.")
    return DispatchOutcome(True, "suggestion", f"Suggested specialist: {specialist}.")
