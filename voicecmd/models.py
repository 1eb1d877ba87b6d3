from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple, TypedDict


class Action(str, Enum):
    ADD_VITAL_SIGNS = "add_vital_signs"
    ADD_MEDICATION = "add_medication"
    PRESCRIBE_MEDICATION = "prescribe_medication"
    ADD_ALLERGY = "add_allergy"
    REMOVE_ALLERGY = "remove_allergy"
    ADD_CHRONIC_CONDITION = "add_chronic_condition"
    REMOVE_CHRONIC_CONDITION = "remove_chronic_condition"
    ADD_NOTE = "add_note"
    ADD_SOAP_NOTE = "add_soap_note"
    ADD_HISTORY = "add_history"
    UPDATE_HISTORY = "update_history"
    CLEAR_HISTORY = "clear_history"
    CREATE_REFERRAL = "create_referral"
    SUGGEST_SPECIALIST = "suggest_specialist"

    FIND_PATIENT = "find_patient"

    GO_DASHBOARD = "go_dashboard"
    GO_PATIENTS = "go_patients"
    GO_SUMMARY = "go_summary"
    GO_PERSONAL = "go_personal"
    GO_CLINICAL = "go_clinical"
    GO_HISTORY = "go_history"
    GO_INVESTIGATIONS = "go_investigations"
    GO_TREATMENT = "go_treatment"
    GO_SCANS = "go_scans"
    GO_VISITS = "go_visits"
    GO_REFERRAL = "go_referral"

    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: Any) -> "Action":
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN

    @property
    def is_navigation(self) -> bool:
        return self.value.startswith("go_")

    @property
    def is_write(self) -> bool:
        return self in WRITE_ACTIONS

    @property
    def nav_target(self) -> Optional[str]:
        if not self.is_navigation:
            return None
        return self.value[len("go_"):]


WRITE_ACTIONS = frozenset({
    Action.ADD_VITAL_SIGNS,
    Action.ADD_MEDICATION,
    Action.PRESCRIBE_MEDICATION,
    Action.ADD_ALLERGY,
    Action.REMOVE_ALLERGY,
    Action.ADD_CHRONIC_CONDITION,
    Action.REMOVE_CHRONIC_CONDITION,
    Action.ADD_NOTE,
    Action.ADD_SOAP_NOTE,
    Action.ADD_HISTORY,
    Action.UPDATE_HISTORY,
    Action.CLEAR_HISTORY,
    Action.CREATE_REFERRAL,
})

GLOBAL_NAV_TARGETS = {"dashboard": "/", "patients": "/patients"}

PATIENT_SECTIONS = (
    "summary",
    "personal",
    "clinical",
    "history",
    "investigations",
    "treatment",
    "scans",
    "visits",
    "referral",
)


# --------------------
# PAYLOAD SHAPES
# --------------------

class VitalSignsPayload(TypedDict, total=False):
    systolic: Optional[float]
    diastolic: Optional[float]
    heartRate: Optional[float]
    temperature: Optional[float]
    spo2: Optional[float]
    weight: Optional[float]


class AllergyPayload(TypedDict, total=False):
    allergen: str
    type: Literal["Drug", "Food", "Environmental", "Other"]
    severity: Literal["Mild", "Moderate", "Severe", "Life-Threatening"]
    reaction: str
    notes: Optional[str]
    intent: Literal["add", "remove"]


class ChronicConditionPayload(TypedDict, total=False):
    conditionName: str
    status: Literal["Active", "Controlled", "Remission", "Inactive"]
    diagnosisDate: Optional[str]
    notes: Optional[str]


class MedicationPayload(TypedDict, total=False):
    name: str
    dose: str
    route: str
    frequency: str
    duration: Optional[str]
    notes: Optional[str]


class NotePayload(TypedDict):
    text: str


class HistoryPayload(TypedDict, total=False):
    mode: Literal["append", "update", "clear"]
    text: str


class ReferralPayload(TypedDict, total=False):
    specialty: Optional[str]
    reason: Optional[str]


class SpecialistQuestionPayload(TypedDict):
    question: str


class FindPatientPayload(TypedDict):
    name: str


PAYLOAD_SHAPES: Dict[Action, type] = {
    Action.ADD_VITAL_SIGNS: VitalSignsPayload,
    Action.ADD_MEDICATION: MedicationPayload,
    Action.PRESCRIBE_MEDICATION: MedicationPayload,
    Action.ADD_ALLERGY: AllergyPayload,
    Action.REMOVE_ALLERGY: AllergyPayload,
    Action.ADD_CHRONIC_CONDITION: ChronicConditionPayload,
    Action.REMOVE_CHRONIC_CONDITION: ChronicConditionPayload,
    Action.ADD_NOTE: NotePayload,
    Action.ADD_SOAP_NOTE: NotePayload,
    Action.ADD_HISTORY: HistoryPayload,
    Action.UPDATE_HISTORY: HistoryPayload,
    Action.CLEAR_HISTORY: HistoryPayload,
    Action.CREATE_REFERRAL: ReferralPayload,
    Action.SUGGEST_SPECIALIST: SpecialistQuestionPayload,
    Action.FIND_PATIENT: FindPatientPayload,
}


def payload_fields(action: Action) -> Optional[FrozenSet[str]]:
    """Keys declared for the action's payload, or None when it has no shape."""
    shape = PAYLOAD_SHAPES.get(action)
    if shape is None:
        return None
    return frozenset(shape.__required_keys__ | shape.__optional_keys__)


VITAL_FIELDS = ("systolic", "diastolic", "heartRate", "temperature", "spo2", "weight")

# every listed field must be present and non-empty
REQUIRED_FIELDS: Dict[Action, Tuple[str, ...]] = {
    Action.ADD_MEDICATION: ("name",),
    Action.PRESCRIBE_MEDICATION: ("name",),
    Action.ADD_ALLERGY: ("allergen",),
    Action.REMOVE_ALLERGY: ("allergen",),
    Action.ADD_CHRONIC_CONDITION: ("conditionName",),
    Action.REMOVE_CHRONIC_CONDITION: ("conditionName",),
    Action.ADD_NOTE: ("text",),
    Action.ADD_SOAP_NOTE: ("text",),
    Action.ADD_HISTORY: ("text",),
    Action.UPDATE_HISTORY: ("text",),
    Action.CLEAR_HISTORY: ("mode",),
    Action.SUGGEST_SPECIALIST: ("question",),
    Action.FIND_PATIENT: ("name",),
}

# at least one of the listed fields must be present and non-empty
ANY_OF_FIELDS: Dict[Action, Tuple[str, ...]] = {
    Action.ADD_VITAL_SIGNS: VITAL_FIELDS,
    Action.CREATE_REFERRAL: ("specialty", "reason"),
}


def _filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


# --------------------
# COMMAND / OUTCOME
# --------------------

@dataclass(frozen=True)
class Command:
    action: Action
    payload: Dict[str, Any] = field(default_factory=dict)

    def missing_fields(self) -> List[str]:
        """
        Names of required payload fields that are absent or empty.
        An any-of group that is entirely empty is reported as "a/b/c".
        """
        missing = [
            name
            for name in REQUIRED_FIELDS.get(self.action, ())
            if not _filled(self.payload.get(name))
        ]

        group = ANY_OF_FIELDS.get(self.action)
        if group and not any(_filled(self.payload.get(name)) for name in group):
            missing.append("/".join(group))

        return missing

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "payload": dict(self.payload)}


@dataclass(frozen=True)
class NavigationTarget:
    path: str
    query: Dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        if not self.query:
            return self.path
        qs = "&".join(f"{k}={v}" for k, v in self.query.items())
        return f"{self.path}?{qs}"


OutcomeKind = Literal[
    "mutation",
    "navigation",
    "lookup",
    "suggestion",
    "reply",
    "refusal",
    "incomplete",
    "not_understood",
    "unsupported",
    "error",
]


@dataclass(frozen=True)
class DispatchOutcome:
    success: bool
    kind: OutcomeKind
    message: Optional[str] = None
    error: Optional[str] = None
    navigation: Optional[NavigationTarget] = None


class LookupMatch(TypedDict):
    id: str
    name: str


class MutationResult(TypedDict, total=False):
    success: bool
    error: Optional[str]


class Specialist(TypedDict, total=False):
    id: str
    name: str
    role: str
    contact: str
    description: Optional[str]
