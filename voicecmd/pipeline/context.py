import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

_PATIENT_SEGMENT = re.compile(r"(?:^|/)patients/([^/]+)")


@dataclass(frozen=True)
class PatientContext:
    location: str
    patient_id: Optional[str] = None

    @property
    def has_patient(self) -> bool:
        return self.patient_id is not None


def resolve_context(location: Optional[str]) -> PatientContext:
    """
    Patient record currently open, read from the navigation location.
    Accepts a bare path or a full URL; query and fragment are ignored.
    """
    location = location or "/"
    path = urlsplit(location).path
    match = _PATIENT_SEGMENT.search(path)
    patient_id = unquote(match.group(1)) if match else None
    return PatientContext(location=location, patient_id=patient_id or None)
