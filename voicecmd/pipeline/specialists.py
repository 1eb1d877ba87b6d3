import re
from typing import List, Optional

from voicecmd.models import Specialist

_CALL_VERBS = ("call", "phone")
_TITLE = re.compile(r"^dr\.?\s+")


def find_specialist_mention(
    message: str,
    specialists: List[Specialist],
) -> Optional[Specialist]:
    """
    Best-effort scan of an assistant reply for "call Dr X" / "phone Dr X".
    Returns the first directory entry mentioned, or None.
    """
    if not message or not specialists:
        return None

    lower = message.lower()
    if not any(verb in lower for verb in _CALL_VERBS):
        return None

    for specialist in specialists:
        name = (specialist.get("name") or "").strip().lower()
        if not name:
            continue
        bare = _TITLE.sub("", name)
        if name in lower or (bare and bare in lower):
            return specialist

    return None


def specialists_hint(specialists: List[Specialist]) -> str:
    return "\n".join(
        f"- {s.get('name')} ({s.get('role') or 'specialist'})"
        for s in specialists
        if s.get("name")
    )
