import json
import logging
import re
from typing import Any, Dict

from voicecmd.models import VITAL_FIELDS, Action, Command, payload_fields

logger = logging.getLogger(__name__)

PARSE_FAILURE = "parse failure"

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def strip_code_fences(raw_text: str) -> str:
    text = (raw_text or "").strip()
    text = _LEADING_FENCE.sub("", text)
    text = _TRAILING_FENCE.sub("", text)
    return text.strip()


def _coerce_number(value: Any) -> Any:
    """'96%' -> 96, '37.5' -> 37.5; anything unreadable becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        match = _NUMBER.search(value)
        if not match:
            return None
        number = float(match.group())
        return int(number) if number.is_integer() else number
    return None


def _normalize_payload(action: Action, payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = payload_fields(action)
    if fields is None:
        out = dict(payload)
    else:
        dropped = sorted(set(payload) - fields)
        if dropped:
            logger.info("[INTENT] dropping undeclared %s fields: %s", action.value, dropped)
        out = {k: v for k, v in payload.items() if k in fields}

    if action is Action.ADD_VITAL_SIGNS:
        for name in VITAL_FIELDS:
            out[name] = _coerce_number(out.get(name))

    # classifier may omit the mode for a wipe
    if action is Action.CLEAR_HISTORY and not out.get("mode"):
        out["mode"] = "clear"

    return out


def parse_command(raw_text: str) -> Command:
    """
    Decode the classifier reply into a Command.
    Never raises; anything malformed becomes Action.UNKNOWN.
    """
    cleaned = strip_code_fences(raw_text)

    try:
        parsed = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        logger.warning("[INTENT] invalid json: %r", cleaned[:200])
        return Command(Action.UNKNOWN, {"message": PARSE_FAILURE})

    if not isinstance(parsed, dict):
        logger.warning("[INTENT] reply is not an object")
        return Command(Action.UNKNOWN, {"message": PARSE_FAILURE})

    action = Action.from_value(parsed.get("action"))
    if action is Action.UNKNOWN and parsed.get("action") not in (None, "unknown"):
        logger.warning("[INTENT] unrecognized action %r", parsed.get("action"))

    payload = parsed.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    return Command(action, _normalize_payload(action, payload))
