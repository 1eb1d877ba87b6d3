import pytest

from voicecmd.models import Action
from voicecmd.pipeline.parser import PARSE_FAILURE, parse_command, strip_code_fences


@pytest.mark.parametrize("raw", [
    "",
    "not json at all",
    "Sure! Here is the JSON: {",
    "[1, 2, 3]",
    "42",
    "null",
    '"add_note"',
])
def test_malformed_replies_degrade_to_unknown(raw):
    command = parse_command(raw)
    assert command.action is Action.UNKNOWN


def test_non_json_reply_carries_parse_failure_message():
    command = parse_command("I think you want to add vitals")
    assert command.payload == {"message": PARSE_FAILURE}


def test_none_reply_does_not_raise():
    assert parse_command(None).action is Action.UNKNOWN


@pytest.mark.parametrize("raw", [
    '{"payload": {"text": "hello"}}',
    '{"action": null, "payload": {}}',
    '{"action": 12, "payload": {}}',
    '{"action": "launch_rockets", "payload": {}}',
])
def test_missing_or_invalid_action_is_unknown(raw):
    assert parse_command(raw).action is Action.UNKNOWN


def test_code_fences_are_stripped():
    raw = '```json\n{"action": "add_note", "payload": {"text": "worried about side effects"}}\n```'
    command = parse_command(raw)
    assert command.action is Action.ADD_NOTE
    assert command.payload == {"text": "worried about side effects"}


def test_bare_fences_are_stripped():
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_action_is_case_insensitive():
    command = parse_command('{"action": "GO_SUMMARY", "payload": {}}')
    assert command.action is Action.GO_SUMMARY


def test_non_object_payload_becomes_empty():
    command = parse_command('{"action": "go_scans", "payload": "nothing"}')
    assert command.action is Action.GO_SCANS
    assert command.payload == {}


def test_clear_history_defaults_mode():
    command = parse_command('{"action": "clear_history", "payload": {}}')
    assert command.payload["mode"] == "clear"


def test_clear_history_keeps_explicit_mode():
    command = parse_command('{"action": "clear_history", "payload": {"mode": "update"}}')
    assert command.payload["mode"] == "update"


def test_vital_signs_are_coerced_to_numbers():
    raw = (
        '{"action": "add_vital_signs", "payload": '
        '{"systolic": "120", "diastolic": 80, "heartRate": "90 bpm", '
        '"temperature": "37.5", "spo2": "96%"}}'
    )
    command = parse_command(raw)
    assert command.payload == {
        "systolic": 120,
        "diastolic": 80,
        "heartRate": 90,
        "temperature": 37.5,
        "spo2": 96,
        "weight": None,
    }


def test_unreadable_vital_becomes_null():
    command = parse_command('{"action": "add_vital_signs", "payload": {"systolic": "high", "diastolic": true}}')
    assert command.payload["systolic"] is None
    assert command.payload["diastolic"] is None


def test_parser_does_not_validate_semantics():
    command = parse_command('{"action": "add_allergy", "payload": {"severity": "Extreme"}}')
    assert command.action is Action.ADD_ALLERGY
    assert command.payload == {"severity": "Extreme"}


def test_undeclared_payload_fields_are_dropped():
    command = parse_command(
        '{"action": "add_note", "payload": {"text": "stable", "patientId": "p9", "confidence": 0.9}}'
    )
    assert command.payload == {"text": "stable"}


def test_actions_without_a_shape_keep_their_payload():
    command = parse_command('{"action": "go_summary", "payload": {"tab": "summary"}}')
    assert command.payload == {"tab": "summary"}
