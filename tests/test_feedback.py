import asyncio

import pytest

from conftest import FakeClassifier, FakeEndpoints, FakeResponder
from voicecmd.errors import ClassificationError, EndpointError, TurnInFlightError
from voicecmd.models import WRITE_ACTIONS, Action
from voicecmd.pipeline.feedback import (
    CONNECTION_LOST_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    CommandLoop,
)
from voicecmd.pipeline.router import NEED_PATIENT_MESSAGE, NOT_UNDERSTOOD_MESSAGE


def assistant_turns(conversation):
    return [t for t in conversation.turns if t.role == "assistant"]


async def test_successful_write_reports_once(make_loop, conversation):
    endpoints = FakeEndpoints(mutation={"success": True})
    loop = make_loop(
        {"action": "add_allergy", "payload": {"allergen": "Penicillin", "severity": "Severe"}},
        endpoints=endpoints,
    )

    result = await loop.handle_utterance("add penicillin allergy", location="/patients/p1")

    assert endpoints.mutations == [(
        "/api/voice/add-allergy",
        {"patientId": "p1", "payload": {"allergen": "Penicillin", "severity": "Severe"}},
    )]
    assert result.outcome.success
    assert [t.content for t in assistant_turns(conversation)] == ["Allergy added successfully."]
    assert [t.role for t in conversation.turns] == ["user", "assistant"]


@pytest.mark.parametrize("action", sorted(WRITE_ACTIONS, key=lambda a: a.value))
async def test_write_without_patient_never_calls_endpoint(make_loop, conversation, action):
    endpoints = FakeEndpoints()
    loop = make_loop({"action": action.value, "payload": {"text": "x", "name": "y"}}, endpoints=endpoints)

    await loop.handle_utterance("do it", location="/dashboard")

    assert endpoints.mutations == []
    replies = assistant_turns(conversation)
    assert len(replies) == 1
    assert replies[0].content == NEED_PATIENT_MESSAGE


async def test_clear_history_with_empty_payload_dispatches_clear_mode(make_loop):
    endpoints = FakeEndpoints()
    loop = make_loop({"action": "clear_history", "payload": {}}, endpoints=endpoints)

    await loop.handle_utterance("clear the history section", location="/patients/p1")

    (endpoint, body), = endpoints.mutations
    assert endpoint == "/api/voice/add-history"
    assert body["payload"]["mode"] == "clear"


async def test_endpoint_failure_is_reported_verbatim(make_loop, conversation):
    endpoints = FakeEndpoints(mutation={"success": False, "error": "Allergen already recorded"})
    loop = make_loop({"action": "add_allergy", "payload": {"allergen": "Peanuts"}}, endpoints=endpoints)

    result = await loop.handle_utterance("peanut allergy", location="/patients/p1")

    assert not result.outcome.success
    assert assistant_turns(conversation)[-1].content == "Error recording data: Allergen already recorded"


async def test_endpoint_failure_without_reason_is_generic(make_loop, conversation):
    loop = make_loop(
        {"action": "add_note", "payload": {"text": "hello"}},
        endpoints=FakeEndpoints(mutation={"success": False}),
    )
    await loop.handle_utterance("note hello", location="/patients/p1")
    assert assistant_turns(conversation)[-1].content == "Error recording data: Missing required data."


async def test_unreachable_endpoint_still_produces_a_turn(make_loop, conversation):
    endpoints = FakeEndpoints(error=EndpointError("Could not reach /api/voice/add-note."))
    loop = make_loop({"action": "add_note", "payload": {"text": "hello"}}, endpoints=endpoints)

    result = await loop.handle_utterance("note hello", location="/patients/p1")

    assert result.outcome.kind == "error"
    assert len(assistant_turns(conversation)) == 1
    assert "Could not reach" in assistant_turns(conversation)[0].content


async def test_find_patient_no_match(make_loop, conversation, navigator):
    endpoints = FakeEndpoints(matches=[])
    loop = make_loop({"action": "find_patient", "payload": {"name": "Zed Quux"}}, endpoints=endpoints)

    await loop.handle_utterance("find patient zed quux")

    assert endpoints.searches == ["Zed Quux"]
    assert navigator.targets == []
    replies = assistant_turns(conversation)
    assert len(replies) == 1
    assert "Zed Quux" in replies[0].content


async def test_find_patient_single_match_navigates(make_loop, conversation, navigator):
    endpoints = FakeEndpoints(matches=[{"id": "p42", "name": "John Smith"}])
    loop = make_loop({"action": "find_patient", "payload": {"name": "John Smith"}}, endpoints=endpoints)

    await loop.handle_utterance("find patient john smith")

    assert [t.path for t in navigator.targets] == ["/patients/p42"]
    replies = assistant_turns(conversation)
    assert [r.content for r in replies] == ["Opening patient John Smith."]


async def test_find_patient_many_matches_opens_directory(make_loop, navigator):
    endpoints = FakeEndpoints(matches=[{"id": "1", "name": "Ann A"}, {"id": "2", "name": "Ann B"}])
    loop = make_loop({"action": "find_patient", "payload": {"name": "Ann"}}, endpoints=endpoints)

    result = await loop.handle_utterance("find ann")

    assert [t.path for t in navigator.targets] == ["/patients"]
    assert result.outcome.message == "Multiple matches found. Showing patient directory."


async def test_go_summary_with_patient(make_loop, conversation, navigator):
    loop = make_loop({"action": "go_summary", "payload": {}})

    await loop.handle_utterance("go to summary", location="/patients/p1?tab=history")

    assert len(navigator.targets) == 1
    assert navigator.targets[0].path == "/patients/p1"
    assert navigator.targets[0].query == {"tab": "summary"}
    assert len(assistant_turns(conversation)) == 1


async def test_go_summary_without_patient(make_loop, conversation, navigator):
    loop = make_loop({"action": "go_summary", "payload": {}})

    await loop.handle_utterance("go to summary", location="/")

    assert navigator.targets == []
    replies = assistant_turns(conversation)
    assert len(replies) == 1
    assert "select a patient" in replies[0].content


async def test_context_is_recomputed_each_turn(make_loop, navigator):
    loop = make_loop({"action": "go_visits", "payload": {}})

    await loop.handle_utterance("visits", location="/patients/a")
    await loop.handle_utterance("visits", location="/patients/b")

    assert [t.path for t in navigator.targets] == ["/patients/a", "/patients/b"]


async def test_malformed_classifier_reply_is_not_understood(make_loop, conversation):
    loop = make_loop("```json\n{oops\n```")

    result = await loop.handle_utterance("blah")

    assert result.command.action is Action.UNKNOWN
    assert assistant_turns(conversation)[-1].content == NOT_UNDERSTOOD_MESSAGE


async def test_classification_failure_degrades_to_unknown(make_loop, conversation):
    endpoints = FakeEndpoints()
    loop = make_loop(error=ClassificationError("network down"), endpoints=endpoints)

    result = await loop.handle_utterance("add bp 120 over 80", location="/patients/p1")

    assert result.command.action is Action.UNKNOWN
    assert endpoints.mutations == []
    assert len(assistant_turns(conversation)) == 1


async def test_unexpected_exception_still_produces_a_turn(make_loop, conversation, navigator):
    async def explode(target):
        raise RuntimeError("router gone")

    navigator.navigate = explode
    loop = make_loop({"action": "go_dashboard", "payload": {}})

    result = await loop.handle_utterance("dashboard")

    assert result.outcome.kind == "error"
    assert [t.content for t in assistant_turns(conversation)] == [UNEXPECTED_ERROR_MESSAGE]
    assert not conversation.in_flight


async def test_blank_input_is_ignored(make_loop, conversation):
    loop = make_loop({"action": "go_dashboard", "payload": {}})
    assert await loop.handle_utterance("   ") is None
    assert conversation.turns == []


async def test_overlapping_turn_is_rejected(conversation, navigator):
    gate = asyncio.Event()

    class SlowClassifier(FakeClassifier):
        async def aclassify(self, transcript):
            await gate.wait()
            return '{"action": "go_dashboard", "payload": {}}'

    loop = CommandLoop(conversation, SlowClassifier(), FakeEndpoints(), navigator, free_text=False)

    first = asyncio.create_task(loop.handle_utterance("dashboard"))
    await asyncio.sleep(0)
    assert loop.busy

    with pytest.raises(TurnInFlightError):
        await loop.handle_utterance("dashboard again")

    gate.set()
    await first
    assert not loop.busy
    assert len(assistant_turns(conversation)) == 1


async def test_unknown_streams_free_text_reply(make_loop, conversation):
    endpoints = FakeEndpoints(specialists=[{"id": "s1", "name": "Dr Sanjay Maharaj", "role": "Cardiologist"}])
    responder = FakeResponder(["You could ", "call Sanjay Maharaj ", "today."])
    loop = make_loop({"action": "unknown", "payload": {}}, endpoints=endpoints, responder=responder, free_text=True)

    result = await loop.handle_utterance("who handles heart failure?")

    replies = assistant_turns(conversation)
    assert len(replies) == 1
    assert replies[0].content == "You could call Sanjay Maharaj today."
    assert not replies[0].streaming
    assert result.outcome.kind == "reply"
    assert conversation.call_suggestion["id"] == "s1"


async def test_stream_failure_is_visible(make_loop, conversation):
    responder = FakeResponder(["Partial answer"], fail_after=1)
    responder.tokens = ["Partial answer", "never"]
    loop = make_loop({"action": "unknown", "payload": {}}, responder=responder, free_text=True)

    result = await loop.handle_utterance("question")

    replies = assistant_turns(conversation)
    assert len(replies) == 1
    assert replies[0].content.startswith("Partial answer")
    assert CONNECTION_LOST_MESSAGE in replies[0].content
    assert not result.outcome.success


async def test_suggest_specialist(make_loop, conversation):
    endpoints = FakeEndpoints(specialist_name="Cardiologist")
    loop = make_loop({"action": "suggest_specialist", "payload": {"question": "uncontrolled heart failure"}},
                     endpoints=endpoints)

    await loop.handle_utterance("which specialist for heart failure")

    assert assistant_turns(conversation)[-1].content == "Suggested specialist: Cardiologist."


async def test_classifier_crash_still_produces_one_turn(make_loop, conversation):
    endpoints = FakeEndpoints()
    loop = make_loop(error=RuntimeError("client bug"), endpoints=endpoints)

    result = await loop.handle_utterance("add a note", location="/patients/p1")

    assert result.command.action is Action.UNKNOWN
    assert result.context.patient_id is None
    assert result.outcome.kind == "error"
    assert endpoints.mutations == []
    assert [t.role for t in conversation.turns] == ["user", "assistant"]
    assert conversation.turns[-1].content == UNEXPECTED_ERROR_MESSAGE
    assert not loop.busy
