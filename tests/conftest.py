import json
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from main import app
from voicecmd.api.commands import get_classifier, get_endpoints, get_responder
from voicecmd.core.session_models import new_conversation
from voicecmd.errors import ClassificationError, EndpointError
from voicecmd.pipeline.feedback import CommandLoop


class FakeClassifier:
    def __init__(self, reply: Any = None, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[str] = []

    async def aclassify(self, transcript: str) -> str:
        self.calls.append(transcript)
        if self.error:
            raise self.error
        if isinstance(self.reply, dict):
            return json.dumps(self.reply)
        return self.reply


class FakeEndpoints:
    def __init__(
        self,
        mutation: Optional[Dict[str, Any]] = None,
        matches: Optional[List[Dict[str, str]]] = None,
        specialists: Optional[List[Dict[str, str]]] = None,
        specialist_name: Optional[str] = None,
        error: Optional[EndpointError] = None,
    ):
        self.mutation = mutation if mutation is not None else {"success": True}
        self.matches = matches or []
        self.specialists = specialists or []
        self.specialist_name = specialist_name
        self.error = error
        self.mutations: List[tuple] = []
        self.searches: List[str] = []

    async def mutate(self, endpoint, body):
        self.mutations.append((endpoint, body))
        if self.error:
            raise self.error
        return self.mutation

    async def search_patients(self, name):
        self.searches.append(name)
        if self.error:
            raise self.error
        return self.matches

    async def list_specialists(self):
        return self.specialists

    async def match_specialist(self, question):
        if self.error:
            raise self.error
        return self.specialist_name


class FakeNavigator:
    def __init__(self):
        self.targets = []

    async def navigate(self, target):
        self.targets.append(target)


class FakeResponder:
    def __init__(self, tokens: List[str], fail_after: Optional[int] = None):
        self.tokens = tokens
        self.fail_after = fail_after
        self.prompts: List[str] = []

    async def stream_reply(self, text, specialists_hint=""):
        self.prompts.append(text)
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i >= self.fail_after:
                raise ClassificationError("stream dropped")
            yield token


@pytest.fixture
def conversation():
    return new_conversation(with_welcome=False)


@pytest.fixture
def navigator():
    return FakeNavigator()


@pytest.fixture
def make_loop(conversation, navigator):
    def _make(reply=None, endpoints=None, responder=None, free_text=False, error=None):
        return CommandLoop(
            conversation,
            classifier=FakeClassifier(reply, error=error),
            endpoints=endpoints or FakeEndpoints(),
            navigator=navigator,
            responder=responder,
            free_text=free_text,
        )
    return _make


@pytest.fixture
def overrides():
    state = {
        "classifier": FakeClassifier({"action": "go_summary", "payload": {}}),
        "endpoints": FakeEndpoints(),
    }
    app.dependency_overrides[get_classifier] = lambda: state["classifier"]
    app.dependency_overrides[get_endpoints] = lambda: state["endpoints"]
    app.dependency_overrides[get_responder] = lambda: None
    yield state
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    return TestClient(app)
