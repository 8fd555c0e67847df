"""Shared fixtures for Talk tests."""

import pytest

from talk.schemas.context import AppContext
from talk.schemas.intent import ActionType
from talk.schemas.results import ActionSuccess


class FakeGeneration:
    """GenerationService double: returns queued replies or raises."""

    def __init__(self, replies=None, *, configured: bool = True, error: Exception | None = None):
        self.replies = list(replies or [])
        self.configured = configured
        self.error = error
        self.calls: list[tuple[str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def enhance(self, text: str, prompt: str) -> str:
        self.calls.append((text, prompt))
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else text


class FakeProvider:
    """Handler/integration double recording every intent it executes."""

    def __init__(
        self,
        name: str = "Fake",
        *,
        bundle_identifier: str = "com.example.fake",
        actions=tuple(ActionType),
        available: bool = True,
        result=None,
        error: Exception | None = None,
    ):
        self.display_name = name
        self.bundle_identifier = bundle_identifier
        self.supported_actions = tuple(actions)
        self.is_available = available
        self.result = result or ActionSuccess(message=f"{name} done")
        self.error = error
        self.executed = []

    async def execute(self, intent, context):
        self.executed.append(intent)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def empty_context():
    return AppContext.empty()


@pytest.fixture()
def mail_context():
    return AppContext(bundle_identifier="com.apple.mail", app_name="Mail")
