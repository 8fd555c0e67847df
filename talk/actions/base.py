"""Capability provider contracts.

Handlers are generic, one per action kind. Integrations are scoped to one or
more application bundle identifiers and may be unavailable (app not
installed, permission missing). Both are structural protocols: anything with
the right attributes can be registered with the router.
"""

from collections.abc import Collection
from typing import Protocol, runtime_checkable

from talk.schemas.context import AppContext
from talk.schemas.intent import ActionType, Intent
from talk.schemas.results import ActionFailure, ActionSuccess


@runtime_checkable
class ActionHandler(Protocol):
    @property
    def supported_actions(self) -> Collection[ActionType]: ...

    async def execute(
        self, intent: Intent, context: AppContext
    ) -> ActionSuccess | ActionFailure: ...


@runtime_checkable
class AppIntegration(Protocol):
    @property
    def bundle_identifier(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    @property
    def supported_actions(self) -> Collection[ActionType]: ...

    @property
    def is_available(self) -> bool: ...

    async def execute(
        self, intent: Intent, context: AppContext
    ) -> ActionSuccess | ActionFailure: ...


def provider_name(provider: object) -> str:
    """Human-readable name for logging."""
    return getattr(provider, "display_name", None) or type(provider).__name__
