"""Action router: maps a classified intent to exactly one capability provider.

Precedence, first applicable wins:

1. integration registered for the frontmost app's bundle identifier;
2. integration resolved from the intent itself (medium parameter, or
   keywords in the raw text) via the named email/message/calendar roles;
3. the generic handler for the action kind.

Both integration tiers require the integration to be available AND to
support the action. Exactly one provider executes per ``route`` call.
"""

import logging
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from talk.actions.base import ActionHandler, AppIntegration, provider_name
from talk.schemas.context import AppContext
from talk.schemas.intent import ActionType, Intent
from talk.schemas.results import ActionFailure, ActionSuccess

logger = logging.getLogger(__name__)

CALENDAR_KEYWORDS = ("calendar", "event", "invite", "meeting", "appointment", "schedule")


class IntegrationRole(StrEnum):
    """Kinds of app an utterance can target regardless of the frontmost app."""

    EMAIL = "email"
    MESSAGE = "message"
    CALENDAR = "calendar"


class RouteTier(StrEnum):
    FRONTMOST_APP = "frontmost_app"
    TARGET = "target"
    HANDLER = "handler"


class RouteDecision(BaseModel):
    """Which provider ``route`` would run, and why."""

    tier: RouteTier
    provider: Any
    role: IntegrationRole | None = None

    @property
    def provider_name(self) -> str:
        return provider_name(self.provider)


class ActionRouter:
    """Holds the registration tables and dispatches intents.

    Registration replaces any previous entry for the same key.
    """

    def __init__(self, handlers: dict[ActionType, ActionHandler] | None = None) -> None:
        self._handlers: dict[ActionType, ActionHandler] = dict(handlers or {})
        self._integrations: dict[str, AppIntegration] = {}
        self._roles: dict[IntegrationRole, AppIntegration] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_handler(self, action: ActionType, handler: ActionHandler) -> None:
        self._handlers[action] = handler

    def register_integration(
        self,
        integration: AppIntegration,
        additional_bundle_ids: Iterable[str] = (),
    ) -> None:
        """Register an integration under its own bundle id plus any variants."""
        self._integrations[integration.bundle_identifier] = integration
        for bundle_id in additional_bundle_ids:
            self._integrations[bundle_id] = integration
        logger.debug(
            "Registered integration %s for %s",
            provider_name(integration),
            [integration.bundle_identifier, *additional_bundle_ids],
        )

    def register_role(self, role: IntegrationRole, integration: AppIntegration) -> None:
        self._roles[role] = integration

    def register_email_integration(self, integration: AppIntegration) -> None:
        self.register_role(IntegrationRole.EMAIL, integration)

    def register_message_integration(self, integration: AppIntegration) -> None:
        self.register_role(IntegrationRole.MESSAGE, integration)

    def register_calendar_integration(self, integration: AppIntegration) -> None:
        self.register_role(IntegrationRole.CALENDAR, integration)

    def handler_for(self, action: ActionType) -> ActionHandler | None:
        return self._handlers.get(action)

    def integration_for(self, bundle_id: str) -> AppIntegration | None:
        return self._integrations.get(bundle_id)

    def integration_for_role(self, role: IntegrationRole) -> AppIntegration | None:
        return self._roles.get(role)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def resolve(self, intent: Intent, context: AppContext) -> RouteDecision | None:
        """Pick the provider for ``intent`` without executing it.

        Returns None when no tier applies and no handler is registered.
        """
        integration = self._integrations.get(context.bundle_identifier)
        if integration is not None and _accepts(integration, intent.action):
            return RouteDecision(tier=RouteTier.FRONTMOST_APP, provider=integration)

        role = resolve_target_role(intent)
        if role is not None:
            target = self._roles.get(role)
            if target is not None:
                logger.debug(
                    "Resolved target integration %s (role=%s available=%s supports=%s)",
                    provider_name(target),
                    role.value,
                    target.is_available,
                    intent.action in target.supported_actions,
                )
                if _accepts(target, intent.action):
                    return RouteDecision(tier=RouteTier.TARGET, provider=target, role=role)

        handler = self._handlers.get(intent.action)
        if handler is not None:
            return RouteDecision(tier=RouteTier.HANDLER, provider=handler)

        return None

    async def route(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        """Execute ``intent`` with the single provider chosen by ``resolve``.

        Exceptions raised by the provider propagate to the caller.
        """
        decision = self.resolve(intent, context)
        if decision is None:
            logger.error("No handler registered for action %s", intent.action.value)
            return ActionFailure(
                message=f"No handler for action: {intent.action.display_name}",
                is_recoverable=False,
            )

        logger.info(
            "Routing action=%s to %s (%s)",
            intent.action.value,
            decision.provider_name,
            decision.tier.value,
        )
        return await decision.provider.execute(intent, context)


def _accepts(integration: AppIntegration, action: ActionType) -> bool:
    return integration.is_available and action in integration.supported_actions


def resolve_target_role(intent: Intent) -> IntegrationRole | None:
    """Which kind of app the utterance targets, independent of the frontmost app."""
    medium = intent.parameters.get("medium", "")
    if medium == "email":
        return IntegrationRole.EMAIL
    if medium == "message":
        return IntegrationRole.MESSAGE

    lower = intent.raw_text.lower()
    if "email" in lower or "mail" in lower:
        return IntegrationRole.EMAIL
    if "imessage" in lower or "text message" in lower:
        return IntegrationRole.MESSAGE
    if any(keyword in lower for keyword in CALENDAR_KEYWORDS):
        return IntegrationRole.CALENDAR
    return None
