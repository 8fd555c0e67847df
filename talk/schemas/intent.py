"""Schemas for intent classification.

Covers: the closed set of action kinds, the immutable Intent value that
flows through the pipeline, and the loosely-typed shape the LLM classifier
is asked to return.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

HIGH_CONFIDENCE = 0.7


class ActionType(StrEnum):
    """Action kinds the agent can execute."""

    DICTATE = "dictate"
    TRANSFORM = "transform"
    SEARCH = "search"
    OPEN = "open"
    REPLY = "reply"
    CREATE = "create"
    SUMMARIZE = "summarize"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class Intent(BaseModel):
    """Classified representation of one utterance (or one workflow step).

    Immutable once built. ``raw_text`` is the original utterance and is the
    only input fallback paths may re-derive from.
    """

    model_config = ConfigDict(frozen=True)

    action: ActionType
    target: str | None = Field(
        default=None,
        description="App or object the action applies to (e.g. 'Mail', 'note')",
    )
    parameters: dict[str, str] = Field(
        default_factory=dict,
        description="Action-specific params such as to, subject, medium, instruction",
    )
    content: str = Field(description="The text the action operates on")
    raw_text: str = Field(description="Original transcription, verbatim")
    confidence: float = Field(ge=0.0, le=1.0)

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE

    @classmethod
    def dictation(cls, text: str) -> "Intent":
        """Pure dictation intent built directly from raw text."""
        return cls(
            action=ActionType.DICTATE,
            content=text,
            raw_text=text,
            confidence=1.0,
        )


# --- LLM Output Schema (what the intent classifier is asked to return) ---


class IntentClassificationResponse(BaseModel):
    """Tolerant decode of the classifier's JSON reply.

    Optional fields that are structurally wrong are treated as absent.
    Only ``confidence`` is required; without it the reply is unusable.
    """

    action: str = ActionType.DICTATE.value
    target: str | None = None
    parameters: dict[str, str] = Field(default_factory=dict)
    content: str | None = None
    confidence: float

    @field_validator("action", mode="before")
    @classmethod
    def _action_or_default(cls, value: Any) -> str:
        return value if isinstance(value, str) else ActionType.DICTATE.value

    @field_validator("target", "content", mode="before")
    @classmethod
    def _string_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("parameters", mode="before")
    @classmethod
    def _string_map(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {
            str(k): v
            for k, v in value.items()
            if isinstance(v, str)
        }

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be a number")
        return min(max(float(value), 0.0), 1.0)

    def to_intent(self, raw_text: str) -> Intent:
        """Build an Intent, mapping unknown actions to dictate."""
        try:
            action = ActionType(self.action.strip().lower())
        except ValueError:
            action = ActionType.DICTATE

        return Intent(
            action=action,
            target=self.target,
            parameters=self.parameters,
            content=self.content if self.content is not None else raw_text,
            raw_text=raw_text,
            confidence=self.confidence,
        )
