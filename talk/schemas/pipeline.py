"""Schemas for the agent pipeline façade: observable phase and run log entries."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from talk.schemas.intent import ActionType


class AgentPhase(StrEnum):
    """Coarse phases of one pipeline run."""

    IDLE = "idle"
    READING_CONTEXT = "reading_context"
    CLASSIFYING = "classifying"
    EXECUTING = "executing"
    COMPLETE = "complete"


class AgentStep(BaseModel):
    """Phase value pushed to progress observers.

    ``action`` is set only while executing; ``success`` only once complete.
    """

    model_config = ConfigDict(frozen=True)

    phase: AgentPhase = AgentPhase.IDLE
    action: ActionType | None = None
    success: bool | None = None

    @classmethod
    def idle(cls) -> "AgentStep":
        return cls()

    @classmethod
    def executing(cls, action: ActionType) -> "AgentStep":
        return cls(phase=AgentPhase.EXECUTING, action=action)

    @classmethod
    def complete(cls, success: bool) -> "AgentStep":
        return cls(phase=AgentPhase.COMPLETE, success=success)

    @property
    def display_text(self) -> str:
        if self.phase == AgentPhase.READING_CONTEXT:
            return "Reading context..."
        if self.phase == AgentPhase.CLASSIFYING:
            return "Understanding command..."
        if self.phase == AgentPhase.EXECUTING and self.action is not None:
            return f"Executing: {self.action.display_name}..."
        if self.phase == AgentPhase.COMPLETE:
            return "Done" if self.success else "Failed"
        return ""


class ClassificationSource(StrEnum):
    """Which branch of the classification cascade produced the intent."""

    RULES = "rules"
    LLM = "llm"
    LOW_CONFIDENCE = "low_confidence"
    ERROR = "error"


# --- Run log ---


class RunLogEntry(BaseModel):
    """One line of the append-only run log."""

    timestamp: datetime
    transcription: str
    bundle_identifier: str
    action: ActionType
    confidence: float = Field(ge=0.0, le=1.0)
    source: ClassificationSource
    success: bool
    message: str
    workflow_steps: int = Field(
        default=0,
        description="Number of workflow steps executed (0 = single action)",
    )
