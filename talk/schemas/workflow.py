"""Schemas for multi-step workflows."""

from pydantic import BaseModel, Field

from talk.schemas.intent import ActionType, Intent


class WorkflowStep(BaseModel):
    """One step of a workflow, executed through the action router."""

    index: int = 0
    action: ActionType
    description: str = Field(description="Human-readable step description")
    content: str = ""
    parameters: dict[str, str] = Field(default_factory=dict)
    use_previous_result: bool = Field(
        default=False,
        description="Replace content with the previous step's result_text",
    )

    @classmethod
    def search(cls, query: str) -> "WorkflowStep":
        return cls(
            action=ActionType.SEARCH,
            description=f"Search for {query}",
            content=query,
        )

    @classmethod
    def summarize(cls, text: str = "") -> "WorkflowStep":
        return cls(
            action=ActionType.SUMMARIZE,
            description="Summarize content",
            content=text,
            use_previous_result=not text,
        )

    @classmethod
    def create(cls, item_type: str, content: str = "") -> "WorkflowStep":
        return cls(
            action=ActionType.CREATE,
            description=f"Create {item_type}",
            content=content,
            parameters={"type": item_type},
            use_previous_result=not content,
        )

    @classmethod
    def reply(cls, content: str = "") -> "WorkflowStep":
        return cls(
            action=ActionType.REPLY,
            description="Send reply",
            content=content,
            use_previous_result=not content,
        )


class Workflow(BaseModel):
    """Ordered steps decomposed from one utterance."""

    name: str
    steps: list[WorkflowStep] = Field(min_length=1)
    original_intent: Intent

    @property
    def step_count(self) -> int:
        return len(self.steps)


class WorkflowProgress(BaseModel):
    """Observable progress of a running workflow (1-based step numbers)."""

    current_step: int
    total_steps: int
    step_description: str
    is_complete: bool = False
