"""Action results and provider errors.

Every pipeline run ends in exactly one ActionResult: either an
ActionSuccess or an ActionFailure, discriminated by ``kind``.
"""

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ActionSuccess(BaseModel):
    """A provider completed its action."""

    kind: Literal["success"] = "success"
    message: str
    result_text: str | None = Field(
        default=None,
        description="Text output (summary, transformed text, reply draft)",
    )
    should_paste: bool = Field(
        default=False,
        description="Deliver result_text to the user's input focus",
    )
    metadata: dict[str, str] = Field(
        default_factory=dict,
        description="Extra info, e.g. the URL opened or app launched",
    )

    @property
    def is_success(self) -> bool:
        return True


class ActionFailure(BaseModel):
    """A provider (or the pipeline on its behalf) could not complete."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["failure"] = "failure"
    message: str
    error: BaseException | None = Field(default=None, exclude=True)
    is_recoverable: bool = False
    suggestion: str | None = Field(
        default=None,
        description="What the user can do to fix it",
    )

    @property
    def is_success(self) -> bool:
        return False


ActionResult = Annotated[ActionSuccess | ActionFailure, Field(discriminator="kind")]


class ActionErrorKind(StrEnum):
    """Business failures a capability provider can signal."""

    NO_SELECTED_TEXT = "no_selected_text"
    APP_NOT_RUNNING = "app_not_running"
    INTEGRATION_NOT_AVAILABLE = "integration_not_available"
    PERMISSION_DENIED = "permission_denied"
    EXECUTION_FAILED = "execution_failed"
    INVALID_PARAMETERS = "invalid_parameters"


_ACTION_ERROR_MESSAGES = {
    ActionErrorKind.NO_SELECTED_TEXT: "No text is selected in the active application",
    ActionErrorKind.APP_NOT_RUNNING: "{detail} is not running",
    ActionErrorKind.INTEGRATION_NOT_AVAILABLE: "{detail} integration is not available",
    ActionErrorKind.PERMISSION_DENIED: "Permission denied: {detail}",
    ActionErrorKind.EXECUTION_FAILED: "Action failed: {detail}",
    ActionErrorKind.INVALID_PARAMETERS: "Invalid parameters: {detail}",
}


class ActionError(Exception):
    """Raised (or attached to a failure) by capability providers."""

    def __init__(self, kind: ActionErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(_ACTION_ERROR_MESSAGES[kind].format(detail=detail))
