"""Workflow engine: decomposes multi-step utterances and runs them in order.

Decomposition only happens when the utterance contains a connective
phrase; everything else takes the single-action path with no LLM call.
Execution is strictly sequential and stops at the first failing step.
"""

import json
import logging
from collections.abc import Callable

from talk.integrations.generation import GenerationService, strip_code_fences
from talk.orchestrator.router import ActionRouter
from talk.schemas.context import AppContext
from talk.schemas.intent import ActionType, Intent
from talk.schemas.results import ActionFailure, ActionSuccess
from talk.schemas.workflow import Workflow, WorkflowProgress, WorkflowStep

logger = logging.getLogger(__name__)

MULTI_STEP_MARKERS = (
    "and then",
    "and also",
    "then ",
    "after that",
    "and email",
    "and send",
    "and save",
    "and create",
)

DECOMPOSE_PROMPT = """\
Decompose this voice command into sequential steps. Each step is one of: \
dictate, transform, search, open, reply, create, summarize.

Voice command: "{command}"
Current app: {app_name}

Respond with JSON array (no markdown):
[{{"action": "search", "description": "Search for X", "content": "search query"}}]
"""


def needs_decomposition(text: str) -> bool:
    lower = text.lower()
    return any(marker in lower for marker in MULTI_STEP_MARKERS)


class WorkflowEngine:
    """Builds and executes workflows through an ActionRouter.

    ``progress`` holds the current step (1-based) while a workflow runs and
    is None otherwise. ``on_progress`` receives every progress update.
    """

    def __init__(
        self,
        router: ActionRouter,
        generation: GenerationService,
        *,
        on_progress: Callable[[WorkflowProgress], None] | None = None,
    ) -> None:
        self._router = router
        self._generation = generation
        self._on_progress = on_progress
        self.progress: WorkflowProgress | None = None
        self.is_executing = False

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------

    async def decompose_if_needed(self, intent: Intent, context: AppContext) -> Workflow | None:
        """Return a Workflow for multi-step utterances, None for single actions."""
        if not needs_decomposition(intent.raw_text):
            return None

        if self._generation.is_configured:
            return await self._decompose_with_llm(intent, context)

        return decompose_heuristic(intent)

    async def _decompose_with_llm(self, intent: Intent, context: AppContext) -> Workflow | None:
        prompt = DECOMPOSE_PROMPT.format(command=intent.raw_text, app_name=context.app_name)

        try:
            response = await self._generation.enhance(intent.raw_text, prompt)
            steps = parse_steps(response, default_content=intent.content)
        except Exception as e:
            logger.warning("LLM decomposition failed (%s), trying heuristics", e)
            return decompose_heuristic(intent)

        if not steps:
            return None

        logger.info("Decomposed into %d steps: %s", len(steps), [s.action.value for s in steps])
        return Workflow(name="Multi-step", steps=steps, original_intent=intent)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, workflow: Workflow, context: AppContext) -> ActionSuccess | ActionFailure:
        """Run every step in order, chaining results where requested."""
        self.is_executing = True
        try:
            return await self._run_steps(workflow, context)
        finally:
            self.is_executing = False
            self.progress = None

    async def _run_steps(self, workflow: Workflow, context: AppContext) -> ActionSuccess | ActionFailure:
        total = len(workflow.steps)
        last_result: ActionSuccess | ActionFailure | None = None

        for number, step in enumerate(workflow.steps, start=1):
            self._publish(WorkflowProgress(
                current_step=number,
                total_steps=total,
                step_description=step.description,
            ))

            content = step.content
            if (
                step.use_previous_result
                and isinstance(last_result, ActionSuccess)
                and last_result.result_text is not None
            ):
                content = last_result.result_text

            step_intent = Intent(
                action=step.action,
                parameters=step.parameters,
                content=content,
                raw_text=content,
                confidence=1.0,
            )
            logger.info("Workflow step %d/%d: %s", number, total, step.description)

            try:
                last_result = await self._router.route(step_intent, context)
            except Exception as e:
                logger.exception("Workflow step %d raised", number)
                return ActionFailure(
                    message=f"Workflow failed at step {number}: {e}",
                    error=e,
                    is_recoverable=False,
                )

            if isinstance(last_result, ActionFailure):
                logger.warning("Workflow step %d failed: %s", number, last_result.message)
                return ActionFailure(
                    message=f"Workflow failed at step {number}: {last_result.message}",
                    error=last_result.error,
                    is_recoverable=last_result.is_recoverable,
                    suggestion=last_result.suggestion,
                )

        self._publish(WorkflowProgress(
            current_step=total,
            total_steps=total,
            step_description="Complete",
            is_complete=True,
        ))

        return last_result or ActionSuccess(message="Workflow completed")

    def _publish(self, progress: WorkflowProgress) -> None:
        self.progress = progress
        if self._on_progress is not None:
            try:
                self._on_progress(progress)
            except Exception:
                logger.exception("Workflow progress observer raised")


def parse_steps(response: str, *, default_content: str) -> list[WorkflowStep]:
    """Decode the decomposition reply into steps.

    Raises:
        ValueError: When the reply is not a JSON array of objects.
    """
    data = json.loads(strip_code_fences(response))
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError("decomposition reply is not a JSON array of objects")

    steps = []
    for index, item in enumerate(data):
        action_name = item.get("action")
        try:
            action = ActionType(action_name) if isinstance(action_name, str) else ActionType.DICTATE
        except ValueError:
            action = ActionType.DICTATE

        description = item.get("description")
        content = item.get("content")
        steps.append(WorkflowStep(
            index=index,
            action=action,
            description=description if isinstance(description, str) else f"Step {index + 1}",
            content=content if isinstance(content, str) else default_content,
            use_previous_result=index > 0,
        ))
    return steps


def decompose_heuristic(intent: Intent) -> Workflow | None:
    """Fixed templates for common multi-step phrasings."""
    text = intent.raw_text.lower()

    if "search" in text and ("and email" in text or "and send" in text):
        steps = [
            WorkflowStep.search(intent.content),
            WorkflowStep.summarize(),
            WorkflowStep.reply(),
        ]
        name = "Search and email"
    elif "summarize" in text and "note" in text:
        steps = [
            WorkflowStep.summarize(intent.content),
            WorkflowStep.create("note"),
        ]
        name = "Summarize and save"
    else:
        return None

    steps = [step.model_copy(update={"index": i}) for i, step in enumerate(steps)]
    logger.info("Heuristic workflow %r with %d steps", name, len(steps))
    return Workflow(name=name, steps=steps, original_intent=intent)
