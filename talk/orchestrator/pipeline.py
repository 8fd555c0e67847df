"""Agent pipeline: the single entry point from transcription to result.

transcription -> context read -> classification cascade -> [workflow
decomposition] -> action router -> provider -> ActionResult.

Every exit path of ``process`` is an ActionResult; classification and
dispatch errors are converted, never propagated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from talk.actions.handlers import DEFAULT_SEARCH_URL_TEMPLATE, default_handlers
from talk.audit.logger import RunLog
from talk.integrations.generation import GenerationService
from talk.orchestrator.router import ActionRouter
from talk.orchestrator.workflow import WorkflowEngine
from talk.planner.intent_classifier import LLMIntentClassifier
from talk.planner.orchestrator import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    ClassificationOrchestrator,
)
from talk.planner.rule_classifier import RuleBasedClassifier
from talk.schemas.context import AppContext
from talk.schemas.intent import Intent
from talk.schemas.pipeline import AgentPhase, AgentStep, ClassificationSource
from talk.schemas.results import ActionFailure, ActionSuccess
from talk.schemas.workflow import Workflow

logger = logging.getLogger(__name__)

ContextProvider = Callable[[], AppContext]
StepObserver = Callable[[AgentStep], None]


class AgentPipeline:
    """Runs one utterance at a time through classification and routing.

    Publishes ``current_step``, ``last_intent`` and ``last_result`` for
    observers. The pipeline is the only writer of that state.
    """

    def __init__(
        self,
        *,
        context_provider: ContextProvider,
        orchestrator: ClassificationOrchestrator,
        router: ActionRouter,
        workflow_engine: WorkflowEngine | None = None,
        run_log: RunLog | None = None,
        reset_delay: float = 2.0,
        use_workflows: bool = False,
    ) -> None:
        self._context_provider = context_provider
        self._orchestrator = orchestrator
        self._router = router
        self._workflow_engine = workflow_engine
        self._run_log = run_log
        self._reset_delay = reset_delay
        self._use_workflows = use_workflows

        self._observers: list[StepObserver] = []
        self._reset_task: asyncio.Task | None = None

        self.current_step = AgentStep.idle()
        self.last_intent: Intent | None = None
        self.last_result: ActionSuccess | ActionFailure | None = None

    @property
    def router(self) -> ActionRouter:
        return self._router

    @property
    def is_busy(self) -> bool:
        return self.current_step.phase not in (AgentPhase.IDLE, AgentPhase.COMPLETE)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: StepObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: StepObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _set_step(self, step: AgentStep) -> None:
        self.current_step = step
        for observer in list(self._observers):
            try:
                observer(step)
            except Exception:
                logger.exception("Pipeline observer raised")

    # ------------------------------------------------------------------
    # Main pipeline
    # ------------------------------------------------------------------

    async def process(
        self,
        transcription: str,
        *,
        use_workflows: bool | None = None,
    ) -> ActionSuccess | ActionFailure:
        """Process a transcription and return exactly one result."""
        logger.info("Pipeline started, transcription=%r", transcription)
        self._cancel_pending_reset()

        # 1. Read context
        self._set_step(AgentStep(phase=AgentPhase.READING_CONTEXT))
        context = self._read_context()
        logger.info("Context: app=%s bundle=%s", context.app_name, context.bundle_identifier)

        # 2. Classify
        self._set_step(AgentStep(phase=AgentPhase.CLASSIFYING))
        intent, source = await self._classify(transcription, context)
        self.last_intent = intent

        # 3. Optional decomposition
        workflow = None
        run_workflows = self._use_workflows if use_workflows is None else use_workflows
        if run_workflows:
            workflow = await self._decompose(intent, context)

        # 4. Execute
        self._set_step(AgentStep.executing(
            workflow.steps[0].action if workflow is not None else intent.action
        ))
        result = await self._execute(intent, workflow, context)

        # 5. Publish
        self.last_result = result
        completed = AgentStep.complete(result.is_success)
        self._set_step(completed)
        self._schedule_reset(completed)
        self._record(transcription, context, intent, source, result, workflow)

        logger.info("Pipeline complete, success=%s message=%r", result.is_success, result.message)
        return result

    def _read_context(self) -> AppContext:
        try:
            return self._context_provider()
        except Exception:
            logger.exception("Context provider raised, using empty context")
            return AppContext.empty()

    async def _classify(
        self, transcription: str, context: AppContext
    ) -> tuple[Intent, ClassificationSource]:
        try:
            outcome = await self._orchestrator.classify(transcription, context)
        except Exception:
            logger.exception("Classification failed, falling back to dictation")
            return Intent.dictation(transcription), ClassificationSource.ERROR

        intent = outcome.intent
        threshold = self._orchestrator.confidence_threshold
        if intent.confidence < threshold:
            logger.info(
                "Low confidence %.2f < %.2f, falling back to dictation",
                intent.confidence,
                threshold,
            )
            return Intent.dictation(transcription), ClassificationSource.LOW_CONFIDENCE

        logger.info(
            "Classified: action=%s confidence=%.2f source=%s content=%r",
            intent.action.value,
            intent.confidence,
            outcome.source.value,
            intent.content,
        )
        return intent, outcome.source

    async def _decompose(self, intent: Intent, context: AppContext) -> Workflow | None:
        if self._workflow_engine is None:
            return None
        try:
            return await self._workflow_engine.decompose_if_needed(intent, context)
        except Exception:
            logger.exception("Workflow decomposition failed, running single action")
            return None

    async def _execute(
        self,
        intent: Intent,
        workflow: Workflow | None,
        context: AppContext,
    ) -> ActionSuccess | ActionFailure:
        try:
            if workflow is not None and self._workflow_engine is not None:
                logger.info("Executing workflow %r (%d steps)", workflow.name, workflow.step_count)
                return await self._workflow_engine.execute(workflow, context)
            return await self._router.route(intent, context)
        except Exception as e:
            logger.exception("Execution error")
            return ActionFailure(
                message=str(e) or type(e).__name__,
                error=e,
                is_recoverable=False,
            )

    def _record(
        self,
        transcription: str,
        context: AppContext,
        intent: Intent,
        source: ClassificationSource,
        result: ActionSuccess | ActionFailure,
        workflow: Workflow | None,
    ) -> None:
        if self._run_log is None:
            return
        try:
            self._run_log.log_run(
                transcription,
                context,
                intent,
                source,
                result,
                workflow_steps=workflow.step_count if workflow is not None else 0,
            )
        except Exception:
            logger.exception("Could not write run log")

    # ------------------------------------------------------------------
    # Delayed idle reset
    # ------------------------------------------------------------------

    def _schedule_reset(self, completed: AgentStep) -> None:
        self._reset_task = asyncio.create_task(self._reset_after_delay(completed))

    async def _reset_after_delay(self, completed: AgentStep) -> None:
        await asyncio.sleep(self._reset_delay)
        # A newer run owns the indicator once it has moved on.
        if self.current_step is completed:
            self._set_step(AgentStep.idle())

    def _cancel_pending_reset(self) -> None:
        if self._reset_task is not None and not self._reset_task.done():
            self._reset_task.cancel()
        self._reset_task = None


def create_pipeline(
    generation: GenerationService,
    *,
    context_provider: ContextProvider = AppContext.empty,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    search_url_template: str = DEFAULT_SEARCH_URL_TEMPLATE,
    run_log: RunLog | None = None,
    reset_delay: float = 2.0,
    use_workflows: bool = False,
    **handler_kwargs,
) -> AgentPipeline:
    """Wire the standard classifier, router, handlers and workflow engine."""
    router = ActionRouter(default_handlers(
        generation,
        search_url_template=search_url_template,
        **handler_kwargs,
    ))
    orchestrator = ClassificationOrchestrator(
        RuleBasedClassifier(),
        LLMIntentClassifier(generation),
        confidence_threshold=confidence_threshold,
    )
    return AgentPipeline(
        context_provider=context_provider,
        orchestrator=orchestrator,
        router=router,
        workflow_engine=WorkflowEngine(router, generation),
        run_log=run_log,
        reset_delay=reset_delay,
        use_workflows=use_workflows,
    )
