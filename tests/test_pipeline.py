"""Tests for the agent pipeline façade."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from talk.audit.logger import RunLog
from talk.orchestrator.pipeline import AgentPipeline, create_pipeline
from talk.orchestrator.router import ActionRouter
from talk.orchestrator.workflow import WorkflowEngine
from talk.planner.intent_classifier import LLMIntentClassifier
from talk.planner.orchestrator import ClassificationOrchestrator
from talk.planner.rule_classifier import RuleBasedClassifier
from talk.schemas.context import AppContext
from talk.schemas.intent import ActionType
from talk.schemas.pipeline import AgentPhase, ClassificationSource
from talk.schemas.results import ActionFailure, ActionSuccess

from conftest import FakeGeneration, FakeProvider

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _providers():
    return {action: FakeProvider(action.display_name) for action in ActionType}


def _pipeline(generation=None, providers=None, **kwargs) -> AgentPipeline:
    generation = generation or FakeGeneration(configured=False)
    router = ActionRouter(providers if providers is not None else _providers())
    orchestrator = ClassificationOrchestrator(
        RuleBasedClassifier(),
        LLMIntentClassifier(generation),
        confidence_threshold=kwargs.pop("confidence_threshold", 0.7),
    )
    kwargs.setdefault("context_provider", AppContext.empty)
    kwargs.setdefault("reset_delay", 0.01)
    return AgentPipeline(
        orchestrator=orchestrator,
        router=router,
        workflow_engine=WorkflowEngine(router, generation),
        **kwargs,
    )


# ------------------------------------------------------------------
# Phases
# ------------------------------------------------------------------


class TestPhases:
    @pytest.mark.asyncio
    async def test_phase_order(self):
        pipeline = _pipeline()
        phases = []
        pipeline.subscribe(lambda step: phases.append(step.phase))

        await pipeline.process("search for cats")

        assert phases == [
            AgentPhase.READING_CONTEXT,
            AgentPhase.CLASSIFYING,
            AgentPhase.EXECUTING,
            AgentPhase.COMPLETE,
        ]
        assert pipeline.current_step.phase == AgentPhase.COMPLETE
        assert pipeline.current_step.success is True
        assert not pipeline.is_busy

    @pytest.mark.asyncio
    async def test_executing_step_names_action(self):
        pipeline = _pipeline()
        steps = []
        pipeline.subscribe(steps.append)

        await pipeline.process("open Safari")

        assert steps[2].display_text == "Executing: Open..."

    @pytest.mark.asyncio
    async def test_resets_to_idle_after_delay(self):
        pipeline = _pipeline(reset_delay=0.01)

        result = await pipeline.process("hello there")

        assert result.is_success
        assert pipeline.current_step.phase == AgentPhase.COMPLETE
        await asyncio.sleep(0.05)
        assert pipeline.current_step.phase == AgentPhase.IDLE

    @pytest.mark.asyncio
    async def test_new_run_cancels_pending_reset(self):
        pipeline = _pipeline(reset_delay=0.05)
        phases = []

        await pipeline.process("hello")
        pipeline.subscribe(lambda step: phases.append(step.phase))
        await pipeline.process("search for cats")
        await asyncio.sleep(0.1)

        assert phases.count(AgentPhase.IDLE) == 1
        assert phases[-1] == AgentPhase.IDLE

    @pytest.mark.asyncio
    async def test_observer_errors_do_not_break_run(self):
        pipeline = _pipeline()
        pipeline.subscribe(MagicMock(side_effect=RuntimeError("ui gone")))

        result = await pipeline.process("search for cats")

        assert result.is_success

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        pipeline = _pipeline()
        observer = MagicMock()
        pipeline.subscribe(observer)
        pipeline.unsubscribe(observer)

        await pipeline.process("hello")

        observer.assert_not_called()


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


class TestClassification:
    @pytest.mark.asyncio
    async def test_rules_route_to_provider(self):
        providers = _providers()
        pipeline = _pipeline(providers=providers)

        result = await pipeline.process("search for espresso machines")

        assert result.message == "Search done"
        assert providers[ActionType.SEARCH].executed[0].content == "espresso machines"
        assert pipeline.last_intent.action == ActionType.SEARCH

    @pytest.mark.asyncio
    async def test_classification_exception_becomes_dictation(self):
        providers = _providers()
        pipeline = _pipeline(providers=providers)
        pipeline._orchestrator.classify = AsyncMock(side_effect=RuntimeError("boom"))

        result = await pipeline.process("search for cats")

        assert result.is_success
        assert pipeline.last_intent.action == ActionType.DICTATE
        assert pipeline.last_intent.content == "search for cats"
        assert len(providers[ActionType.DICTATE].executed) == 1
        assert providers[ActionType.SEARCH].executed == []

    @pytest.mark.asyncio
    async def test_low_confidence_llm_dictates_raw_text(self):
        providers = _providers()
        generation = FakeGeneration(['{"action": "search", "content": "cats", "confidence": 0.3}'])
        pipeline = _pipeline(generation, providers=providers)

        await pipeline.process("search for cats")

        executed = providers[ActionType.DICTATE].executed
        assert len(executed) == 1
        assert executed[0].content == "search for cats"
        assert providers[ActionType.SEARCH].executed == []

    @pytest.mark.asyncio
    async def test_threshold_above_rule_confidence_gates_rules(self):
        providers = _providers()
        pipeline = _pipeline(providers=providers, confidence_threshold=0.85)

        await pipeline.process("search for cats")

        assert pipeline.last_intent.action == ActionType.DICTATE
        assert providers[ActionType.SEARCH].executed == []

    @pytest.mark.asyncio
    async def test_context_provider_error_uses_empty_context(self):
        seen = []

        class Recorder(FakeProvider):
            async def execute(self, intent, context):
                seen.append(context)
                return await super().execute(intent, context)

        def broken_context():
            raise PermissionError("accessibility not granted")

        pipeline = _pipeline(
            providers={ActionType.DICTATE: Recorder("Dictate")},
            context_provider=broken_context,
        )

        result = await pipeline.process("hello")

        assert result.is_success
        assert seen[0] == AppContext.empty()

    @pytest.mark.asyncio
    async def test_context_passed_to_provider(self):
        providers = _providers()
        mail = FakeProvider("Mail", bundle_identifier="com.apple.mail")
        pipeline = _pipeline(
            providers=providers,
            context_provider=lambda: AppContext(bundle_identifier="com.apple.mail", app_name="Mail"),
        )
        pipeline.router.register_integration(mail)

        result = await pipeline.process("reply saying sounds good")

        assert result.message == "Mail done"
        assert providers[ActionType.REPLY].executed == []


# ------------------------------------------------------------------
# Dispatch
# ------------------------------------------------------------------


class TestDispatch:
    @pytest.mark.asyncio
    async def test_provider_exception_becomes_failure(self):
        error = RuntimeError("script failed")
        providers = _providers()
        providers[ActionType.SEARCH] = FakeProvider("Search", error=error)
        pipeline = _pipeline(providers=providers)

        result = await pipeline.process("search for cats")

        assert isinstance(result, ActionFailure)
        assert result.message == "script failed"
        assert result.is_recoverable is False
        assert result.error is error
        assert pipeline.last_result is result
        assert pipeline.current_step.success is False

    @pytest.mark.asyncio
    async def test_missing_handler(self):
        pipeline = _pipeline(providers={})

        result = await pipeline.process("search for cats")

        assert isinstance(result, ActionFailure)
        assert result.message == "No handler for action: Search"

    @pytest.mark.asyncio
    async def test_provider_failure_passed_through(self):
        failure = ActionFailure(message="No search query provided", is_recoverable=True)
        providers = _providers()
        providers[ActionType.SEARCH] = FakeProvider("Search", result=failure)
        pipeline = _pipeline(providers=providers)

        result = await pipeline.process("search for cats")

        assert result is failure
        assert pipeline.current_step.display_text == "Failed"


# ------------------------------------------------------------------
# Workflows
# ------------------------------------------------------------------


class TestWorkflows:
    @pytest.mark.asyncio
    async def test_workflows_off_by_default(self):
        providers = _providers()
        pipeline = _pipeline(providers=providers)

        await pipeline.process("search for hotels and email the list")

        assert len(providers[ActionType.SEARCH].executed) == 1
        assert providers[ActionType.SUMMARIZE].executed == []

    @pytest.mark.asyncio
    async def test_heuristic_workflow(self):
        providers = _providers()
        providers[ActionType.SEARCH] = FakeProvider(
            "Search", result=ActionSuccess(message="found", result_text="hotel list"),
        )
        providers[ActionType.SUMMARIZE] = FakeProvider(
            "Summarize", result=ActionSuccess(message="summarized", result_text="short list"),
        )
        pipeline = _pipeline(providers=providers)
        steps = []
        pipeline.subscribe(steps.append)

        result = await pipeline.process("search for hotels and email the list", use_workflows=True)

        assert result.message == "Reply done"
        assert providers[ActionType.SUMMARIZE].executed[0].content == "hotel list"
        assert providers[ActionType.REPLY].executed[0].content == "short list"
        assert steps[2].action == ActionType.SEARCH

    @pytest.mark.asyncio
    async def test_workflow_failure(self):
        providers = _providers()
        providers[ActionType.SEARCH] = FakeProvider(
            "Search", result=ActionFailure(message="offline", is_recoverable=True),
        )
        pipeline = _pipeline(providers=providers, use_workflows=True)

        result = await pipeline.process("search for hotels and email the list")

        assert result.message == "Workflow failed at step 1: offline"
        assert providers[ActionType.SUMMARIZE].executed == []

    @pytest.mark.asyncio
    async def test_single_action_when_no_template(self):
        providers = _providers()
        pipeline = _pipeline(providers=providers, use_workflows=True)

        await pipeline.process("open Safari and then open Mail")

        assert len(providers[ActionType.OPEN].executed) == 1


# ------------------------------------------------------------------
# Run log and wiring
# ------------------------------------------------------------------


class TestRunLog:
    @pytest.mark.asyncio
    async def test_run_recorded(self, tmp_path):
        run_log = RunLog(tmp_path / "runs.jsonl")
        pipeline = _pipeline(run_log=run_log)

        await pipeline.process("search for cats")

        entries = run_log.read_entries()
        assert len(entries) == 1
        assert entries[0].transcription == "search for cats"
        assert entries[0].action == ActionType.SEARCH
        assert entries[0].source == ClassificationSource.RULES
        assert entries[0].success is True

    @pytest.mark.asyncio
    async def test_log_write_error_does_not_fail_run(self):
        run_log = MagicMock(spec=RunLog)
        run_log.log_run.side_effect = OSError("disk full")
        pipeline = _pipeline(run_log=run_log)

        result = await pipeline.process("hello")

        assert result.is_success

    @pytest.mark.asyncio
    async def test_unencodable_transcription_still_returns_result(self, tmp_path):
        pipeline = _pipeline(run_log=RunLog(tmp_path / "runs.jsonl"))

        # Undecodable argv bytes arrive as lone surrogates.
        result = await pipeline.process("search for caf\udce9")

        assert isinstance(result, ActionSuccess)
        await asyncio.sleep(0.05)
        assert pipeline.current_step.phase == AgentPhase.IDLE


class TestCreatePipeline:
    @pytest.mark.asyncio
    async def test_dictation_end_to_end(self):
        pipeline = create_pipeline(FakeGeneration(configured=False), reset_delay=0.01)

        result = await pipeline.process("remember to buy milk")

        assert isinstance(result, ActionSuccess)
        assert result.result_text == "remember to buy milk"
        assert result.should_paste is True

    @pytest.mark.asyncio
    async def test_search_uses_injected_opener(self):
        opener = MagicMock(return_value=0)
        pipeline = create_pipeline(
            FakeGeneration(configured=False),
            opener=opener,
            search_url_template="https://duckduckgo.com/?q={query}",
            reset_delay=0.01,
        )

        result = await pipeline.process("search for espresso machines")

        opener.assert_called_once_with("https://duckduckgo.com/?q=espresso+machines")
        assert result.message == "Searching for: espresso machines"

    @pytest.mark.asyncio
    async def test_llm_classification_and_generation(self):
        generation = FakeGeneration([
            '{"action": "summarize", "content": "the meeting notes", "confidence": 0.9}',
            "Short summary.",
        ])
        pipeline = create_pipeline(generation, reset_delay=0.01)

        result = await pipeline.process("give me the gist of the meeting notes")

        assert result.message == "Text summarized"
        assert result.result_text == "Short summary."

    @pytest.mark.parametrize("threshold", [0.5, 0.9])
    @pytest.mark.asyncio
    async def test_threshold_passed_to_orchestrator(self, threshold):
        pipeline = create_pipeline(FakeGeneration(configured=False), confidence_threshold=threshold)

        assert pipeline._orchestrator.confidence_threshold == threshold
