"""CLI entry point for the Talk agent pipeline.

Commands:
    talk process    Run a transcription through the full pipeline
    talk classify   Show how a transcription is classified
    talk route      Show which provider would handle a transcription
    talk log        Show recent pipeline runs
"""

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import click

from talk.config import (
    COMPLETE_RESET_DELAY,
    CONFIDENCE_THRESHOLD,
    ENABLE_WORKFLOWS,
    LLM_ENABLED,
    OLLAMA_BASE_URL,
    OLLAMA_KEEP_ALIVE,
    OLLAMA_MODEL,
    OLLAMA_TIMEOUT,
    RUN_LOG_PATH,
    SEARCH_URL_TEMPLATE,
)
from talk.schemas.context import AppContext

logger = logging.getLogger("talk")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Talk: turn a spoken command into one executed action."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def context_options(f):
    """Options describing the frontmost app (defaults to the empty context)."""
    options = [
        click.option("--app-id", default=None, help="Bundle identifier of the frontmost app."),
        click.option("--app-name", default=None, help="Display name of the frontmost app."),
        click.option("--window-title", default=None, help="Title of the focused window."),
        click.option("--selected-text", default=None, help="Currently selected text."),
        click.option("--url", default=None, help="Current browser URL."),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _build_context(
    app_id: str | None,
    app_name: str | None,
    window_title: str | None,
    selected_text: str | None,
    url: str | None,
) -> AppContext:
    empty = AppContext.empty()
    return AppContext(
        bundle_identifier=app_id or empty.bundle_identifier,
        app_name=app_name or app_id or empty.app_name,
        window_title=window_title,
        selected_text=selected_text,
        url=url,
    )


@asynccontextmanager
async def _open_generation(model: str | None, rules_only: bool) -> AsyncIterator:
    """Yield a generation service: Ollama-backed, or disabled."""
    from talk.integrations.generation import DisabledGenerationService, OllamaGenerationService
    from talk.integrations.ollama import OllamaClient

    if rules_only or not LLM_ENABLED:
        yield DisabledGenerationService()
        return

    async with OllamaClient(
        OLLAMA_BASE_URL,
        default_keep_alive=OLLAMA_KEEP_ALIVE,
        timeout=OLLAMA_TIMEOUT,
    ) as ollama:
        model = model or OLLAMA_MODEL or None
        if model is None:
            try:
                model = await ollama.pick_instruct_model()
            except Exception as e:
                logger.warning("Could not reach Ollama at %s (%s)", OLLAMA_BASE_URL, e)
            if model is None:
                click.echo("No Ollama model available, using rule-based classification.", err=True)
                yield DisabledGenerationService()
                return
            click.echo(f"Auto-selected model: {model}", err=True)

        yield OllamaGenerationService(ollama, model, keep_alive=OLLAMA_KEEP_ALIVE)


def _echo_opener(target: str) -> int:
    click.echo(f"Would open: {target}")
    return 0


def _echo_step(step) -> None:
    if step.display_text:
        click.echo(step.display_text, err=True)


# ------------------------------------------------------------------
# talk process
# ------------------------------------------------------------------


@cli.command()
@click.argument("text")
@context_options
@click.option("--model", "-m", default=None, help="Ollama model name (auto-detected if omitted).")
@click.option("--rules-only", is_flag=True, help="Skip the LLM and classify with rules only.")
@click.option(
    "--workflow/--no-workflow",
    default=ENABLE_WORKFLOWS,
    show_default=True,
    help="Decompose multi-step commands into workflows.",
)
@click.option("--launch/--no-launch", default=True, show_default=True, help="Actually open URLs and apps.")
@click.option("--no-log", is_flag=True, help="Do not append to the run log.")
def process(
    text: str,
    app_id: str | None,
    app_name: str | None,
    window_title: str | None,
    selected_text: str | None,
    url: str | None,
    model: str | None,
    rules_only: bool,
    workflow: bool,
    launch: bool,
    no_log: bool,
) -> None:
    """Run TEXT through the full agent pipeline."""
    context = _build_context(app_id, app_name, window_title, selected_text, url)
    asyncio.run(_process_async(text, context, model, rules_only, workflow, launch, no_log))


async def _process_async(
    text: str,
    context: AppContext,
    model: str | None,
    rules_only: bool,
    workflow: bool,
    launch: bool,
    no_log: bool,
) -> None:
    from talk.audit.logger import RunLog
    from talk.orchestrator.pipeline import create_pipeline
    from talk.schemas.results import ActionSuccess

    handler_kwargs = {} if launch else {"opener": _echo_opener, "app_launcher": _echo_opener}

    async with _open_generation(model, rules_only) as generation:
        pipeline = create_pipeline(
            generation,
            context_provider=lambda: context,
            confidence_threshold=CONFIDENCE_THRESHOLD,
            search_url_template=SEARCH_URL_TEMPLATE,
            run_log=None if no_log else RunLog(RUN_LOG_PATH),
            reset_delay=COMPLETE_RESET_DELAY,
            use_workflows=workflow,
            **handler_kwargs,
        )
        pipeline.subscribe(_echo_step)
        result = await pipeline.process(text)

    if isinstance(result, ActionSuccess):
        click.echo(f"OK: {result.message}")
        if result.should_paste and result.result_text:
            click.echo("")
            click.echo(result.result_text)
        for key, value in result.metadata.items():
            click.echo(f"  {key}: {value}")
    else:
        click.echo(f"Failed: {result.message}", err=True)
        if result.suggestion:
            click.echo(f"  Suggestion: {result.suggestion}", err=True)
        sys.exit(1)


# ------------------------------------------------------------------
# talk classify
# ------------------------------------------------------------------


@cli.command()
@click.argument("text")
@context_options
@click.option("--model", "-m", default=None, help="Ollama model name (auto-detected if omitted).")
@click.option("--rules-only", is_flag=True, help="Skip the LLM and classify with rules only.")
def classify(
    text: str,
    app_id: str | None,
    app_name: str | None,
    window_title: str | None,
    selected_text: str | None,
    url: str | None,
    model: str | None,
    rules_only: bool,
) -> None:
    """Show how TEXT is classified."""
    context = _build_context(app_id, app_name, window_title, selected_text, url)
    outcome = asyncio.run(_classify_async(text, context, model, rules_only))
    click.echo(json.dumps(
        {"source": outcome.source.value, **outcome.intent.model_dump(mode="json")},
        indent=2,
    ))


async def _classify_async(text: str, context: AppContext, model: str | None, rules_only: bool):
    from talk.planner.intent_classifier import LLMIntentClassifier
    from talk.planner.orchestrator import ClassificationOrchestrator
    from talk.planner.rule_classifier import RuleBasedClassifier

    async with _open_generation(model, rules_only) as generation:
        orchestrator = ClassificationOrchestrator(
            RuleBasedClassifier(),
            LLMIntentClassifier(generation),
            confidence_threshold=CONFIDENCE_THRESHOLD,
        )
        return await orchestrator.classify(text, context)


# ------------------------------------------------------------------
# talk route
# ------------------------------------------------------------------


@cli.command()
@click.argument("text")
@context_options
def route(
    text: str,
    app_id: str | None,
    app_name: str | None,
    window_title: str | None,
    selected_text: str | None,
    url: str | None,
) -> None:
    """Show which provider would handle TEXT (rule-based, nothing executed)."""
    from talk.actions.handlers import default_handlers
    from talk.integrations.generation import DisabledGenerationService
    from talk.orchestrator.router import ActionRouter
    from talk.planner.rule_classifier import RuleBasedClassifier

    context = _build_context(app_id, app_name, window_title, selected_text, url)
    intent = RuleBasedClassifier().classify(text)
    router = ActionRouter(default_handlers(DisabledGenerationService()))
    decision = router.resolve(intent, context)

    click.echo(f"Action: {intent.action.value} (confidence {intent.confidence:.0%})")
    if intent.parameters:
        click.echo(f"Parameters: {intent.parameters}")
    if decision is None:
        click.echo("Provider: none registered")
        return
    click.echo(f"Provider: {decision.provider_name} ({decision.tier.value})")


# ------------------------------------------------------------------
# talk log
# ------------------------------------------------------------------


@cli.command(name="log")
@click.option("--limit", "-n", default=20, show_default=True, help="Number of runs to show.")
def show_log(limit: int) -> None:
    """Show the most recent pipeline runs."""
    from talk.audit.logger import RunLog

    entries = RunLog(RUN_LOG_PATH).read_entries(limit=limit)
    if not entries:
        click.echo("No runs logged yet.")
        return

    for entry in entries:
        status = "ok  " if entry.success else "FAIL"
        steps = f" [{entry.workflow_steps} steps]" if entry.workflow_steps else ""
        click.echo(
            f"{entry.timestamp:%Y-%m-%d %H:%M:%S} {status} {entry.action.value:<9} "
            f"{entry.confidence:.2f} {entry.source.value:<14} {entry.transcription!r}{steps}"
        )
        click.echo(f"    {entry.message}")
