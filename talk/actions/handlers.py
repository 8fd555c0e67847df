"""Generic action handlers, one per action kind.

These run when no app integration claims an intent. LLM-backed handlers
report service problems as recoverable failures carrying a suggestion.
"""

import asyncio
import logging
import subprocess
import sys
from collections.abc import Callable
from urllib.parse import quote_plus, urlsplit

import click

from talk.actions.base import ActionHandler
from talk.integrations.generation import GenerationService
from talk.schemas.context import AppContext
from talk.schemas.intent import ActionType, Intent
from talk.schemas.results import (
    ActionError,
    ActionErrorKind,
    ActionFailure,
    ActionSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_URL_TEMPLATE = "https://www.google.com/search?q={query}"

LLM_SUGGESTION = "Check that your LLM provider is configured and running"

ENHANCEMENT_PROMPT = """\
You are a transcription enhancement assistant. Your task is to improve \
dictated text while preserving the original meaning and voice.

Instructions:
1. Fix grammar, spelling, and punctuation errors
2. Add proper capitalization
3. Remove filler words (um, uh, like, you know, etc.)
4. Structure into sentences and paragraphs if appropriate
5. Keep the original intent and tone
6. Do NOT add any explanations or commentary

If the text contains specific instructions about formatting (e.g., "make this \
formal", "convert to bullet points"), follow those instructions.

Return ONLY the enhanced text, nothing else.
"""

EMAIL_REPLY_PROMPT = """\
You are an email writing assistant. Convert the following dictated content \
into a professional email reply.

Instructions:
1. Use proper email formatting with greeting and sign-off
2. Fix grammar and punctuation
3. Maintain a professional but friendly tone
4. Keep it concise
5. Do NOT add placeholders - use the content provided

Return ONLY the email text, nothing else.
"""

SUMMARIZATION_PROMPT = """\
You are a summarization assistant. Summarize the following text concisely \
while preserving key information.

Instructions:
1. Keep the summary to 2-4 sentences
2. Focus on the main points and actionable items
3. Preserve names, dates, and numbers
4. Use clear, direct language

Return ONLY the summary, nothing else.
"""

CREATE_PROMPT = """\
You are a content creation assistant. The user wants to create a {item_type}.
Format the following dictated content appropriately for a {item_type}.

Instructions:
1. Fix grammar, spelling, and punctuation
2. Format appropriately for the content type ({item_type})
3. Add structure (headings, bullet points) if appropriate
4. Keep the original meaning and intent

Return ONLY the formatted content, nothing else.
"""

Opener = Callable[[str], int]


def launch_app(name: str) -> int:
    """Launch an application by name. Returns the process exit status."""
    if sys.platform != "darwin":
        raise ActionError(ActionErrorKind.EXECUTION_FAILED, "opening apps by name needs macOS")
    result = subprocess.run(["open", "-a", name], capture_output=True, text=True)
    if result.returncode != 0:
        logger.warning("open -a %s failed: %s", name, result.stderr.strip())
    return result.returncode


def _has_scheme(target: str) -> bool:
    parts = urlsplit(target)
    return bool(parts.scheme) and (bool(parts.netloc) or parts.scheme == "mailto")


def _open_failure(url: str, status: int) -> ActionFailure:
    logger.warning("Opener failed for %s with status %d", url, status)
    return ActionFailure(
        message=f"Could not open {url}",
        error=ActionError(ActionErrorKind.EXECUTION_FAILED, f"exit status {status}"),
        is_recoverable=True,
        suggestion="Check that a default browser is set up",
    )


def _llm_failure(what: str, error: Exception) -> ActionFailure:
    return ActionFailure(
        message=f"Failed to {what}: {error}",
        error=error,
        is_recoverable=True,
        suggestion=LLM_SUGGESTION,
    )


class DictateHandler:
    """Hands the text to the output layer for pasting."""

    supported_actions = (ActionType.DICTATE,)

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        text = intent.content
        if not text:
            return ActionFailure(
                message="No text to dictate",
                is_recoverable=True,
                suggestion="Try speaking again",
            )
        return ActionSuccess(
            message=f"Dictated {len(text)} characters",
            result_text=text,
            should_paste=True,
        )


class TransformHandler:
    """Rewrites the selected text (or the dictated content) via the LLM."""

    supported_actions = (ActionType.TRANSFORM,)

    def __init__(self, generation: GenerationService) -> None:
        self._generation = generation

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        text = context.selected_text or intent.content
        if not text:
            return ActionFailure(
                message="No text to transform",
                error=ActionError(ActionErrorKind.NO_SELECTED_TEXT),
                is_recoverable=True,
                suggestion="Select some text or dictate the text you want to transform",
            )

        instruction = intent.parameters.get("instruction") or intent.target
        prompt = ENHANCEMENT_PROMPT
        if instruction:
            prompt = f"{ENHANCEMENT_PROMPT}\nAdditional instruction: {instruction}\n"

        try:
            result = await self._generation.enhance(text, prompt)
        except Exception as e:
            return _llm_failure("transform text", e)

        return ActionSuccess(message="Text transformed", result_text=result, should_paste=True)


class SearchHandler:
    """Opens a web search for the intent's content."""

    supported_actions = (ActionType.SEARCH,)

    def __init__(
        self,
        *,
        url_template: str = DEFAULT_SEARCH_URL_TEMPLATE,
        opener: Opener = click.launch,
    ) -> None:
        self._url_template = url_template
        self._opener = opener

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        query = intent.content.strip()
        if not query:
            return ActionFailure(
                message="No search query provided",
                is_recoverable=True,
                suggestion="Say what you want to search for",
            )

        url = self._url_template.format(query=quote_plus(query))
        status = self._opener(url)
        if status != 0:
            return _open_failure(url, status)
        logger.info("Opened search: %s", url)

        return ActionSuccess(
            message=f"Searching for: {query}",
            metadata={"url": url, "query": query},
        )


class OpenHandler:
    """Opens a URL, or launches an application by name."""

    supported_actions = (ActionType.OPEN,)

    def __init__(
        self,
        *,
        opener: Opener = click.launch,
        app_launcher: Opener = launch_app,
    ) -> None:
        self._opener = opener
        self._app_launcher = app_launcher

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        target = (intent.target or intent.content).strip()
        if not target:
            return ActionFailure(
                message="No app or URL specified",
                is_recoverable=True,
                suggestion="Say the name of the app or URL you want to open",
            )

        if _has_scheme(target):
            status = self._opener(target)
            if status != 0:
                return _open_failure(target, status)
            return ActionSuccess(message=f"Opened {target}", metadata={"url": target})

        try:
            status = await asyncio.to_thread(self._app_launcher, target)
        except ActionError as e:
            return ActionFailure(
                message=f"Could not open {target}: {e}",
                error=e,
                is_recoverable=True,
                suggestion="Open the app manually or say a URL instead",
            )

        if status != 0:
            return ActionFailure(
                message=f"Could not open {target}",
                error=ActionError(ActionErrorKind.EXECUTION_FAILED, f"exit status {status}"),
                is_recoverable=True,
                suggestion="Make sure the app name is correct and the app is installed",
            )

        return ActionSuccess(message=f"Opened {target}", metadata={"app": target})


class ReplyHandler:
    """Drafts a reply; email formatting when an email client is frontmost."""

    supported_actions = (ActionType.REPLY,)

    def __init__(self, generation: GenerationService) -> None:
        self._generation = generation

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        content = intent.content
        if not content:
            return ActionFailure(
                message="No reply content provided",
                is_recoverable=True,
                suggestion="Say what you want to reply with",
            )

        prompt = EMAIL_REPLY_PROMPT if context.is_email_client else ENHANCEMENT_PROMPT
        try:
            result = await self._generation.enhance(content, prompt)
        except Exception as e:
            return _llm_failure("generate reply", e)

        return ActionSuccess(message="Reply generated", result_text=result, should_paste=True)


class CreateHandler:
    """Formats dictated content as a note, document, etc."""

    supported_actions = (ActionType.CREATE,)

    def __init__(self, generation: GenerationService) -> None:
        self._generation = generation

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        content = intent.content
        if not content:
            return ActionFailure(
                message="No content provided for creation",
                is_recoverable=True,
                suggestion="Describe what you want to create",
            )

        item_type = intent.target or intent.parameters.get("type") or "note"
        try:
            result = await self._generation.enhance(content, CREATE_PROMPT.format(item_type=item_type))
        except Exception as e:
            return _llm_failure(f"create {item_type}", e)

        return ActionSuccess(
            message=f"{item_type.capitalize()} created",
            result_text=result,
            should_paste=True,
            metadata={"type": item_type},
        )


class SummarizeHandler:
    """Summarizes the selected text, or the intent's content."""

    supported_actions = (ActionType.SUMMARIZE,)

    def __init__(self, generation: GenerationService) -> None:
        self._generation = generation

    async def execute(self, intent: Intent, context: AppContext) -> ActionSuccess | ActionFailure:
        text = context.selected_text or intent.content
        if not text:
            return ActionFailure(
                message="No text to summarize",
                error=ActionError(ActionErrorKind.NO_SELECTED_TEXT),
                is_recoverable=True,
                suggestion="Select some text or provide content to summarize",
            )

        try:
            result = await self._generation.enhance(text, SUMMARIZATION_PROMPT)
        except Exception as e:
            return _llm_failure("summarize", e)

        return ActionSuccess(message="Text summarized", result_text=result, should_paste=True)


def default_handlers(
    generation: GenerationService,
    *,
    search_url_template: str = DEFAULT_SEARCH_URL_TEMPLATE,
    opener: Opener = click.launch,
    app_launcher: Opener = launch_app,
) -> dict[ActionType, ActionHandler]:
    """Build the standard action -> handler table."""
    return {
        ActionType.DICTATE: DictateHandler(),
        ActionType.TRANSFORM: TransformHandler(generation),
        ActionType.SEARCH: SearchHandler(url_template=search_url_template, opener=opener),
        ActionType.OPEN: OpenHandler(opener=opener, app_launcher=app_launcher),
        ActionType.REPLY: ReplyHandler(generation),
        ActionType.CREATE: CreateHandler(generation),
        ActionType.SUMMARIZE: SummarizeHandler(generation),
    }
