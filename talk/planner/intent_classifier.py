"""LLM intent classifier: classifies a transcription via the generation service.

Stateless apart from the injected service. Raises on any service or parse
failure; deciding what to do about that is the orchestrator's job.
"""

import json
import logging

from pydantic import ValidationError

from talk.integrations.generation import (
    GenerationService,
    LLMError,
    LLMErrorKind,
    strip_code_fences,
)
from talk.schemas.context import AppContext
from talk.schemas.intent import Intent, IntentClassificationResponse

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an intent classifier for a desktop voice assistant. Classify the \
user's spoken command into an action.

## Actions

- search: Find information online (search/look up/find/google)
- create: Create something new: calendar event, meeting, reminder, note, \
document (create/make/new/add/schedule/set up)
- open: Open/launch/switch to an existing app or URL only
- reply: Reply to or draft an email/message (reply/respond/draft/compose/send \
email/message)
- transform: Modify existing text (convert/rewrite/format)
- summarize: Summarize content (summarize/sum up/tldr)
- dictate: User just wants to type/paste text as-is (no action requested)

Respond ONLY with JSON (no markdown):
{"action": "<type>", "target": "<what to act on>", "parameters": {}, \
"content": "<text content>", "confidence": 0.0-1.0}

## Rules

1. If the user mentions calendar, event, meeting, invite, reminder, \
appointment → "create".
2. If the user mentions email, mail, draft, compose → "reply".
3. If the user mentions search, look up, find, google, weather → "search".
4. "open" is ONLY for launching apps/URLs, never for creating things.
5. "dictate" is ONLY when the user is dictating prose text with NO action words.
6. Natural phrasing like "let's add a meeting" or "can you schedule" = "create".
7. When in doubt between "dictate" and an action, prefer the action.
8. Assign a confidence score (0.0-1.0). Use lower scores when the intent is \
genuinely ambiguous.
"""

USER_PROMPT = """\
Context:
{context}

User said: {text}
"""


def build_prompt(text: str, context: AppContext) -> str:
    return SYSTEM_PROMPT + "\n" + USER_PROMPT.format(
        context=context.prompt_summary,
        text=text,
    )


def parse_classification(response: str, raw_text: str) -> Intent:
    """Decode the classifier's reply into an Intent.

    Raises:
        LLMError: INVALID_RESPONSE when the reply is not a JSON object
            carrying a numeric confidence.
    """
    cleaned = strip_code_fences(response)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise LLMError(LLMErrorKind.INVALID_RESPONSE, "reply is not JSON") from e

    if not isinstance(data, dict):
        raise LLMError(LLMErrorKind.INVALID_RESPONSE, "reply is not a JSON object")

    try:
        decoded = IntentClassificationResponse.model_validate(data)
    except ValidationError as e:
        raise LLMError(LLMErrorKind.INVALID_RESPONSE, "missing or invalid confidence") from e

    return decoded.to_intent(raw_text)


class LLMIntentClassifier:
    """Asynchronous classifier backed by a GenerationService."""

    def __init__(self, generation: GenerationService) -> None:
        self._generation = generation

    @property
    def is_available(self) -> bool:
        return self._generation.is_configured

    async def classify(self, text: str, context: AppContext) -> Intent:
        """Classify a transcription.

        Args:
            text: Raw transcription.
            context: Snapshot of the frontmost app, summarized into the prompt.

        Returns:
            The classified Intent, confidence as reported by the model.

        Raises:
            LLMError: On service failure or an unusable reply.
        """
        logger.info("Classifying intent via LLM: %s", text)

        response = await self._generation.enhance(text, build_prompt(text, context))
        intent = parse_classification(response, raw_text=text)

        logger.info(
            "LLM classified: action=%s confidence=%.2f content=%r",
            intent.action.value,
            intent.confidence,
            intent.content,
        )
        return intent
