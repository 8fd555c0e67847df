"""Classification orchestrator: one pass of the two-classifier cascade.

Two distinct fallbacks:

* classifier unavailable (not configured, error, unparsable reply)
  -> use the rule-based classifier;
* classifier unsure (confidence below threshold)
  -> plain dictation of the raw text, not a second opinion.
"""

import logging

from pydantic import BaseModel

from talk.planner.intent_classifier import LLMIntentClassifier
from talk.planner.rule_classifier import RuleBasedClassifier
from talk.schemas.context import AppContext
from talk.schemas.intent import Intent
from talk.schemas.pipeline import ClassificationSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7


class ClassificationOutcome(BaseModel):
    """Intent chosen by the cascade, with the branch that produced it."""

    intent: Intent
    source: ClassificationSource


class ClassificationOrchestrator:
    """Decides per utterance which classifier result to trust.

    The threshold is taken as given; clamping it is the configuration
    layer's responsibility.
    """

    def __init__(
        self,
        rules: RuleBasedClassifier,
        llm: LLMIntentClassifier | None = None,
        *,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self._rules = rules
        self._llm = llm
        self.confidence_threshold = confidence_threshold

    async def classify(self, text: str, context: AppContext) -> ClassificationOutcome:
        # 1. LLM unavailable
        if self._llm is None or not self._llm.is_available:
            logger.info("LLM classifier not configured, using rules")
            return self._from_rules(text)

        # 2. LLM failed
        try:
            intent = await self._llm.classify(text, context)
        except Exception as e:
            logger.warning("LLM classification failed (%s), using rules", e)
            return self._from_rules(text)

        # 3. LLM unsure
        if intent.confidence < self.confidence_threshold:
            logger.info(
                "Low confidence (%.2f < %.2f) for action %s, falling back to dictation",
                intent.confidence,
                self.confidence_threshold,
                intent.action.value,
            )
            return ClassificationOutcome(
                intent=Intent.dictation(text),
                source=ClassificationSource.LOW_CONFIDENCE,
            )

        # 4. LLM result
        return ClassificationOutcome(intent=intent, source=ClassificationSource.LLM)

    def _from_rules(self, text: str) -> ClassificationOutcome:
        intent = self._rules.classify(text)
        logger.info(
            "Rules classified: action=%s confidence=%.2f",
            intent.action.value,
            intent.confidence,
        )
        return ClassificationOutcome(intent=intent, source=ClassificationSource.RULES)
