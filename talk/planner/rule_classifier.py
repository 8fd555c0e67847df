"""Rule-based intent classifier: deterministic fallback when no LLM is usable.

Rules are evaluated in order and the first match wins, so the list order is
the priority order: explicit email/reply phrasing sits above the generic
"create" rule. No I/O, never raises.
"""

import re

from talk.schemas.intent import ActionType, Intent

RULE_CONFIDENCE = 0.8
DICTATION_CONFIDENCE = 0.9

_RULE_DEFINITIONS: list[tuple[str, ActionType]] = [
    (r"^(?:search|look up|find|google)\s+(?:for\s+)?(.+)", ActionType.SEARCH),
    (r"^(?:open|launch|start|switch to)\s+(.+)", ActionType.OPEN),
    (
        r"^(?:draft|write|compose|send)\s+(?:an?\s+)?(?:email|mail|message)\s+(?:to\s+)?(.+)",
        ActionType.REPLY,
    ),
    (r"^(?:email|mail)\s+(.+)", ActionType.REPLY),
    (r"^(?:reply|respond|answer)\s+(?:saying|with|that)?\s*(.+)", ActionType.REPLY),
    (r"^(?:create|make|new|add)\s+(?:a\s+)?(.+)", ActionType.CREATE),
    (r"^(?:summarize|sum up|give me a summary|tldr)\s*(.+)?", ActionType.SUMMARIZE),
    (r"^(?:make|convert|rewrite|format)\s+(?:this|it|that)\s+(.+)", ActionType.TRANSFORM),
]

RULES: list[tuple[re.Pattern[str], ActionType]] = [
    (re.compile(pattern, re.IGNORECASE), action)
    for pattern, action in _RULE_DEFINITIONS
]

EMAIL_KEYWORDS = ("email", "mail", "draft", "compose")
MESSAGE_KEYWORDS = ("text", "imessage", "message")
RECIPIENT_SEPARATORS = (" about ", " saying ", " that ", " regarding ", " with ")

_RECIPIENT_MARKER = re.compile(r"to ", re.IGNORECASE)


class RuleBasedClassifier:
    """Pattern-based classifier. Construction is cheap and does no I/O."""

    def __init__(self, rules: list[tuple[re.Pattern[str], ActionType]] | None = None) -> None:
        self._rules = rules if rules is not None else RULES

    def classify(self, text: str) -> Intent:
        trimmed = text.strip()

        for pattern, action in self._rules:
            match = pattern.match(trimmed)
            if match is None:
                continue

            content = trimmed
            if match.re.groups >= 1:
                captured = (match.group(1) or "").strip()
                if captured:
                    content = captured

            return Intent(
                action=action,
                target=content if action == ActionType.OPEN else None,
                parameters=extract_parameters(trimmed),
                content=content,
                raw_text=text,
                confidence=RULE_CONFIDENCE,
            )

        return Intent(
            action=ActionType.DICTATE,
            content=trimmed,
            raw_text=text,
            confidence=DICTATION_CONFIDENCE,
        )


def extract_parameters(text: str) -> dict[str, str]:
    """Detect the medium and, for email, split out recipient and body.

    "email to Krista about the project" -> to="Krista", body="the project".
    """
    params: dict[str, str] = {}
    lower = text.lower()

    if any(keyword in lower for keyword in EMAIL_KEYWORDS):
        params["medium"] = "email"

        marker = _RECIPIENT_MARKER.search(text)
        if marker is not None:
            after_to = text[marker.end():].strip()
            recipient, body = after_to, ""
            after_lower = after_to.lower()
            for separator in RECIPIENT_SEPARATORS:
                position = after_lower.find(separator)
                if position != -1:
                    recipient = after_to[:position]
                    body = after_to[position + len(separator):].strip()
                    break
            params["to"] = recipient.strip()
            if body:
                params["body"] = body

    if any(keyword in lower for keyword in MESSAGE_KEYWORDS):
        params["medium"] = "message"

    return params
