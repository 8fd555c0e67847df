"""Tests for the rule-based intent classifier."""

import pytest

from talk.planner.rule_classifier import (
    DICTATION_CONFIDENCE,
    RULE_CONFIDENCE,
    RuleBasedClassifier,
    extract_parameters,
)
from talk.schemas.intent import ActionType


@pytest.fixture()
def classifier():
    return RuleBasedClassifier()


# ------------------------------------------------------------------
# Rule matches
# ------------------------------------------------------------------


class TestRuleMatches:
    def test_search(self, classifier):
        intent = classifier.classify("search for espresso machines")

        assert intent.action == ActionType.SEARCH
        assert intent.content == "espresso machines"
        assert intent.confidence == 0.8

    def test_capture_stops_at_line_break(self, classifier):
        intent = classifier.classify("search for cats\nand dogs")

        assert intent.action == ActionType.SEARCH
        assert intent.content == "cats"

    def test_look_up_without_for(self, classifier):
        intent = classifier.classify("look up the weather in Lisbon")

        assert intent.action == ActionType.SEARCH
        assert intent.content == "the weather in Lisbon"

    def test_create_uses_capture_group(self, classifier):
        intent = classifier.classify("create a reminder to call mom tomorrow")

        assert intent.action == ActionType.CREATE
        assert intent.content == "reminder to call mom tomorrow"
        assert intent.confidence == RULE_CONFIDENCE
        assert "medium" not in intent.parameters

    def test_open_sets_target(self, classifier):
        intent = classifier.classify("open Spotify")

        assert intent.action == ActionType.OPEN
        assert intent.target == "Spotify"
        assert intent.content == "Spotify"

    def test_case_insensitive(self, classifier):
        intent = classifier.classify("SEARCH FOR cheap flights")

        assert intent.action == ActionType.SEARCH
        assert intent.content == "cheap flights"

    def test_transform(self, classifier):
        intent = classifier.classify("rewrite this more formally")

        assert intent.action == ActionType.TRANSFORM
        assert intent.content == "more formally"

    def test_reply(self, classifier):
        intent = classifier.classify("reply saying I'll be there at noon")

        assert intent.action == ActionType.REPLY
        assert intent.content == "I'll be there at noon"

    def test_summarize_without_content_uses_full_text(self, classifier):
        intent = classifier.classify("summarize")

        assert intent.action == ActionType.SUMMARIZE
        assert intent.content == "summarize"

    def test_summarize_with_content(self, classifier):
        intent = classifier.classify("summarize this article")

        assert intent.action == ActionType.SUMMARIZE
        assert intent.content == "this article"


class TestRuleOrder:
    def test_compose_email_beats_create(self, classifier):
        """Explicit email phrasing is checked before generic create phrasing."""
        intent = classifier.classify("compose an email to Krista about the launch")

        assert intent.action == ActionType.REPLY
        assert intent.content == "Krista about the launch"

    def test_make_matches_create_before_transform(self, classifier):
        """First match wins: 'make' hits the create rule before transform."""
        intent = classifier.classify("make this shorter")

        assert intent.action == ActionType.CREATE
        assert intent.content == "this shorter"

    def test_email_prefix(self, classifier):
        intent = classifier.classify("email Bob the quarterly numbers")

        assert intent.action == ActionType.REPLY
        assert intent.content == "Bob the quarterly numbers"


# ------------------------------------------------------------------
# Dictation fallback
# ------------------------------------------------------------------


class TestDictationFallback:
    def test_no_match_is_dictation(self, classifier):
        text = "hey just taking some notes about the meeting"
        intent = classifier.classify(text)

        assert intent.action == ActionType.DICTATE
        assert intent.confidence == DICTATION_CONFIDENCE == 0.9
        assert intent.content == text

    def test_content_is_trimmed_raw_text_is_not(self, classifier):
        intent = classifier.classify("   the quick brown fox  \n")

        assert intent.content == "the quick brown fox"
        assert intent.raw_text == "   the quick brown fox  \n"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", "🙂", "search", "open"])
    def test_never_raises(self, classifier, text):
        intent = classifier.classify(text)

        assert 0.0 <= intent.confidence <= 1.0
        assert intent.content == text.strip()

    def test_rule_match_below_dictation_baseline(self):
        assert RULE_CONFIDENCE < DICTATION_CONFIDENCE


# ------------------------------------------------------------------
# Parameter extraction
# ------------------------------------------------------------------


class TestParameters:
    def test_email_recipient_and_body(self):
        params = extract_parameters("send an email to Krista about the project timeline")

        assert params["medium"] == "email"
        assert params["to"] == "Krista"
        assert params["body"] == "the project timeline"

    def test_email_recipient_without_body(self):
        params = extract_parameters("draft an email to Sam")

        assert params["medium"] == "email"
        assert params["to"] == "Sam"
        assert "body" not in params

    def test_separator_priority(self):
        """Separators are tried in fixed order, not by position."""
        params = extract_parameters("email to Ana saying hi about lunch")

        assert params["to"] == "Ana saying hi"
        assert params["body"] == "lunch"

    def test_message_medium(self):
        params = extract_parameters("text Jamie that I'm running late")

        assert params["medium"] == "message"

    def test_message_overrides_email(self):
        params = extract_parameters("compose a message to Lee")

        assert params["medium"] == "message"
        assert params["to"] == "Lee"

    def test_no_medium(self):
        assert extract_parameters("search for espresso machines") == {}

    def test_classifier_attaches_parameters(self, classifier):
        intent = classifier.classify("write an email to Dana regarding invoices")

        assert intent.parameters == {"medium": "email", "to": "Dana", "body": "invoices"}
