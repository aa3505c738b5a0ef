from __future__ import annotations

from site_copilot.models.contracts import IntentMutation
from site_copilot.parsing import (
    is_affirmative,
    is_negative,
    normalize_answer,
    parse_blog_presence,
    parse_intake_answers,
    parse_intent_decision,
    parse_selection,
    parse_voice_answers,
)


def test_confirmation_words():
    assert is_affirmative("Yes!")
    assert is_affirmative("sounds good.")
    assert not is_affirmative("yes, but change the hero")
    assert is_negative("Not now.")
    assert not is_negative("no idea what you mean")


def test_labeled_intake_answers():
    answers = parse_intake_answers("Purpose: Portfolio\nAudience - founders\nBlog: not sure")

    assert answers == {"purpose": "Portfolio", "audience": "founders", "blog": "undecided"}


def test_numbered_answers_map_onto_asked_fields():
    answers = parse_intake_answers("1. Founders\n2. yes", asked=["audience", "blog"])

    assert answers == {"audience": "Founders", "blog": "yes"}


def test_tone_is_reduced_to_a_direction():
    answers = parse_intake_answers("Tone: Expressive, a little bold")

    assert answers == {"tone": "expressive"}


def test_blog_presence():
    assert parse_blog_presence("No thanks") == "no"
    assert parse_blog_presence("Yes please") == "yes"
    assert parse_blog_presence("maybe later") == "undecided"
    assert parse_blog_presence("I love cats") is None


def test_answers_lose_surrounding_quotes():
    assert normalize_answer(' "Book a call" ') == "Book a call"


def test_voice_answers_drop_unknown_options():
    answers = parse_voice_answers("1. Professional\n2. loud\n3. direct")

    assert answers == {"audience_level": "professional", "assertiveness": "direct"}


def test_labeled_voice_answers():
    assert parse_voice_answers("Tone: expressive\nVerbosity: rich.") == {"tone": "expressive", "verbosity": "rich"}


def test_intent_decision():
    assert parse_intent_decision("1") == IntentMutation.confirm
    assert parse_intent_decision("yes") == IntentMutation.confirm
    assert parse_intent_decision("Make it calmer") == IntentMutation.calmer
    assert parse_intent_decision("bolder please") == IntentMutation.bolder
    assert parse_intent_decision("4") == IntentMutation.minimal
    assert parse_intent_decision("what?") is None


def test_selection():
    assert parse_selection("2") == 2
    assert parse_selection("option 3") == 3
    assert parse_selection("#1") == 1
    assert parse_selection("the second one") == 2
    assert parse_selection("none of these") is None
