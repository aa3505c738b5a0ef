from __future__ import annotations

from site_copilot.intents import (
    IntentTag,
    build_disambiguation_message,
    classify_intent,
    detect_intents,
    infer_audit_mode,
    requested_advisory_mode,
)
from site_copilot.models.recommendation import AuditMode


def test_single_intents():
    assert classify_intent("add a testimonials section").tag == IntentTag.build
    assert classify_intent("rewrite the hero headline").tag == IntentTag.content
    assert classify_intent("what's next?").tag == IntentTag.recommendation
    assert classify_intent("why did you pick that?").tag == IntentTag.explain
    assert classify_intent("hello there").tag == IntentTag.none


def test_structural_verbs_veto_content():
    assert detect_intents("add a headline section") == [IntentTag.build]


def test_release_suppresses_build():
    result = classify_intent("create a preview")

    assert result.tag == IntentTag.release
    assert result.fired == (IntentTag.build, IntentTag.release)


def test_audit_suppresses_content():
    assert classify_intent("audit the copy").tag == IntentTag.audit
    assert infer_audit_mode("audit the copy") == AuditMode.content


def test_advisory_mode_wins_over_everything():
    assert classify_intent("switch to prescriptive mode and publish").tag == IntentTag.advisory_mode
    assert requested_advisory_mode("Use Assistive mode") == "assistive"


def test_independent_intents_are_ambiguous():
    result = classify_intent("change the theme and publish")

    assert result.tag == IntentTag.ambiguous
    assert result.fired == (IntentTag.presentation, IntentTag.release)
    assert build_disambiguation_message(result.fired) == "I can handle theme/layout or release first. Which should I do?"


def test_disambiguation_lists_every_option():
    message = build_disambiguation_message([IntentTag.build, IntentTag.content, IntentTag.presentation])

    assert message == "I can handle structure, content, or theme/layout first. Which should I do?"


def test_audit_mode_defaults_to_full():
    assert infer_audit_mode("review my site") == AuditMode.full
    assert infer_audit_mode("check the tone") == AuditMode.voice
