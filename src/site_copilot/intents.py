from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from .models.recommendation import AuditMode


class IntentTag(str, Enum):
    build = "build"
    content = "content"
    presentation = "presentation"
    release = "release"
    audit = "audit"
    recommendation = "recommendation"
    advisory_mode = "advisory_mode"
    explain = "explain"
    none = "none"
    ambiguous = "ambiguous"


def _patterns(*expressions: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(expression, re.IGNORECASE) for expression in expressions)


INTENT_PATTERNS: Mapping[IntentTag, Sequence[re.Pattern[str]]] = {
    IntentTag.advisory_mode: _patterns(
        r"\b(prescriptive|assistive) mode\b",
        r"\b(enable|turn on|switch to|use) (prescriptive|assistive)\b",
    ),
    IntentTag.build: _patterns(
        r"\b(build|create|generate|start|plan|structure)\b",
        r"\bmake( me)? a site\b",
        r"\badd (a |an |the )?([\w-]+ )?(page|section)\b",
        r"\b(reorder|move)\b",
        r"\benable (the |a )?blog\b",
    ),
    IntentTag.content: _patterns(
        r"\b(copy|content|write|draft|headline|subhead|rewrite|rephrase|shorten|tighten|expand|proofread)\b",
        r"\bedit copy\b",
    ),
    IntentTag.presentation: _patterns(
        r"\b(theme|visual|look|style|aesthetic|palette|colou?r|typography|font|variant|layout|grid|columns?)\b",
    ),
    IntentTag.release: _patterns(
        r"\b(preview|publish|go live|launch|release|deploy|rollback|roll back|revert|share)\b",
    ),
    IntentTag.audit: _patterns(
        r"\b(audit|review|critic|critique|evaluate|assessment|assess|diagnose|issues|weakness(es)?)\b",
        r"\bwhat'?s wrong\b",
    ),
    IntentTag.recommendation: _patterns(
        r"\b(recommend|recommendations?|suggest|improve|optimi[sz]e|prioriti[sz]e)\b",
        r"\bwhat'?s next\b",
        r"\bnext step\b",
    ),
    IntentTag.explain: _patterns(
        r"\b(why|explain|reasoning|rationale)\b",
    ),
}

# A content verb used only for structure ("add", "remove", "move") does not make a content request.
INTENT_VETOES: Mapping[IntentTag, tuple[re.Pattern[str], re.Pattern[str]]] = {
    IntentTag.content: (
        re.compile(r"\b(add|remove|delete|reorder|move|enable|disable)\b", re.IGNORECASE),
        re.compile(r"\b(copy|content|write|draft)\b", re.IGNORECASE),
    ),
}

SUPPRESSES: Mapping[IntentTag, frozenset[IntentTag]] = {
    IntentTag.advisory_mode: frozenset(IntentTag) - {IntentTag.advisory_mode},
    IntentTag.audit: frozenset(
        {IntentTag.build, IntentTag.content, IntentTag.presentation, IntentTag.recommendation, IntentTag.explain}
    ),
    IntentTag.content: frozenset({IntentTag.build, IntentTag.recommendation, IntentTag.explain}),
    IntentTag.presentation: frozenset({IntentTag.build, IntentTag.recommendation, IntentTag.explain}),
    IntentTag.release: frozenset({IntentTag.build, IntentTag.recommendation, IntentTag.explain}),
    IntentTag.build: frozenset({IntentTag.recommendation, IntentTag.explain}),
    IntentTag.recommendation: frozenset({IntentTag.explain}),
}

DISAMBIGUATION_LABELS: Mapping[IntentTag, str] = {
    IntentTag.build: "structure",
    IntentTag.content: "content",
    IntentTag.presentation: "theme/layout",
    IntentTag.release: "release",
}

AUDIT_MODE_PATTERNS: Sequence[tuple[AuditMode, re.Pattern[str]]] = (
    (AuditMode.structure, re.compile(r"\bstructur", re.IGNORECASE)),
    (AuditMode.content, re.compile(r"\b(content|copy)\b", re.IGNORECASE)),
    (AuditMode.voice, re.compile(r"\b(voice|tone)\b", re.IGNORECASE)),
    (AuditMode.presentation, re.compile(r"\b(presentation|theme|visual)", re.IGNORECASE)),
    (AuditMode.conversion, re.compile(r"\b(conversion|cta|action)\b", re.IGNORECASE)),
    (AuditMode.coherence, re.compile(r"\b(coherence|alignment|consisten)", re.IGNORECASE)),
)

ADVISORY_MODE_PATTERN = re.compile(r"\b(prescriptive|assistive)\b", re.IGNORECASE)


@dataclass(frozen=True)
class IntentClassification:
    tag: IntentTag
    fired: tuple[IntentTag, ...] = ()


def detect_intents(text: str) -> list[IntentTag]:
    fired = []
    for tag, patterns in INTENT_PATTERNS.items():
        if not any(pattern.search(text) for pattern in patterns):
            continue
        veto = INTENT_VETOES.get(tag)
        if veto and veto[0].search(text) and not veto[1].search(text):
            continue
        fired.append(tag)
    return fired


def classify_intent(text: str) -> IntentClassification:
    """Map a message onto exactly one intent, or ``ambiguous`` when independent intents collide."""
    fired = detect_intents(text)
    suppressed: set[IntentTag] = set()
    for tag in fired:
        suppressed |= SUPPRESSES.get(tag, frozenset())
    remaining = tuple(tag for tag in fired if tag not in suppressed)
    if not remaining:
        return IntentClassification(IntentTag.none, tuple(fired))
    if len(remaining) > 1:
        return IntentClassification(IntentTag.ambiguous, remaining)
    return IntentClassification(remaining[0], tuple(fired))


def infer_audit_mode(text: str) -> AuditMode:
    for mode, pattern in AUDIT_MODE_PATTERNS:
        if pattern.search(text):
            return mode
    return AuditMode.full


def requested_advisory_mode(text: str) -> str | None:
    match = ADVISORY_MODE_PATTERN.search(text)
    return match.group(1).lower() if match else None


def build_disambiguation_message(tags: Sequence[IntentTag]) -> str:
    labels = [DISAMBIGUATION_LABELS.get(tag, tag.value) for tag in tags]
    if len(labels) > 1:
        options = f"{', '.join(labels[:-1])}, or {labels[-1]}" if len(labels) > 2 else " or ".join(labels)
    else:
        options = labels[0]
    return f"I can handle {options} first. Which should I do?"


__all__ = [
    "INTENT_PATTERNS",
    "INTENT_VETOES",
    "IntentClassification",
    "IntentTag",
    "SUPPRESSES",
    "build_disambiguation_message",
    "classify_intent",
    "detect_intents",
    "infer_audit_mode",
    "requested_advisory_mode",
]
