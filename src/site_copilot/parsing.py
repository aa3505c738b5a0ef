from __future__ import annotations

import re
from typing import Mapping, Sequence

from .catalog import INTAKE_FIELDS, VOICE_FIELDS, VOICE_OPTIONS
from .models.contracts import IntentMutation

AFFIRMATIVE = re.compile(
    r"^(yes|yep|yeah|y|sure|ok|okay|do it|proceed|go ahead|sounds good|yes please|please proceed)$"
)
NEGATIVE = re.compile(r"^(no|nope|nah|not now|stop|not yet)$")

NUMBERED_LINE = re.compile(r"^\s*(\d+)[).:\-]\s*(.+)$", re.MULTILINE)

INTAKE_LABELS: Mapping[str, str] = {
    "site purpose": "purpose",
    "purpose": "purpose",
    "audience": "audience",
    "primary action": "action",
    "primary conversion": "action",
    "conversion": "action",
    "action": "action",
    "tone axis": "tone",
    "tone": "tone",
    "blog": "blog",
}

VOICE_LABELS: Mapping[str, str] = {
    "audience level": "audience_level",
    "tone": "tone",
    "assertiveness": "assertiveness",
    "verbosity": "verbosity",
}

ORDINALS: Mapping[str, int] = {"first": 1, "second": 2, "third": 3, "fourth": 4}


def _normalize(message: str) -> str:
    return re.sub(r"[.!]+$", "", message.strip().lower()).strip()


def is_affirmative(message: str) -> bool:
    return bool(AFFIRMATIVE.match(_normalize(message)))


def is_negative(message: str) -> bool:
    return bool(NEGATIVE.match(_normalize(message)))


def normalize_answer(value: str) -> str:
    return value.strip().strip("\"'“”‘’").strip()


def parse_blog_presence(value: str) -> str | None:
    text = _normalize(value)
    if re.search(r"\b(undecided|not sure|unsure|maybe)\b", text):
        return "undecided"
    if re.search(r"\b(not required|no|n|nope|nah)\b", text):
        return "no"
    if re.search(r"\b(yes|y|sure|yeah|yep|required)\b", text):
        return "yes"
    return None


def normalize_tone(value: str) -> str:
    lowered = value.lower()
    if "expressive" in lowered:
        return "expressive"
    if "conservative" in lowered:
        return "conservative"
    return value


def _labeled_answers(message: str, labels: Mapping[str, str]) -> dict[str, str]:
    answers: dict[str, str] = {}
    alternation = "|".join(re.escape(label) for label in sorted(labels, key=len, reverse=True))
    pattern = re.compile(rf"^\s*(?:\d+[).:\-]\s*)?({alternation})\s*[:=\-]\s*(.+)$", re.IGNORECASE | re.MULTILINE)
    for match in pattern.finditer(message):
        field = labels[match.group(1).lower()]
        answers.setdefault(field, normalize_answer(match.group(2)))
    return answers


def _numbered_answers(message: str, fields: Sequence[str]) -> dict[str, str]:
    answers: dict[str, str] = {}
    for match in NUMBERED_LINE.finditer(message):
        index = int(match.group(1)) - 1
        if 0 <= index < len(fields):
            answers[fields[index]] = normalize_answer(match.group(2))
    return answers


def parse_intake_answers(message: str, asked: Sequence[str] = INTAKE_FIELDS) -> dict[str, str]:
    """Extract intake answers from labeled lines, else numbered lines mapped onto ``asked``."""
    answers = _labeled_answers(message, INTAKE_LABELS)
    if not answers:
        answers = _numbered_answers(message, asked)

    resolved: dict[str, str] = {}
    for field, value in answers.items():
        if not value:
            continue
        if field == "blog":
            blog = parse_blog_presence(value)
            if blog:
                resolved["blog"] = blog
        elif field == "tone":
            resolved["tone"] = normalize_tone(value)
        else:
            resolved[field] = value
    return resolved


def parse_voice_answers(message: str, asked: Sequence[str] = VOICE_FIELDS) -> dict[str, str]:
    answers = _labeled_answers(message, VOICE_LABELS)
    if not answers:
        answers = _numbered_answers(message, asked)

    resolved: dict[str, str] = {}
    for field, value in answers.items():
        option = _normalize(value)
        if option in VOICE_OPTIONS[field]:
            resolved[field] = option
    return resolved


def parse_intent_decision(message: str) -> IntentMutation | None:
    text = message.strip().lower()
    if not text:
        return None
    if text == "1" or re.match(r"^confirm\b", text) or is_affirmative(text):
        return IntentMutation.confirm
    if text == "2" or "calmer" in text:
        return IntentMutation.calmer
    if text == "3" or "bolder" in text:
        return IntentMutation.bolder
    if text == "4" or "minimal" in text:
        return IntentMutation.minimal
    return None


def parse_selection(message: str) -> int | None:
    """1-based index from "2", "option 2", "the second one"."""
    text = _normalize(message)
    match = re.fullmatch(r"(?:option\s*|#|number\s*)?(\d)", text)
    if match:
        return int(match.group(1))
    for word, index in ORDINALS.items():
        if re.search(rf"\b{word}\b", text):
            return index
    return None


__all__ = [
    "is_affirmative",
    "is_negative",
    "normalize_answer",
    "normalize_tone",
    "parse_blog_presence",
    "parse_intake_answers",
    "parse_intent_decision",
    "parse_selection",
    "parse_voice_answers",
]
