from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, Iterable, Mapping, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from .catalog import (
    ALLOWED_SECTIONS,
    BLOG_ONLY_SECTIONS,
    DISALLOWED_PLAN_FIELDS,
    PAGE_GOALS,
    PAGE_IDS,
    SECTIONS,
    is_hero,
)
from .models.site import PlanPage, SitePlan

T = TypeVar("T")


@dataclass
class ValidationResult(Generic[T]):
    value: T | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Content schemas
# ---------------------------------------------------------------------------


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


Text = Annotated[str, AfterValidator(_not_blank)]


class _Content(BaseModel):
    model_config = ConfigDict(extra="forbid")


class HeroEditorial(_Content):
    headline: Text
    subhead: Text | None = None
    primary_action_label: Text | None = None


class HeroSplit(_Content):
    headline: Text
    subhead: Text | None = None
    primary_action_label: Text | None = None
    secondary_action_label: Text | None = None


class HeroMinimal(_Content):
    headline: Text
    subhead: Text | None = None


class Metric(_Content):
    label: Text
    value: Text


class ProofMetrics(_Content):
    metrics: list[Metric] = Field(min_length=2, max_length=5)


class LogoCloud(_Content):
    intro: Text | None = None
    organizations: list[Text] = Field(min_length=3, max_length=12)


class Testimonial(_Content):
    quote: Text
    attribution: Text
    role: Text | None = None


class TestimonialStack(_Content):
    testimonials: list[Testimonial] = Field(min_length=2, max_length=4)


class CaseItem(_Content):
    title: Text
    outcome: Text


class CaseGrid(_Content):
    intro: Text | None = None
    items: list[CaseItem] = Field(min_length=3, max_length=6)


class CaseFeatured(_Content):
    title: Text
    summary: Text
    outcome: Text


class TitledItem(_Content):
    title: Text
    description: Text


class ValueProps(_Content):
    items: list[TitledItem] = Field(min_length=3, max_length=5)


class ProcessSteps(_Content):
    steps: list[TitledItem] = Field(min_length=3, max_length=6)


class Service(_Content):
    name: Text
    description: Text


class ServiceList(_Content):
    services: list[Service] = Field(min_length=2, max_length=6)


class PricingTier(_Content):
    name: Text
    price: Text
    description: Text | None = None
    features: list[Text] = Field(min_length=3, max_length=7)


class PricingTable(_Content):
    tiers: list[PricingTier] = Field(min_length=2, max_length=4)


class Question(_Content):
    question: Text
    answer: Text


class Faq(_Content):
    questions: list[Question] = Field(min_length=3, max_length=6)


class TimelineEvent(_Content):
    label: Text
    description: Text


class Timeline(_Content):
    events: list[TimelineEvent] = Field(min_length=3, max_length=6)


class BioLong(_Content):
    body: Text


class Value(_Content):
    name: Text
    description: Text


class Values(_Content):
    values: list[Value] = Field(min_length=3, max_length=5)


class CallToAction(_Content):
    headline: Text
    action_label: Text


class ContactForm(_Content):
    headline: Text
    description: Text | None = None


class BlogListing(_Content):
    intro: Text | None = None


CONTENT_SCHEMAS: Mapping[str, type[_Content]] = {
    "heroEditorial": HeroEditorial,
    "heroSplit": HeroSplit,
    "heroMinimal": HeroMinimal,
    "proofMetrics": ProofMetrics,
    "logoCloud": LogoCloud,
    "testimonialStack": TestimonialStack,
    "caseGrid": CaseGrid,
    "caseFeatured": CaseFeatured,
    "valueProps": ValueProps,
    "processSteps": ProcessSteps,
    "serviceList": ServiceList,
    "pricingTable": PricingTable,
    "faq": Faq,
    "timeline": Timeline,
    "bioLong": BioLong,
    "values": Values,
    "ctaPrimary": CallToAction,
    "ctaSecondary": CallToAction,
    "contactForm": ContactForm,
    "blogIndex": BlogListing,
    "postList": BlogListing,
}


def _format_errors(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "content"
        messages.append(f"{location}: {error['msg']}")
    return messages


def validate_content_schema(section_id: str, content: Any) -> ValidationResult[dict[str, Any]]:
    schema = CONTENT_SCHEMAS.get(section_id)
    if schema is None:
        return ValidationResult(errors=[f"Unknown section type: {section_id}"])
    if not isinstance(content, dict):
        return ValidationResult(errors=["content: must be an object"])
    try:
        model = schema.model_validate(content)
    except ValidationError as exc:
        return ValidationResult(errors=_format_errors(exc))
    return ValidationResult(value=model.model_dump(exclude_none=True))


def describe_schema(section_id: str) -> dict[str, Any]:
    """JSON schema for a section type, used when prompting for content."""
    return CONTENT_SCHEMAS[section_id].model_json_schema()


# ---------------------------------------------------------------------------
# Content policy filter
# ---------------------------------------------------------------------------

BANNED_WORDS: tuple[str, ...] = (
    "cutting-edge",
    "innovative",
    "innovation",
    "next-level",
    "best-in-class",
    "world-class",
    "game-changing",
    "disruptive",
    "leverage",
    "synergy",
    "solutions",
    "unlock",
    "seamless",
    "robust",
    "powerful",
    "scalable",
    "leading",
    "state-of-the-art",
    "future-proof",
    "mission-critical",
    "revolutionary",
    "unparalleled",
    "end-to-end",
    "holistic",
)

BANNED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(best|greatest|ultimate|perfect)\b", re.IGNORECASE),
    re.compile(r"\b(very|extremely|highly)\b", re.IGNORECASE),
    re.compile(r"\bdesigned to\b.*\b(impact|transform|elevate)\b", re.IGNORECASE),
)

_BANNED_WORD_PATTERNS = tuple(
    re.compile(rf"(?<![\w-]){re.escape(word)}(?![\w-])", re.IGNORECASE) for word in BANNED_WORDS
)

VIOLATION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("html", re.compile(r"<[^>]+>")),
    ("links", re.compile(r"(https?://|www\.)", re.IGNORECASE)),
    ("markdown", re.compile(r"```|`|^\s*#{1,6}\s|^\s*[-*+]\s|^\s*\d+\.\s|\[[^\]]+\]\([^)]+\)", re.MULTILINE)),
    ("emoji", re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF]")),
)

_BULLET_LINE = re.compile(r"^\s*([-*+•]|\d+[.)])\s", re.MULTILINE)


def collect_strings(value: Any) -> list[str]:
    strings: list[str] = []
    if isinstance(value, str):
        strings.append(value)
    elif isinstance(value, dict):
        for item in value.values():
            strings.extend(collect_strings(item))
    elif isinstance(value, (list, tuple)):
        for item in value:
            strings.extend(collect_strings(item))
    return strings


def find_policy_violations(section_id: str, content: Any) -> list[str]:
    """Return the deduplicated violation tags found in any string leaf."""
    tags: list[str] = []

    def add(tag: str) -> None:
        if tag not in tags:
            tags.append(tag)

    for text in collect_strings(content):
        for tag, pattern in VIOLATION_PATTERNS:
            if pattern.search(text):
                add(tag)
        if any(pattern.search(text) for pattern in _BANNED_WORD_PATTERNS):
            add("banned_words")
        if any(pattern.search(text) for pattern in BANNED_PATTERNS):
            add("banned_patterns")
        if section_id == "bioLong" and _BULLET_LINE.search(text):
            add("bullets")
    return tags


def validate_section_content(section_id: str, content: Any) -> ValidationResult[dict[str, Any]]:
    """Schema check followed by the policy filter; any hit rejects the whole object."""
    result = validate_content_schema(section_id, content)
    if not result.ok:
        return result
    violations = find_policy_violations(section_id, result.value)
    if violations:
        return ValidationResult(errors=[f"Content policy violation: {tag}" for tag in violations])
    return result


# ---------------------------------------------------------------------------
# Site-plan grammar
# ---------------------------------------------------------------------------


def find_disallowed_fields(value: Any) -> list[str]:
    found: list[str] = []

    def visit(node: Any) -> None:
        if isinstance(node, dict):
            for key, item in node.items():
                if isinstance(key, str) and key.lower() in DISALLOWED_PLAN_FIELDS and key not in found:
                    found.append(key)
                visit(item)
        elif isinstance(node, list):
            for item in node:
                visit(item)

    visit(value)
    return found


def check_page_sections(page_id: str, sections: Iterable[str]) -> list[str]:
    """Ordering and membership rules for a single page's section list."""
    sections = list(sections)
    errors: list[str] = []
    if not sections:
        return [f"{page_id} requires at least one section."]

    allowed = ALLOWED_SECTIONS.get(page_id, ())
    invalid = [section for section in sections if section not in allowed]
    if invalid:
        errors.append(f"{page_id} contains invalid sections: {', '.join(invalid)}")

    heroes = [section for section in sections if is_hero(section)]
    if len(heroes) != 1:
        errors.append(f"{page_id} must include exactly one hero section.")
    elif not is_hero(sections[0]):
        errors.append(f"{page_id} hero must be the first section.")

    cta_count = sections.count("ctaPrimary")
    if cta_count > 1 or (cta_count == 1 and sections[-1] != "ctaPrimary"):
        errors.append(f"{page_id} ctaPrimary must be the last section.")

    if len(set(sections)) != len(sections):
        errors.append(f"{page_id} sections must be unique.")

    if page_id != "blog" and any(section in BLOG_ONLY_SECTIONS for section in sections):
        errors.append(f"{page_id} cannot contain blog sections.")
    return errors


def validate_site_plan(raw: Any, *, blog_presence: str | None = None) -> ValidationResult[SitePlan]:
    """Validate a proposed plan of the shape ``{"pages": {pageId: {goal, sections}}}``."""
    if not isinstance(raw, dict):
        return ValidationResult(errors=["Site plan must be an object."])

    errors: list[str] = []
    disallowed = find_disallowed_fields(raw)
    if disallowed:
        errors.append(f"Disallowed fields: {', '.join(disallowed)}")

    pages = raw.get("pages")
    if not isinstance(pages, dict) or not pages:
        errors.append("At least one page is required.")
        return ValidationResult(errors=errors)

    resolved: dict[str, PlanPage] = {}
    for page_id, page in pages.items():
        if page_id not in PAGE_IDS:
            errors.append(f"Unknown page: {page_id}")
            continue
        if not isinstance(page, dict):
            errors.append(f"{page_id} must be an object.")
            continue
        goal = page.get("goal")
        if goal not in PAGE_GOALS:
            errors.append(f"{page_id} has an invalid goal: {goal}")
        sections = page.get("sections")
        if not isinstance(sections, list) or not all(isinstance(s, str) for s in sections):
            errors.append(f"{page_id} requires at least one section.")
            continue
        unknown = [section for section in sections if section not in SECTIONS]
        if unknown:
            errors.append(f"{page_id} contains invalid sections: {', '.join(unknown)}")
            continue
        errors.extend(check_page_sections(page_id, sections))
        if goal in PAGE_GOALS:
            resolved[page_id] = PlanPage(goal=goal, sections=list(sections))

    if blog_presence == "no" and "blog" in pages:
        errors.append("Blog page not allowed when blog is 'no'.")

    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(value=SitePlan(pages=resolved))


__all__ = [
    "BANNED_PATTERNS",
    "BANNED_WORDS",
    "CONTENT_SCHEMAS",
    "ValidationResult",
    "check_page_sections",
    "collect_strings",
    "describe_schema",
    "find_disallowed_fields",
    "find_policy_violations",
    "validate_content_schema",
    "validate_section_content",
    "validate_site_plan",
]
