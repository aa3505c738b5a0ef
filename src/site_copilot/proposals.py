from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from json.decoder import scanstring
from typing import Any, Iterator, Sequence

from pydantic import TypeAdapter, ValidationError

from .catalog import (
    ALLOWED_SECTIONS,
    DEFAULT_PAGE_GOALS,
    DEFAULT_PAGE_SECTIONS,
    PAGE_GOALS,
    PAGE_IDS,
    SECTION_IDS,
    SECTIONS,
    THEMES,
)
from .errors import SchemaViolation
from .models.contracts import DesignIntent, IntakeContract, VoiceContract
from .models.drafts import (
    CreatePreviewArgs,
    CreatePreviewCall,
    PresentationCall,
    PublishSnapshotArgs,
    PublishSnapshotCall,
    RollbackArgs,
    RollbackToSnapshotCall,
    StructuralCall,
)
from .models.site import Site, SitePlan, Snapshot, SnapshotState
from .validators import BANNED_WORDS, describe_schema, validate_section_content, validate_site_plan
from .vertex_ai_adapter import GenerativeClient, extract_json_object, find_json_span

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

ADVISOR_PROMPT = (
    "You are the Exhibit AI operator. Answer questions and ask for missing contract fields. "
    "Do not build, do not propose layouts, do not write page copy, and do not pick themes. "
    "Be concise and confident."
)

BUILDER_PROMPT = (
    "You are the Exhibit AI operator in builder mode. The contract is complete. "
    "Explain intent before action. Never invent features. Never bypass the contract. "
    "Be concise and concrete."
)

PLAN_CORRECTION = (
    "Your previous output violated the Exhibit site plan schema. "
    "Return one short paragraph and then a JSON object that matches the schema exactly."
)

CONTENT_CORRECTION = (
    "Your previous output violated the content schema or content policy. "
    "Regenerate using only allowed fields and plain text."
)

ROUTER_CORRECTION = "Your previous output was invalid. Return ONLY valid JSON for the schema."

_CODE_FENCE = re.compile(r"```(?:json)?\s*$", re.IGNORECASE)


def contract_summary(intake: IntakeContract, design_intent: DesignIntent | None = None) -> str:
    lines = [
        f"Purpose: {intake.purpose}",
        f"Audience: {intake.audience}",
        f"Primary action: {intake.action}",
        f"Tone: {intake.tone}",
        f"Blog: {intake.blog}",
    ]
    if design_intent is not None:
        lines.append(f"Design intent: {design_intent.model_dump_json()}")
    return "\n".join(lines)


def blog_rule(blog: str | None) -> str:
    if blog == "yes":
        return "Blog rule: include a blog page."
    if blog == "no":
        return "Blog rule: do not include a blog page."
    return "Blog rule: the blog is undecided; leave it out unless the request asks for one."


@dataclass
class ProposedPlan:
    plan: SitePlan
    explanation: str


@dataclass
class RoutedCall:
    call: Any
    reason: str = ""


@dataclass
class ContentTarget:
    tool: str
    section_instance_id: str
    instruction: str | None = None


def implied_pages(intake: IntakeContract) -> list[str]:
    purpose = f"{intake.purpose or ''} {intake.action or ''}".lower()
    pages = ["home", "about"]
    if re.search(r"portfolio|case stud|work|projects", purpose):
        pages.append("work")
    if re.search(r"service|agency|studio|consult", purpose):
        pages.append("services")
    if re.search(r"saas|product|software|startup|pricing", purpose):
        pages.append("pricing")
    if intake.blog == "yes":
        pages.append("blog")
    pages.append("contact")
    return [page_id for page_id in PAGE_IDS if page_id in pages]


def fallback_plan(intake: IntakeContract) -> ProposedPlan:
    """Default sections for the pages the purpose implies; used without a generative client."""
    plan = SitePlan.model_validate(
        {
            "pages": {
                page_id: {"goal": DEFAULT_PAGE_GOALS[page_id], "sections": list(DEFAULT_PAGE_SECTIONS[page_id])}
                for page_id in implied_pages(intake)
            }
        }
    )
    explanation = (
        f"This structure keeps {intake.purpose} front and center for {intake.audience}, "
        f"with every page leading toward {intake.action}."
    )
    return ProposedPlan(plan=plan, explanation=explanation)


def _explanation_before(text: str, start: int) -> str:
    prose = _CODE_FENCE.sub("", text[:start].rstrip()).strip()
    return prose


class SitePlanProposer:
    """Asks the model for an explanation plus a plan JSON, regenerating until the grammar accepts it."""

    def __init__(
        self,
        client: GenerativeClient | None,
        *,
        temperature: float = 0.5,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_attempts = max_attempts

    def build_prompt(
        self,
        intake: IntakeContract,
        design_intent: DesignIntent | None,
        request: str,
        current_plan: SitePlan | None = None,
    ) -> str:
        prompt = (
            f"{BUILDER_PROMPT}\n\n"
            "You are generating a SitePlan JSON only. No HTML, no JSX, no copy, no styling.\n"
            "Output format:\n"
            "1) One short paragraph explaining the structure intent.\n"
            "2) Then a JSON object that matches the schema exactly.\n"
            'Schema: {"pages": {"<pageId>": {"goal": "<PageGoal>", "sections": ["<SectionId>"]}}}\n\n'
            f"Allowed pages: {', '.join(PAGE_IDS)}\n"
            f"Allowed goals: {', '.join(PAGE_GOALS)}\n"
            f"Allowed sections: {', '.join(SECTION_IDS)}\n"
            f"Allowed sections per page: {json.dumps({k: list(v) for k, v in ALLOWED_SECTIONS.items()})}\n"
            "Ordering rules:\n"
            "- Hero section must be first and only one per page.\n"
            "- ctaPrimary must be last if present.\n"
            "- No duplicate sections.\n"
            "- blogIndex/postList only on blog.\n"
            "Disallowed fields anywhere: copy, text, headline, subhead, theme, color, font, layout, "
            "spacing, animation, html, css, jsx, content.\n"
            f"{blog_rule(intake.blog)}\n\n"
            f"{contract_summary(intake, design_intent)}\n"
        )
        if current_plan is not None:
            prompt += f"\nCurrent plan (revise if requested): {current_plan.model_dump_json()}\n"
        return prompt + f"\nUser request: {request}\n"

    def propose(
        self,
        intake: IntakeContract,
        design_intent: DesignIntent | None,
        request: str,
        *,
        current_plan: SitePlan | None = None,
    ) -> ProposedPlan:
        if self._client is None:
            return fallback_plan(intake)

        prompt = self.build_prompt(intake, design_intent, request, current_plan)
        errors: list[str] = ["No output"]
        for attempt in range(1, self._max_attempts + 1):
            attempt_prompt = prompt if attempt == 1 else f"{prompt}\n{PLAN_CORRECTION}\nViolations: {'; '.join(errors)}\n"
            text = self._client.generate_content(attempt_prompt, temperature=self._temperature)
            span = find_json_span(text)
            if span is None:
                errors = ["No JSON detected"]
            else:
                try:
                    raw = json.loads(text[span[0] : span[1]])
                except json.JSONDecodeError:
                    errors = ["Invalid JSON"]
                else:
                    result = validate_site_plan(raw, blog_presence=intake.blog)
                    if result.ok:
                        explanation = _explanation_before(text, span[0]) or fallback_plan(intake).explanation
                        logger.info("Proposed site plan", extra={"attempt": attempt, "pages": list(result.value.pages)})
                        return ProposedPlan(plan=result.value, explanation=explanation)
                    errors = result.errors
            logger.warning("Site plan rejected", extra={"attempt": attempt, "errors": errors})

        raise SchemaViolation("Unable to produce a valid site plan", errors)


def _site_summary(site: Site) -> list[dict[str, Any]]:
    return [
        {
            "page_id": page.page_id,
            "goal": page.goal,
            "sections": [
                {
                    "section_instance_id": section.id,
                    "section_id": section.section_id,
                    "variant_id": section.variant_id,
                    "allowed_variants": list(SECTIONS[section.section_id].variants),
                    "has_content": bool(section.content),
                }
                for section in page.sections
            ],
        }
        for page in site.pages
    ]


_STRUCTURAL_ADAPTER: TypeAdapter[Any] = TypeAdapter(StructuralCall)
_PRESENTATION_ADAPTER: TypeAdapter[Any] = TypeAdapter(PresentationCall)

SNAPSHOT_ID = re.compile(r"\bsnap_[0-9a-f]{6,}\b")
ROLLBACK = re.compile(r"\b(roll ?back|revert|restore|undo (the )?publish)\b", re.IGNORECASE)
PUBLISH = re.compile(r"\b(publish|go live|launch|deploy|release)\b", re.IGNORECASE)
PREVIEW = re.compile(r"\b(preview|share|staging)\b", re.IGNORECASE)
LABEL = re.compile(r"\b(?:called|labell?ed|named)\s+[\"']?([^\"'\n]+?)[\"']?\s*$", re.IGNORECASE)


class ReleaseRoutingError(ValueError):
    """Raised when a release request cannot be mapped onto an available snapshot."""


def route_release(
    message: str,
    *,
    published_snapshot_id: str | None,
    snapshots: Sequence[Snapshot],
) -> RoutedCall | None:
    """Map a release request onto preview, publish or rollback without calling the model."""
    named = SNAPSHOT_ID.search(message)
    if ROLLBACK.search(message):
        if named:
            snapshot_id = named.group(0)
        else:
            earlier = [
                snapshot
                for snapshot in snapshots
                if snapshot.state == SnapshotState.published and snapshot.id != published_snapshot_id
            ]
            if not earlier:
                raise ReleaseRoutingError("There's no earlier published version to roll back to.")
            snapshot_id = earlier[-1].id
        return RoutedCall(
            call=RollbackToSnapshotCall(arguments=RollbackArgs(snapshot_id=snapshot_id)),
            reason=f"I'll roll the live site back to snapshot {snapshot_id}.",
        )
    if PUBLISH.search(message):
        previews = [snapshot for snapshot in snapshots if snapshot.state == SnapshotState.preview]
        if named:
            snapshot_id = named.group(0)
            if snapshot_id not in {snapshot.id for snapshot in previews}:
                raise ReleaseRoutingError("Only a preview snapshot can be published.")
        elif previews:
            snapshot_id = previews[-1].id
        else:
            raise ReleaseRoutingError("Create a preview before publishing.")
        return RoutedCall(
            call=PublishSnapshotCall(arguments=PublishSnapshotArgs(snapshot_id=snapshot_id)),
            reason=f"I'll publish preview {snapshot_id} and make it the live version.",
        )
    if PREVIEW.search(message):
        label_match = LABEL.search(message)
        label = label_match.group(1).strip() if label_match else None
        return RoutedCall(
            call=CreatePreviewCall(arguments=CreatePreviewArgs(label=label)),
            reason="I'll capture the current site as a preview snapshot with a shareable link.",
        )
    return None


class ToolRouter:
    """Maps free-text edit requests onto a single validated tool call."""

    def __init__(
        self,
        client: GenerativeClient | None,
        *,
        temperature: float = 0.0,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_attempts = max_attempts

    def _ask(self, prompt: str, parse) -> RoutedCall | None:
        if self._client is None:
            return None
        errors: list[str] = []
        for attempt in range(1, self._max_attempts + 1):
            attempt_prompt = prompt if attempt == 1 else f"{prompt}\n{ROUTER_CORRECTION}\n"
            text = self._client.generate_content(attempt_prompt, temperature=self._temperature)
            try:
                data = extract_json_object(text)
            except ValueError as exc:
                errors = [str(exc)]
            else:
                if data.get("tool") in (None, "none"):
                    return None
                reason = str(data.pop("reason", "") or "")
                try:
                    call = parse(data)
                except ValidationError as exc:
                    errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
                except ValueError as exc:
                    errors = [str(exc)]
                else:
                    return RoutedCall(call=call, reason=reason)
            logger.warning("Router output rejected", extra={"attempt": attempt, "errors": errors})
        raise SchemaViolation("Unable to route the request to a valid tool", errors)

    def route_structural(self, message: str, site: Site, intake: IntakeContract) -> RoutedCall | None:
        prompt = (
            "You are an operator router. Output JSON only. Choose a single tool and arguments. "
            'If the user request is not a valid structural change, respond with {"tool":"none","arguments":{}}.\n'
            'Schema: {"tool": "addPage | addSection | reorderSections | enableBlog | none", "arguments": "object", '
            '"reason": "string"}\n'
            "Arguments: addPage {page_id, goal, sections}; addSection {page_id, section_id, position?}; "
            "reorderSections {page_id, ordered_section_ids}; enableBlog {}.\n"
            f"Allowed pages: {', '.join(PAGE_IDS)}\n"
            f"Allowed goals: {', '.join(PAGE_GOALS)}\n"
            f"Allowed sections: {', '.join(SECTION_IDS)}\n"
            f"Allowed sections per page: {json.dumps({k: list(v) for k, v in ALLOWED_SECTIONS.items()})}\n"
            "Ordering rules: hero first and only one, ctaPrimary last if present, no duplicates, "
            "blog sections only on blog.\n"
            f"{contract_summary(intake)}\n"
            f"Current site: {json.dumps(_site_summary(site))}\n"
            f"User request: {message}\n"
        )
        return self._ask(prompt, _STRUCTURAL_ADAPTER.validate_python)

    def route_presentation(
        self,
        message: str,
        site: Site,
        intake: IntakeContract,
        voice: VoiceContract,
    ) -> RoutedCall | None:
        themes = {key: {"label": theme.label, "intent": theme.intent} for key, theme in THEMES.items()}
        prompt = (
            "You are a presentation router. Output JSON only.\n"
            'Choose a single tool: "applyTheme", "switchSectionVariant", or "none".\n'
            "If the user request is ambiguous or violates constraints, return none.\n"
            "Include a short reason field explaining why the choice fits.\n"
            "Schema examples:\n"
            '{"tool":"applyTheme","arguments":{"theme_id":"editorialDark"},"reason":"..."}\n'
            '{"tool":"switchSectionVariant","arguments":{"section_instance_id":"...","variant_id":"twoColumn"},'
            '"reason":"..."}\n'
            '{"tool":"none","arguments":{}}\n'
            f"Allowed themes: {json.dumps(themes)}\n"
            f"{contract_summary(intake)}\n"
            f"Voice: {voice.model_dump_json()}\n"
            f"Current theme: {site.theme_id}\n"
            f"Sections: {json.dumps(_site_summary(site))}\n"
            f"User request: {message}\n"
        )
        return self._ask(prompt, _PRESENTATION_ADAPTER.validate_python)

    def route_content(self, message: str, site: Site, voice: VoiceContract) -> ContentTarget | None:
        prompt = (
            "You are a content router. Output JSON only.\n"
            'Choose a single tool: "generateSectionContent", "rewriteSectionContent", or "none".\n'
            "If the user request is ambiguous or does not name a section, return none.\n"
            "Schema examples:\n"
            '{"tool":"generateSectionContent","arguments":{"section_instance_id":"..."}}\n'
            '{"tool":"rewriteSectionContent","arguments":{"section_instance_id":"...","instruction":"..."}}\n'
            '{"tool":"none","arguments":{}}\n'
            f"Voice: {voice.model_dump_json()}\n"
            f"Sections: {json.dumps(_site_summary(site))}\n"
            f"User request: {message}\n"
        )

        def parse(data: dict[str, Any]) -> ContentTarget:
            arguments = data.get("arguments") or {}
            instance_id = arguments.get("section_instance_id")
            found = site.section(instance_id) if isinstance(instance_id, str) else None
            if data.get("tool") not in ("generateSectionContent", "rewriteSectionContent") or found is None:
                raise ValueError(f"Unknown section target: {instance_id}")
            tool = "rewriteSectionContent" if found[1].content else "generateSectionContent"
            return ContentTarget(tool=tool, section_instance_id=instance_id, instruction=arguments.get("instruction"))

        routed = self._ask(prompt, parse)
        return routed.call if routed else None


class ContentWriter:
    """Generates section content that passes the section schema and the content policy."""

    def __init__(
        self,
        client: GenerativeClient | None,
        *,
        temperature: float = 0.4,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_attempts = max_attempts

    def build_prompt(
        self,
        section_id: str,
        *,
        page_goal: str,
        intake: IntakeContract,
        voice: VoiceContract,
        instruction: str | None = None,
        current: dict[str, Any] | None = None,
    ) -> str:
        action = "rewriting" if current else "writing"
        prompt = (
            f"You are {action} content for a single section. Output JSON only.\n"
            f"Section type: {section_id}\n"
            f"Page goal: {page_goal}\n"
            f"{contract_summary(intake)}\n"
            f"Voice: {voice.model_dump_json()}\n"
            f"Schema: {json.dumps(describe_schema(section_id))}\n"
        )
        if instruction:
            prompt += f"Instruction: {instruction}\n"
        if current:
            prompt += f"Current content: {json.dumps(current)}\n"
        return prompt + (
            "Rules: plain text only, no HTML, no markdown, no emojis, no links.\n"
            "If facts are missing, use placeholders that clearly ask for real data.\n"
            f"Banned words: {', '.join(BANNED_WORDS)}\n"
            "Avoid superlatives and empty intensifiers.\n"
        )

    def write(self, section_id: str, **kwargs: Any) -> dict[str, Any]:
        if self._client is None:
            raise SchemaViolation("No generative client configured", ["No output"])
        prompt = self.build_prompt(section_id, **kwargs)
        errors: list[str] = ["No output"]
        for attempt in range(1, self._max_attempts + 1):
            attempt_prompt = prompt if attempt == 1 else f"{prompt}\n{CONTENT_CORRECTION}\n"
            text = self._client.generate_content(attempt_prompt, temperature=self._temperature)
            try:
                data = extract_json_object(text)
            except ValueError as exc:
                errors = [str(exc)]
            else:
                result = validate_section_content(section_id, data)
                if result.ok:
                    return result.value
                errors = result.errors
            logger.warning("Section content rejected", extra={"section_id": section_id, "attempt": attempt, "errors": errors})
        raise SchemaViolation("Unable to produce valid content", errors)

    def stream(self, section_id: str, **kwargs: Any) -> Iterator[dict[str, Any]]:
        """Yield ``{path, value}`` as each leaf completes, then ``{"__final__": content}`` once it validates.

        A rejected attempt is regenerated with the corrective instruction; ``{"__reset__": attempt}``
        tells the consumer to drop the patches streamed so far.
        """
        if self._client is None:
            raise SchemaViolation("No generative client configured", ["No output"])
        prompt = self.build_prompt(section_id, **kwargs)
        errors: list[str] = ["No output"]
        for attempt in range(1, self._max_attempts + 1):
            if attempt > 1:
                yield {"__reset__": attempt}
            attempt_prompt = prompt if attempt == 1 else f"{prompt}\n{CONTENT_CORRECTION}\n"
            buffer = ""
            emitted = 0
            for chunk in self._client.stream_content(attempt_prompt, temperature=self._temperature):
                buffer += chunk
                start = buffer.find("{")
                if start == -1:
                    continue
                leaves = completed_leaves(buffer, start)
                for path, value in leaves[emitted:]:
                    yield {"path": path, "value": value}
                emitted = max(emitted, len(leaves))

            try:
                data = extract_json_object(buffer)
            except ValueError as exc:
                errors = [str(exc)]
            else:
                result = validate_section_content(section_id, data)
                if result.ok:
                    yield {"__final__": result.value}
                    return
                errors = result.errors
            logger.warning(
                "Streamed content rejected",
                extra={"section_id": section_id, "attempt": attempt, "errors": errors},
            )
        raise SchemaViolation("Unable to produce valid content", errors)


class _Incomplete(Exception):
    pass


_SCALAR = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null")
_WHITESPACE = " \t\r\n"


def completed_leaves(text: str, start: int = 0) -> list[tuple[str, Any]]:
    """Leaf values of a possibly truncated JSON object, in document order, with dotted paths."""
    leaves: list[tuple[str, Any]] = []
    length = len(text)

    def skip(index: int) -> int:
        while index < length and text[index] in _WHITESPACE:
            index += 1
        if index >= length:
            raise _Incomplete
        return index

    def string(index: int) -> tuple[str, int]:
        try:
            return scanstring(text, index + 1)
        except json.JSONDecodeError as exc:
            raise _Incomplete from exc

    def join(path: str, key: str | int) -> str:
        return f"{path}.{key}" if path else str(key)

    def value(index: int, path: str) -> int:
        index = skip(index)
        char = text[index]
        if char == "{":
            index += 1
            while True:
                index = skip(index)
                if text[index] == "}":
                    return index + 1
                if text[index] == ",":
                    index += 1
                    continue
                if text[index] != '"':
                    raise _Incomplete
                key, index = string(index)
                index = skip(index)
                if text[index] != ":":
                    raise _Incomplete
                index = value(index + 1, join(path, key))
        if char == "[":
            index += 1
            position = 0
            while True:
                index = skip(index)
                if text[index] == "]":
                    return index + 1
                if text[index] == ",":
                    index += 1
                    continue
                index = value(index, join(path, position))
                position += 1
        if char == '"':
            leaf, index = string(index)
            leaves.append((path, leaf))
            return index
        match = _SCALAR.match(text, index)
        if match is None or match.end() >= length:
            raise _Incomplete
        leaves.append((path, json.loads(match.group(0))))
        return match.end()

    try:
        value(start, "")
    except _Incomplete:
        pass
    return leaves


__all__ = [
    "ADVISOR_PROMPT",
    "ContentTarget",
    "ContentWriter",
    "ProposedPlan",
    "ReleaseRoutingError",
    "RoutedCall",
    "SitePlanProposer",
    "ToolRouter",
    "completed_leaves",
    "contract_summary",
    "fallback_plan",
    "implied_pages",
    "route_release",
]
