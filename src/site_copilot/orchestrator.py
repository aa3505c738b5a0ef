from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterator

from .audit import format_audit, run_audit
from .catalog import INTAKE_QUESTIONS, PAGE_IDS, SECTION_IDS, THEMES, VOICE_QUESTIONS
from .config import Settings
from .design_intent import apply_mutation, build_intent_message, derive_signals, infer_design_intent
from .errors import GateError, GenerationError, NotFound, SchemaViolation, ToolPrecondition, Unauthorized
from .events import ReleaseEventPublisher
from .intents import (
    IntentClassification,
    IntentTag,
    build_disambiguation_message,
    classify_intent,
    infer_audit_mode,
    requested_advisory_mode,
)
from .models.contracts import DesignIntentState
from .models.conversation import ConversationState, Message, Mode, PlanStatus, Role, StoredPlan, TurnResult
from .models.drafts import (
    ApplyThemeCall,
    ContentDraft,
    DraftKind,
    GenerateSectionContentCall,
    PresentationDraft,
    PublishSnapshotCall,
    RecommendationDraft,
    ReleaseDraft,
    RewriteSectionContentCall,
    RollbackToSnapshotCall,
    SectionContentArgs,
    SwitchSectionVariantCall,
    parse_tool_call,
    serialize_draft,
)
from .models.recommendation import AuditRun, Recommendation, RecommendationRecord, RecommendationStatus
from .models.site import AdvisoryMode, Site, SitePlan
from .parsing import is_affirmative, is_negative, parse_intake_answers, parse_intent_decision, parse_selection, parse_voice_answers
from .proposals import (
    ADVISOR_PROMPT,
    ContentTarget,
    ContentWriter,
    ReleaseRoutingError,
    SitePlanProposer,
    ToolRouter,
    contract_summary,
    route_release,
)
from .scoring import (
    build_candidates,
    build_history,
    build_reminder,
    format_explanation,
    format_first_prescriptive_moment,
    format_recommendations,
    rank_recommendations,
)
from .store import CopilotStore, new_id
from .tools import SiteTools
from .vertex_ai_adapter import GenerativeClient
from .visual_system import generate_visual_system

logger = logging.getLogger(__name__)

CONTENT_TOOLS = frozenset({"generateSectionContent", "rewriteSectionContent"})

CONTENT_FAILURE = "I couldn't generate content under the current constraints. Try a narrower request."
PLAN_FAILURE = (
    "I couldn't produce a site structure that satisfies the structural rules. "
    "Tell me which pages you need and I'll try again."
)
RELEASE_SIGN_IN = "Sign in to preview, publish, or roll back this site."
PRESCRIPTIVE_REQUIRED = (
    "I can provide ranked recommendations once prescriptive mode is enabled. "
    'If you want that, say "enable prescriptive mode".'
)
STRUCTURE_WORDS = re.compile(r"\b(page|pages|section|sections|plan|structure|sitemap)\b", re.IGNORECASE)
STRUCTURE_NAMES = re.compile(
    r"\b(" + "|".join(re.escape(name) for name in (*PAGE_IDS, *SECTION_IDS)) + r")\b",
    re.IGNORECASE,
)


def build_clarification_message(missing: list[str]) -> str:
    questions = "\n".join(f"- {INTAKE_QUESTIONS[name]}" for name in missing)
    return (
        "Before I build anything, I'm waiting on a few structured answers so I don't guess wrong:\n"
        f"{questions}\n"
        "Reply in a numbered list so I can lock this in."
    )


def build_voice_message(missing: list[str]) -> str:
    questions = "\n".join(f"- {VOICE_QUESTIONS[name]}" for name in missing)
    return (
        "Before I write any content, I need a voice contract:\n"
        f"{questions}\n"
        "Reply in a numbered list so I can lock this in."
    )


def format_plan(plan: SitePlan) -> str:
    ordered = sorted(plan.pages, key=lambda page_id: PAGE_IDS.index(page_id))
    return "\n".join(
        f"- {page_id.title()} ({plan.pages[page_id].goal}): {', '.join(plan.pages[page_id].sections)}"
        for page_id in ordered
    )


def describe_call(call: Any) -> str:
    args = call.arguments
    if call.tool == "addPage":
        return f"Add a {args.page_id} page with {', '.join(args.sections)}."
    if call.tool == "addSection":
        return f"Add {args.section_id} to the {args.page_id} page."
    if call.tool == "reorderSections":
        return f"Reorder the {args.page_id} page to {', '.join(args.ordered_section_ids)}."
    if call.tool == "enableBlog":
        return "Add a blog page."
    if call.tool == "applyTheme":
        return f"Apply the {THEMES[args.theme_id].label} theme."
    if call.tool == "switchSectionVariant":
        return f"Switch the section layout to {args.variant_id}."
    return call.tool


def mentions_structure(message: str) -> bool:
    return bool(STRUCTURE_WORDS.search(message) or STRUCTURE_NAMES.search(message))


@dataclass(frozen=True)
class GateCheck:
    """Outcome of checking one precondition on the conversation state."""

    gate: str
    ok: bool
    message: str = ""

    def require(self) -> None:
        if not self.ok:
            raise GateError(self.message, gate=self.gate)


def voice_gate(state: ConversationState) -> GateCheck:
    if state.voice.is_complete():
        return GateCheck("voice", True)
    return GateCheck("voice", False, build_voice_message(state.voice.missing_fields()))


def structure_gate(state: ConversationState) -> GateCheck:
    if not state.intake.is_complete():
        return GateCheck("intake", False, "The intake contract is incomplete.")
    if not state.intent_locked:
        return GateCheck("design_intent", False, "The design intent is not locked yet.")
    if state.plan is None:
        return GateCheck("plan", False, "There is no proposed site structure.")
    return GateCheck("plan", True)


@dataclass
class Turn:
    state: ConversationState
    message: str
    user_id: str | None = None
    scope: dict[str, Any] = field(default_factory=dict)
    previous_mode: Mode | None = None
    started: float = field(default_factory=time.monotonic)

    @property
    def section_scope(self) -> str | None:
        return self.scope.get("section_instance_id") or self.scope.get("sectionInstanceId")


class TurnOrchestrator:
    """Selects one sub-protocol per message, stages drafts, and applies them only after an explicit yes."""

    def __init__(
        self,
        store: CopilotStore,
        *,
        settings: Settings,
        client: GenerativeClient | None = None,
        events: ReleaseEventPublisher | None = None,
        tools: SiteTools | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._client = client
        self._tools = tools or SiteTools(store, settings=settings, events=events)
        self._planner = SitePlanProposer(client, temperature=settings.builder_temperature)
        self._router = ToolRouter(client)
        self._writer = ContentWriter(client, temperature=settings.content_temperature)

    @property
    def tools(self) -> SiteTools:
        return self._tools

    @property
    def store(self) -> CopilotStore:
        return self._store

    # Entry points

    def handle_turn(
        self,
        message: str,
        *,
        conversation_id: str | None = None,
        site_id: str | None = None,
        scope: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> TurnResult:
        turn = self._start_turn(message, conversation_id, site_id, scope, user_id)
        result = self._dispatch(turn)
        self._finish_turn(turn, result)
        return result

    def stream_turn(
        self,
        message: str,
        *,
        conversation_id: str | None = None,
        site_id: str | None = None,
        scope: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Stream a content draft as field patches; any other turn yields its envelope as the final record."""
        turn = self._start_turn(message, conversation_id, site_id, scope, user_id)
        target = self._streamable_target(turn)
        if target is None:
            result = self._dispatch(turn)
            self._finish_turn(turn, result)
            yield {"__final__": result.envelope()}
            return

        site, content_target = target
        page, section = site.section(content_target.section_instance_id)
        content: dict[str, Any] | None = None
        try:
            for record in self._writer.stream(
                section.section_id,
                **self._writer_context(turn, page.goal, content_target, section.content),
            ):
                if "__final__" in record:
                    content = record["__final__"]
                else:
                    yield record
        except (SchemaViolation, GenerationError) as exc:
            logger.warning("Streamed content failed", extra={"error": exc.message})
            result = self._reply(turn, Mode.builder, CONTENT_FAILURE, error="content_invalid")
            self._finish_turn(turn, result)
            yield {"error": result.assistant_message}
            return

        result = self._stage_content(turn, site, content_target, content)
        self._finish_turn(turn, result)
        yield {"__final__": content}

    # Turn lifecycle

    def _start_turn(
        self,
        message: str,
        conversation_id: str | None,
        site_id: str | None,
        scope: dict[str, Any] | None,
        user_id: str | None,
    ) -> Turn:
        if conversation_id:
            state = self._store.get_conversation(conversation_id)
            if state is None:
                raise NotFound("Conversation not found", context={"conversation_id": conversation_id})
            if state.user_id and user_id and state.user_id != user_id:
                raise Unauthorized("Conversation belongs to another user")
            if state.user_id is None and user_id:
                state.user_id = user_id
        else:
            state = self._store.create_conversation(site_id=None, user_id=user_id)

        if site_id and state.site_id != site_id:
            if state.site_id:
                raise Unauthorized("Conversation is bound to a different site")
            self.load_site(site_id, user_id=user_id)
            state.site_id = site_id

        return Turn(
            state=state,
            message=message.strip(),
            user_id=user_id,
            scope=dict(scope or {}),
            previous_mode=state.last_mode,
        )

    def _finish_turn(self, turn: Turn, result: TurnResult) -> None:
        state = turn.state
        state.last_mode = result.mode
        self._store.save_conversation(state)
        self._store.append_message(state.id, Message(role=Role.user, content=turn.message))
        self._store.append_message(
            state.id,
            Message(role=Role.assistant, content=result.assistant_message, mode=result.mode),
        )
        logger.info(
            "Handled turn",
            extra={
                "conversation_id": state.id,
                "site_id": state.site_id,
                "mode": result.mode.value,
                "elapsed_ms": round((time.monotonic() - turn.started) * 1000, 1),
            },
        )

    def _reply(
        self,
        turn: Turn,
        mode: Mode,
        text: str,
        *,
        payload: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> TurnResult:
        return TurnResult(
            conversation_id=turn.state.id,
            site_id=turn.state.site_id,
            mode=mode,
            user_message=turn.message,
            assistant_message=text,
            payload=payload or {},
            error=error,
        )

    def load_site(self, site_id: str, *, user_id: str | None = None) -> Site:
        site = self._store.get_site(site_id)
        if site is None:
            raise NotFound("Site not found", context={"site_id": site_id})
        if site.owner_id and site.owner_id != user_id:
            raise Unauthorized("Site belongs to another user")
        return site

    def load_conversation(self, conversation_id: str, *, user_id: str | None = None) -> ConversationState:
        state = self._store.get_conversation(conversation_id)
        if state is None:
            raise NotFound("Conversation not found", context={"conversation_id": conversation_id})
        if state.user_id and state.user_id != user_id:
            raise Unauthorized("Conversation belongs to another user")
        return state

    def _site(self, turn: Turn) -> Site:
        return self.load_site(turn.state.site_id, user_id=turn.user_id)

    # Dispatch

    def _dispatch(self, turn: Turn) -> TurnResult:
        state = turn.state
        if state.plan is not None and state.plan.pending:
            return self._resolve_plan(turn)
        pending = next(state.drafts.pending(), None)
        if pending is not None:
            return self._resolve_draft(turn, pending)

        if not state.intake.is_complete():
            return self._intake(turn)
        if not state.intent_locked:
            return self._design_intent(turn)
        if turn.previous_mode == Mode.voice and not state.voice.is_complete():
            answered = self._voice_answers(turn)
            if answered is not None:
                return answered

        classification = classify_intent(turn.message)
        if classification.tag == IntentTag.ambiguous:
            return self._reply(turn, Mode.advisor, build_disambiguation_message(classification.fired))
        if classification.tag == IntentTag.advisory_mode:
            return self._advisory_mode(turn)
        if state.plan is None or state.plan.status != PlanStatus.confirmed:
            return self._before_plan(turn, classification)
        return self._with_plan(turn, classification)

    def _intake(self, turn: Turn) -> TurnResult:
        state = turn.state
        missing = state.intake.missing_fields()
        answers = parse_intake_answers(turn.message, missing)
        if answers:
            state.intake = state.intake.merged(answers)
            if state.intake.is_complete():
                intent = infer_design_intent(derive_signals(state.intake))
                state.design_intent = DesignIntentState(intent=intent)
                return self._reply(
                    turn,
                    Mode.intent,
                    build_intent_message(intent),
                    payload={"designIntent": intent.model_dump(mode="json")},
                )
            return self._reply(turn, Mode.clarifier, build_clarification_message(state.intake.missing_fields()))

        if classify_intent(turn.message).tag != IntentTag.none:
            return self._reply(turn, Mode.clarifier, build_clarification_message(missing))
        return self._advise(turn, fallback=build_clarification_message(missing))

    def _design_intent(self, turn: Turn) -> TurnResult:
        state = turn.state
        if state.design_intent is None:
            state.design_intent = DesignIntentState(intent=infer_design_intent(derive_signals(state.intake)))

        decision = parse_intent_decision(turn.message) if turn.previous_mode == Mode.intent else None
        if decision is None:
            intent = state.design_intent.intent
            return self._reply(
                turn,
                Mode.intent,
                build_intent_message(intent),
                payload={"designIntent": intent.model_dump(mode="json")},
            )

        intent = apply_mutation(state.design_intent.intent, decision)
        state.design_intent = state.design_intent.lock(intent, decision)
        if state.site_id:
            site = self._site(turn)
        else:
            site = self._store.create_site(owner_id=turn.user_id, conversation_id=state.id)
            state.site_id = site.id
        site.design_intent = intent
        site.visual_system = generate_visual_system(intent)
        self._store.save_site(site)
        logger.info("Locked design intent", extra={"site_id": site.id, "decision": decision.value})

        intake = state.intake
        text = (
            "Got it. I have enough to work with.\n"
            f"I'm going to propose a site structure optimized for {intake.purpose}, aimed at {intake.audience}, "
            f"with a primary focus on {intake.action}."
        )
        return self._reply(
            turn,
            Mode.ready,
            text,
            payload={
                "designIntent": intent.model_dump(mode="json"),
                "visualSystem": site.visual_system,
            },
        )

    def _voice_answers(self, turn: Turn) -> TurnResult | None:
        state = turn.state
        answers = parse_voice_answers(turn.message, state.voice.missing_fields())
        if not answers:
            return None
        state.voice = state.voice.merged(answers)
        if not state.voice.is_complete():
            return self._reply(turn, Mode.voice, build_voice_message(state.voice.missing_fields()))

        request = state.pending_content_request
        state.pending_content_request = None
        if request and state.plan is not None and state.plan.status == PlanStatus.confirmed:
            return self._content(turn, request=request)
        return self._reply(turn, Mode.builder, "Voice contract locked. Tell me which section you want me to draft.")

    def _advisory_mode(self, turn: Turn) -> TurnResult:
        requested = requested_advisory_mode(turn.message) or AdvisoryMode.prescriptive.value
        mode = AdvisoryMode(requested)
        self._tools.set_advisory_mode(turn.state.site_id, mode=mode, conversation_id=turn.state.id)
        if mode == AdvisoryMode.prescriptive:
            text = "Prescriptive mode is on. I'll rank the changes I would make and tell you what I would leave alone."
        else:
            text = "Assistive mode is on. I'll wait for you to ask before suggesting changes."
        return self._reply(turn, Mode.advisor, text, payload={"advisoryMode": mode.value})

    def _before_plan(self, turn: Turn, classification: IntentClassification) -> TurnResult:
        state = turn.state
        tag = classification.tag
        wants_plan = (
            tag == IntentTag.build
            or (turn.previous_mode == Mode.ready and is_affirmative(turn.message))
            or (state.plan is not None and mentions_structure(turn.message))
        )
        if wants_plan:
            return self._propose_plan(turn)
        gate = voice_gate(state)
        if tag == IntentTag.content and not gate.ok:
            state.pending_content_request = turn.message
            return self._reply(turn, Mode.voice, gate.message)
        if tag in (
            IntentTag.content,
            IntentTag.presentation,
            IntentTag.release,
            IntentTag.audit,
            IntentTag.recommendation,
        ):
            return self._reply(
                turn,
                Mode.clarifier,
                "There's no site structure yet. Say \"build\" and I'll propose one first.",
            )
        return self._advise(turn)

    def _with_plan(self, turn: Turn, classification: IntentClassification) -> TurnResult:
        tag = classification.tag
        if tag == IntentTag.build:
            return self._structural(turn)
        if tag == IntentTag.content:
            return self._content(turn)
        if tag == IntentTag.presentation:
            return self._presentation(turn)
        if tag == IntentTag.release:
            return self._release(turn)
        if tag == IntentTag.audit:
            return self._audit(turn)
        if tag == IntentTag.recommendation:
            return self._recommendations(turn)
        if tag == IntentTag.explain and turn.state.plan is not None and turn.state.plan.explanation:
            return self._reply(
                turn,
                Mode.advisor,
                f"Here's the reasoning behind the current structure:\n{turn.state.plan.explanation}",
            )
        return self._advise(turn)

    # Plans

    def _propose_plan(self, turn: Turn) -> TurnResult:
        state = turn.state
        current = state.plan.plan if state.plan is not None else None
        try:
            proposal = self._planner.propose(
                state.intake,
                state.design_intent.intent if state.design_intent else None,
                turn.message,
                current_plan=current,
            )
        except SchemaViolation as exc:
            logger.warning("Site plan generation failed", extra={"violations": exc.violations})
            return self._reply(turn, Mode.builder, PLAN_FAILURE, error="plan_invalid")

        state.plan = StoredPlan(status=PlanStatus.proposed, plan=proposal.plan, explanation=proposal.explanation)
        text = (
            f"{proposal.explanation}\n\n"
            f"Proposed structure:\n{format_plan(proposal.plan)}\n\n"
            "Say yes to create it, or tell me what to change."
        )
        return self._reply(turn, Mode.builder, text, payload={"plan": proposal.plan.model_dump()})

    def _resolve_plan(self, turn: Turn) -> TurnResult:
        state = turn.state
        stored = state.plan
        amendment = stored.amendment

        if is_affirmative(turn.message):
            if amendment is not None:
                return self._apply_amendment(turn)
            return self._create_site(turn)

        if is_negative(turn.message):
            if amendment is not None:
                stored.amendment = None
                stored.status = PlanStatus.confirmed
                return self._reply(turn, Mode.builder, "Understood. I won't make that structure change.")
            stored.status = PlanStatus.rejected
            return self._reply(
                turn,
                Mode.builder,
                "Understood. Tell me what to change about the structure and I'll revise the plan.",
            )

        if classify_intent(turn.message).tag == IntentTag.explain:
            explanation = describe_call(amendment) if amendment is not None else stored.explanation
            return self._reply(turn, Mode.builder, explanation or "This structure follows the stated purpose.")

        if amendment is None and mentions_structure(turn.message):
            return self._propose_plan(turn)

        if amendment is not None:
            return self._reply(
                turn,
                Mode.builder,
                "I have a pending structure change. Say yes to apply it, or no to discard.",
            )
        return self._reply(
            turn,
            Mode.builder,
            "I have a proposed site structure waiting. Say yes to create it, or tell me what to change.",
        )

    def _create_site(self, turn: Turn) -> TurnResult:
        state = turn.state
        structure_gate(state).require()
        try:
            result = self._tools.create_site_from_plan(
                state.site_id,
                state.plan.plan,
                blog_presence=state.intake.blog,
                conversation_id=state.id,
            )
        except (ToolPrecondition, SchemaViolation) as exc:
            state.plan.status = PlanStatus.rejected
            return self._reply(turn, Mode.builder, f"I couldn't create the structure: {exc.message}", error=exc.message)

        state.plan.status = PlanStatus.confirmed
        created = "\n".join(
            f"- {page.page_id.title()} ({', '.join(page.section_ids())})" for page in result.site.pages
        )
        text = (
            "I'm going to create the page structure now. This will not add copy or styling yet.\n\n"
            f"I created:\n{created}"
        )
        return self._reply(
            turn,
            Mode.builder,
            text,
            payload={"plan": state.plan.plan.model_dump(), "mutationId": result.entry.id},
        )

    def _apply_amendment(self, turn: Turn) -> TurnResult:
        state = turn.state
        call = state.plan.amendment
        state.plan.amendment = None
        state.plan.status = PlanStatus.confirmed
        try:
            result = self._tools.apply_call(
                state.site_id,
                call,
                blog_presence=state.intake.blog,
                conversation_id=state.id,
            )
        except (ToolPrecondition, SchemaViolation) as exc:
            return self._reply(turn, Mode.builder, f"I couldn't apply that change: {exc.message}", error=exc.message)
        state.plan.plan = result.site.to_plan()
        return self._reply(
            turn,
            Mode.builder,
            f"Done. {describe_call(call)}",
            payload={"plan": state.plan.plan.model_dump(), "mutationId": result.entry.id},
        )

    def _structural(self, turn: Turn) -> TurnResult:
        state = turn.state
        site = self._site(turn)
        try:
            routed = self._router.route_structural(turn.message, site, state.intake)
        except SchemaViolation:
            routed = None
        if routed is None:
            return self._reply(
                turn,
                Mode.builder,
                "I couldn't map that to a structural change. Name the page or section you want to add, move, or enable.",
            )
        try:
            self._tools.apply_call(site.id, routed.call, blog_presence=state.intake.blog, dry_run=True)
        except (ToolPrecondition, SchemaViolation) as exc:
            return self._reply(turn, Mode.builder, _rejection(exc))

        state.plan.amendment = routed.call
        state.plan.status = PlanStatus.proposed
        summary = describe_call(routed.call)
        text = f"{summary} {routed.reason}".strip() + "\n\nSay yes to apply this structure change, or no to discard."
        return self._reply(turn, Mode.builder, text, payload={"amendment": routed.call.model_dump()})

    # Drafts

    def _resolve_draft(self, turn: Turn, draft: Any) -> TurnResult:
        if isinstance(draft, RecommendationDraft):
            return self._resolve_recommendations(turn, draft)

        state = turn.state
        if is_affirmative(turn.message):
            return self._apply_draft(turn, draft)

        if is_negative(turn.message):
            state.drafts.clear(DraftKind(draft.kind))
            if isinstance(draft, ContentDraft):
                self._tools.record_rejected_content(
                    state.site_id,
                    section_instance_id=draft.call.arguments.section_instance_id,
                    content=draft.call.arguments.content,
                    instruction=draft.call.arguments.instruction,
                )
                return self._reply(turn, Mode.builder, "Understood. Tell me what to change and I'll revise the section.")
            if isinstance(draft, ReleaseDraft):
                return self._reply(turn, Mode.builder, "Understood. Tell me what release action you want instead.")
            return self._reply(turn, Mode.builder, "Understood. I'll keep the current presentation.")

        tag = classify_intent(turn.message).tag
        if tag == IntentTag.explain:
            return self._reply(turn, Mode.builder, draft.rationale)
        if isinstance(draft, ContentDraft) and tag == IntentTag.content:
            return self._revise_content(turn, draft)

        if isinstance(draft, ContentDraft):
            text = "I have a pending content draft. Say yes to apply it, or no to discard."
        elif isinstance(draft, ReleaseDraft):
            text = "I have a pending release action. Say yes to proceed, or no to cancel."
        else:
            text = "I have a pending presentation change. Say yes to apply it, or no to discard."
        return self._reply(turn, Mode.builder, text)

    def _apply_draft(self, turn: Turn, draft: Any) -> TurnResult:
        state = turn.state
        if isinstance(draft, ReleaseDraft) and not turn.user_id:
            raise Unauthorized(RELEASE_SIGN_IN)
        state.drafts.clear(DraftKind(draft.kind))
        # The mutation is saved before release events go out, so the slot must be cleared first.
        self._store.save_conversation(state)
        first_publish = isinstance(draft.call, PublishSnapshotCall) and not any(
            entry.tool == "publishSnapshot" for entry in self._store.list_mutations(state.site_id)
        )
        try:
            result = self._tools.apply_call(
                state.site_id,
                draft.call,
                blog_presence=state.intake.blog,
                conversation_id=state.id,
            )
        except (ToolPrecondition, SchemaViolation, NotFound) as exc:
            logger.warning("Draft could not be applied", extra={"tool": draft.tool, "error": exc.message})
            return self._reply(turn, Mode.builder, f"I couldn't apply that: {exc.message}", error=exc.message)

        payload = {"mutationId": result.entry.id, **_camel(result.payload)}
        if isinstance(draft, ContentDraft):
            return self._reply(turn, Mode.builder, "Applied. Tell me the next section you want to draft.", payload=payload)
        if isinstance(draft, PresentationDraft):
            return self._reply(turn, Mode.builder, f"Applied. {describe_call(draft.call)}", payload=payload)

        if isinstance(draft.call, RollbackToSnapshotCall):
            text = f"Rolled back. Snapshot {draft.call.arguments.snapshot_id} is live again."
        elif isinstance(draft.call, PublishSnapshotCall):
            text = "Published. Your site is live."
            if first_publish and result.site.advisory_mode == AdvisoryMode.prescriptive:
                recommended = self._stage_recommendations(turn, result.site, first_publish=True)
                if recommended is not None:
                    text, extra = recommended
                    payload.update(extra)
        else:
            text = f"Preview ready: {result.payload['preview_url']}"
        return self._reply(turn, Mode.builder, text, payload=payload)

    # Content

    def _writer_context(
        self,
        turn: Turn,
        page_goal: str,
        target: ContentTarget,
        current: dict[str, Any] | None,
    ) -> dict[str, Any]:
        rewrite = target.tool == "rewriteSectionContent"
        return {
            "page_goal": page_goal,
            "intake": turn.state.intake,
            "voice": turn.state.voice,
            "instruction": target.instruction,
            "current": current if rewrite else None,
        }

    def _content_target(self, turn: Turn, site: Site, request: str) -> ContentTarget | None:
        instance_id = turn.section_scope
        if instance_id:
            found = site.section(instance_id)
            if found is None:
                raise NotFound("Section not found", context={"section_instance_id": instance_id})
            tool = "rewriteSectionContent" if found[1].content else "generateSectionContent"
            return ContentTarget(tool=tool, section_instance_id=instance_id, instruction=request)
        try:
            return self._router.route_content(request, site, turn.state.voice)
        except SchemaViolation:
            return None

    def _streamable_target(self, turn: Turn) -> tuple[Site, ContentTarget] | None:
        state = turn.state
        if state.plan is None or state.plan.status != PlanStatus.confirmed:
            return None
        if next(state.drafts.pending(), None) is not None:
            return None
        if not (structure_gate(state).ok and voice_gate(state).ok):
            return None
        if classify_intent(turn.message).tag != IntentTag.content or self._client is None:
            return None
        site = self._site(turn)
        target = self._content_target(turn, site, turn.message)
        return (site, target) if target is not None else None

    def _content(self, turn: Turn, *, request: str | None = None) -> TurnResult:
        state = turn.state
        request = request or turn.message
        gate = voice_gate(state)
        if not gate.ok:
            state.pending_content_request = request
            return self._reply(turn, Mode.voice, gate.message)

        site = self._site(turn)
        target = self._content_target(turn, site, request)
        if target is None:
            return self._reply(
                turn,
                Mode.builder,
                'Tell me which page and section you want me to write, for example "write the home hero".',
            )
        page, section = site.section(target.section_instance_id)
        try:
            content = self._writer.write(
                section.section_id,
                **self._writer_context(turn, page.goal, target, section.content),
            )
        except SchemaViolation as exc:
            logger.warning("Content generation failed", extra={"violations": exc.violations})
            return self._reply(turn, Mode.builder, CONTENT_FAILURE, error="content_invalid")
        return self._stage_content(turn, site, target, content)

    def _revise_content(self, turn: Turn, draft: ContentDraft) -> TurnResult:
        site = self._site(turn)
        found = site.section(draft.call.arguments.section_instance_id)
        if found is None:
            turn.state.drafts.clear(DraftKind.content)
            return self._reply(turn, Mode.builder, "That section no longer exists, so I discarded the draft.", error="Section not found")
        page, section = found
        target = ContentTarget(
            tool=draft.tool,
            section_instance_id=section.id,
            instruction=turn.message,
        )
        try:
            content = self._writer.write(
                section.section_id,
                page_goal=page.goal,
                intake=turn.state.intake,
                voice=turn.state.voice,
                instruction=turn.message,
                current=draft.call.arguments.content,
            )
        except SchemaViolation as exc:
            logger.warning("Content revision failed", extra={"violations": exc.violations})
            return self._reply(turn, Mode.builder, CONTENT_FAILURE, error="content_invalid")
        return self._stage_content(turn, site, target, content)

    def _stage_content(self, turn: Turn, site: Site, target: ContentTarget, content: dict[str, Any]) -> TurnResult:
        page, section = site.section(target.section_instance_id)
        arguments = SectionContentArgs(
            section_instance_id=section.id,
            content=content,
            instruction=target.instruction,
        )
        if target.tool == "rewriteSectionContent":
            call = RewriteSectionContentCall(arguments=arguments)
        else:
            call = GenerateSectionContentCall(arguments=arguments)
        draft = ContentDraft(
            call=call,
            page_id=page.page_id,
            section_id=section.section_id,
            rationale=f"This draft follows the voice contract for the {page.page_id} {section.section_id} section.",
        )
        turn.state.drafts.put(draft)
        text = (
            f"Draft for {page.page_id} {section.section_id}:\n\n"
            f"{json.dumps(content, indent=2)}\n\n"
            "Do you want me to apply this, or adjust it?"
        )
        return self._reply(turn, Mode.builder, text, payload={"draft": serialize_draft(draft)})

    # Presentation

    def _presentation(self, turn: Turn) -> TurnResult:
        state = turn.state
        site = self._site(turn)
        try:
            routed = self._router.route_presentation(turn.message, site, state.intake, state.voice)
        except SchemaViolation:
            routed = None
        if routed is None:
            return self._reply(
                turn,
                Mode.builder,
                "I couldn't map that to a theme or layout change. Name a theme or the section layout you want.",
            )
        call = routed.call
        if isinstance(call, ApplyThemeCall) and call.arguments.theme_id == site.theme_id:
            return self._reply(turn, Mode.builder, "That theme is already applied.")
        if isinstance(call, SwitchSectionVariantCall):
            found = site.section(call.arguments.section_instance_id)
            if found is not None and found[1].variant_id == call.arguments.variant_id:
                return self._reply(turn, Mode.builder, "That section already uses that layout.")
        try:
            self._tools.apply_call(site.id, call, dry_run=True)
        except (ToolPrecondition, SchemaViolation) as exc:
            return self._reply(turn, Mode.builder, _rejection(exc))

        rationale = f"{describe_call(call)} {routed.reason}".strip()
        draft = PresentationDraft(call=call, rationale=rationale)
        state.drafts.put(draft)
        return self._reply(
            turn,
            Mode.builder,
            f"{rationale}\n\nSay yes to apply it, or no to discard.",
            payload={"draft": serialize_draft(draft)},
        )

    # Release

    def _release(self, turn: Turn) -> TurnResult:
        if not turn.user_id:
            raise Unauthorized(RELEASE_SIGN_IN)
        state = turn.state
        site = self._site(turn)
        try:
            routed = route_release(
                turn.message,
                published_snapshot_id=site.published_snapshot_id,
                snapshots=self._store.list_snapshots(site.id),
            )
        except ReleaseRoutingError as exc:
            return self._reply(turn, Mode.builder, str(exc))
        if routed is None:
            return self._reply(turn, Mode.builder, "Tell me whether you want a preview, a publish, or a rollback.")
        if isinstance(routed.call, RollbackToSnapshotCall) and routed.call.arguments.snapshot_id == site.published_snapshot_id:
            return self._reply(
                turn,
                Mode.builder,
                "That snapshot is already live. Want to roll back to a different version?",
            )

        draft = ReleaseDraft(call=routed.call, rationale=routed.reason)
        state.drafts.put(draft)
        return self._reply(
            turn,
            Mode.builder,
            f"{routed.reason} Say yes to proceed, or no to cancel.",
            payload={"draft": serialize_draft(draft)},
        )

    # Audit and recommendations

    def _audit(self, turn: Turn) -> TurnResult:
        state = turn.state
        site = self._site(turn)
        mode = infer_audit_mode(turn.message)
        findings = run_audit(site, state.intake, state.voice, mode)
        run = self._store.add_audit_run(
            AuditRun(id=new_id("audit"), site_id=site.id, conversation_id=state.id, mode=mode, findings=findings)
        )
        logger.info("Ran audit", extra={"site_id": site.id, "audit_mode": mode.value, "findings": len(findings)})
        text = format_audit(findings)
        payload: dict[str, Any] = {
            "auditRunId": run.id,
            "auditMode": mode.value,
            "findings": [finding.model_dump(mode="json") for finding in findings],
        }
        if site.advisory_mode == AdvisoryMode.prescriptive:
            recommended = self._stage_recommendations(turn, site)
            if recommended is not None:
                extra_text, extra = recommended
                text = f"{text}\n\n{extra_text}"
                payload.update(extra)
        return self._reply(turn, Mode.audit, text, payload=payload)

    def _recommendations(self, turn: Turn) -> TurnResult:
        site = self._site(turn)
        if site.advisory_mode != AdvisoryMode.prescriptive:
            return self._reply(turn, Mode.advisor, PRESCRIPTIVE_REQUIRED)
        recommended = self._stage_recommendations(turn, site)
        if recommended is None:
            return self._reply(turn, Mode.advisor, "I don't have any recommendations worth acting on right now.")
        text, payload = recommended
        return self._reply(turn, Mode.advisor, text, payload=payload)

    def _stage_recommendations(
        self,
        turn: Turn,
        site: Site,
        *,
        first_publish: bool = False,
    ) -> tuple[str, dict[str, Any]] | None:
        state = turn.state
        history = build_history(self._store.list_recommendations(site.id))
        theme_locked = any(entry.tool == "applyTheme" for entry in self._store.list_mutations(site.id))
        candidates = build_candidates(site, state.intake, state.voice, theme_locked=theme_locked)
        ranked = rank_recommendations(
            candidates,
            history,
            site=site,
            audience_level=state.voice.audience_level,
            config=self._settings.scoring,
        )
        actionable = [rec for rec in ranked if rec.actionable]
        if not actionable:
            return None

        records = [
            RecommendationRecord(id=new_id("rec"), site_id=site.id, conversation_id=state.id, recommendation=rec)
            for rec in actionable
        ]
        self._store.save_recommendations(records)
        draft = RecommendationDraft(
            recommendations=ranked,
            record_ids=[record.id for record in records],
            rationale=format_explanation(ranked),
        )
        state.drafts.put(draft)

        if first_publish:
            text = format_first_prescriptive_moment(ranked, state.voice)
        else:
            text = format_recommendations(ranked, state.voice)
            text += "\n\nReply with a number to apply one, or no to skip."
        reminder = build_reminder(ranked, history)
        if reminder:
            text = f"{reminder}\n\n{text}"
        payload = {
            "draft": serialize_draft(draft),
            "recommendations": [rec.model_dump(mode="json") for rec in ranked],
        }
        return text, payload

    def _resolve_recommendations(self, turn: Turn, draft: RecommendationDraft) -> TurnResult:
        state = turn.state
        actionable = draft.actionable()
        selection = parse_selection(turn.message)
        if selection is None and is_affirmative(turn.message) and len(actionable) == 1:
            selection = 1

        if selection is not None:
            leave = draft.leave_as_is()
            if selection == len(actionable) + 1 and leave is not None:
                state.drafts.clear(DraftKind.recommendation)
                self._store.update_recommendation_status(draft.record_ids, RecommendationStatus.deferred)
                return self._reply(turn, Mode.advisor, f"Understood. I'll leave {leave.title} as-is.")
            if not 1 <= selection <= len(actionable):
                return self._reply(
                    turn,
                    Mode.advisor,
                    f"Pick a number between 1 and {len(actionable)}, or say no to skip them.",
                )
            chosen = actionable[selection - 1]
            chosen_id = draft.record_ids[selection - 1]
            others = [record_id for record_id in draft.record_ids if record_id != chosen_id]
            state.drafts.clear(DraftKind.recommendation)
            self._store.update_recommendation_status([chosen_id], RecommendationStatus.accepted)
            if others:
                self._store.update_recommendation_status(others, RecommendationStatus.deferred)
            return self._apply_recommendation(turn, chosen)

        if is_negative(turn.message):
            state.drafts.clear(DraftKind.recommendation)
            self._store.update_recommendation_status(draft.record_ids, RecommendationStatus.rejected)
            return self._reply(turn, Mode.advisor, "Understood. I won't apply any of these.")

        if is_affirmative(turn.message):
            return self._reply(turn, Mode.advisor, "Which one? Reply with a number.")

        if classify_intent(turn.message).tag == IntentTag.explain:
            keys = {rec.key for rec in actionable}
            if keys and keys <= set(state.explained_keys):
                return self._reply(
                    turn,
                    Mode.advisor,
                    "I've already explained these recommendations in this session. "
                    "Reply with a number to apply one, or no to skip.",
                )
            state.explained_keys = sorted({*state.explained_keys, *keys})
            return self._reply(turn, Mode.advisor, format_explanation(draft.recommendations))

        return self._reply(turn, Mode.advisor, "Reply with a number to apply one, or no to skip.")

    def _apply_recommendation(self, turn: Turn, recommendation: Recommendation) -> TurnResult:
        state = turn.state
        if recommendation.tool in CONTENT_TOOLS:
            args = recommendation.args
            target = ContentTarget(
                tool=recommendation.tool,
                section_instance_id=args["section_instance_id"],
                instruction=args.get("instruction"),
            )
            site = self._site(turn)
            found = site.section(target.section_instance_id)
            if found is None:
                return self._reply(turn, Mode.builder, "That section no longer exists.", error="Section not found")
            page, section = found
            try:
                content = self._writer.write(
                    section.section_id,
                    **self._writer_context(turn, page.goal, target, section.content),
                )
            except SchemaViolation as exc:
                logger.warning("Recommended rewrite failed", extra={"violations": exc.violations})
                return self._reply(turn, Mode.builder, CONTENT_FAILURE, error="content_invalid")
            return self._stage_content(turn, site, target, content)

        call = parse_tool_call({"tool": recommendation.tool, "arguments": recommendation.args})
        try:
            result = self._tools.apply_call(
                state.site_id,
                call,
                blog_presence=state.intake.blog,
                conversation_id=state.id,
            )
        except (ToolPrecondition, SchemaViolation) as exc:
            return self._reply(turn, Mode.builder, f"I couldn't apply that: {exc.message}", error=exc.message)
        if state.plan is not None:
            state.plan.plan = result.site.to_plan()
        return self._reply(
            turn,
            Mode.builder,
            f"Done. {recommendation.title}",
            payload={"mutationId": result.entry.id, "recommendationKey": recommendation.key},
        )

    # Advisor

    def _advise(self, turn: Turn, *, fallback: str | None = None) -> TurnResult:
        if self._client is None:
            text = fallback or (
                "Tell me what you'd like to do next: adjust the structure, draft content, "
                "change the look, preview or publish, or run an audit."
            )
            return self._reply(turn, Mode.advisor, text)

        state = turn.state
        history = self._store.list_messages(state.id, limit=self._settings.max_history)
        transcript = "\n".join(f"{message.role.value}: {message.content}" for message in history)
        prompt = (
            f"{ADVISOR_PROMPT}\n\n"
            f"{contract_summary(state.intake)}\n"
            f"Missing fields: {', '.join(state.intake.missing_fields()) or 'none'}\n\n"
            f"Conversation so far:\n{transcript}\n\n"
            f"user: {turn.message}\nassistant:"
        )
        text = self._client.generate_content(prompt, temperature=self._settings.advisor_temperature)
        return self._reply(turn, Mode.advisor, text.strip())

    # Direct operations

    def undo_section(self, site_id: str, section_instance_id: str, *, user_id: str | None = None) -> dict[str, Any]:
        self.load_site(site_id, user_id=user_id)
        result = self._tools.undo_section_content(site_id, section_instance_id=section_instance_id)
        return {
            "siteId": site_id,
            "sectionInstanceId": section_instance_id,
            "content": result.payload["content"],
            "mutationId": result.entry.id,
        }


def _rejection(exc: ToolPrecondition | SchemaViolation) -> str:
    details = getattr(exc, "violations", None)
    if details:
        return f"I can't make that change: {exc.message}.\n" + "\n".join(f"- {item}" for item in details)
    return f"I can't make that change: {exc.message}."


def _camel(payload: dict[str, Any]) -> dict[str, Any]:
    converted = {}
    for key, value in payload.items():
        head, *rest = key.split("_")
        converted[head + "".join(part.title() for part in rest)] = value
    return converted


__all__ = [
    "GateCheck",
    "TurnOrchestrator",
    "build_clarification_message",
    "build_voice_message",
    "describe_call",
    "format_plan",
    "structure_gate",
    "voice_gate",
]
