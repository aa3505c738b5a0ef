from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping

from .audit import count_words
from .catalog import PROOF_SECTIONS, THEMES, is_hero
from .config import ScoringConfig
from .models.contracts import IntakeContract, VoiceContract
from .models.recommendation import (
    CriteriaText,
    Recommendation,
    RecommendationRecord,
    RecommendationScores,
    RecommendationStatus,
)
from .models.site import Site
from .parsing import normalize_tone
from .validators import collect_strings

History = Mapping[str, Counter]

IMPACT_WEIGHT = 0.4
ALIGNMENT_WEIGHT = 0.3
CONFIDENCE_WEIGHT = 0.2
DISRUPTION_WEIGHT = 0.1
MISALIGNED_ALIGNMENT_CAP = 2
MAX_DEFERRALS = 2
BLOCKING_STATUSES = (
    RecommendationStatus.accepted,
    RecommendationStatus.rejected,
    RecommendationStatus.proposed,
)


def compute_score(
    *,
    impact: float,
    alignment: float,
    confidence: float,
    disruption: float,
    misaligned: bool = False,
) -> RecommendationScores:
    if misaligned:
        alignment = min(alignment, MISALIGNED_ALIGNMENT_CAP)
    score = (
        IMPACT_WEIGHT * impact
        + ALIGNMENT_WEIGHT * alignment
        + CONFIDENCE_WEIGHT * confidence
        - DISRUPTION_WEIGHT * disruption
    )
    return RecommendationScores(
        impact=impact,
        alignment=alignment,
        confidence=confidence,
        disruption=disruption,
        score=round(score, 2),
    )


def build_history(records: Iterable[RecommendationRecord]) -> dict[str, Counter]:
    history: dict[str, Counter] = {}
    for record in records:
        history.setdefault(record.key, Counter())[record.status.value] += 1
    return history


def is_eligible(history: History, key: str) -> bool:
    counts = history.get(key)
    if not counts:
        return True
    if any(counts.get(status.value, 0) > 0 for status in BLOCKING_STATUSES):
        return False
    return counts.get(RecommendationStatus.deferred.value, 0) < MAX_DEFERRALS


def suggest_theme(intake: IntakeContract, voice: VoiceContract) -> str:
    purpose = (intake.purpose or "").lower()
    tone = voice.tone or normalize_tone(intake.tone or "")
    if any(word in purpose for word in ("portfolio", "studio", "agency")):
        return "studioNeutral"
    if any(word in purpose for word in ("saas", "product", "software")):
        return "studioContrast"
    if tone == "expressive":
        return "expressiveColor"
    if tone == "conservative":
        return "minimalMono"
    return "editorialLight"


def _candidate(
    recommendation_id: str,
    key: str,
    phase: str,
    title: str,
    *,
    rationale: str,
    impact_summary: str,
    criteria: CriteriaText,
    scores: RecommendationScores,
    tool: str | None,
    args: dict,
    tradeoff: str,
) -> Recommendation:
    return Recommendation(
        recommendation_id=recommendation_id,
        key=key,
        phase=phase,
        title=title,
        rationale=rationale,
        impact_summary=impact_summary,
        criteria=criteria,
        scores=scores,
        tool=tool,
        args=args,
        tradeoffs=[tradeoff],
    )


def build_candidates(
    site: Site,
    intake: IntakeContract,
    voice: VoiceContract,
    *,
    theme_locked: bool = False,
) -> list[Recommendation]:
    """All candidate recommendations the current site state supports, before eligibility and ranking."""
    candidates: list[Recommendation] = []
    voice_complete = voice.is_complete()
    home = site.page("home")

    if home:
        section_ids = home.section_ids()
        cta_index = section_ids.index("ctaPrimary") if "ctaPrimary" in section_ids else -1
        has_proof = any(section_id in PROOF_SECTIONS for section_id in section_ids)
        proof_after = cta_index != -1 and any(s in PROOF_SECTIONS for s in section_ids[cta_index + 1 :])

        if proof_after:
            before = section_ids[:cta_index]
            after = section_ids[cta_index + 1 :]
            ordered = before + [s for s in after if s in PROOF_SECTIONS] + [s for s in after if s not in PROOF_SECTIONS]
            candidates.append(
                _candidate(
                    "moveProofAboveCTA",
                    "moveProofAboveCTA:home",
                    "structure",
                    "Move proof above the primary CTA on the homepage.",
                    rationale="Right now the CTA arrives before credibility signals.",
                    impact_summary="This earns trust before asking for action.",
                    criteria=CriteriaText(
                        impact="This removes a credibility blocker for the homepage goal.",
                        alignment="It aligns with building trust before conversion.",
                        confidence="Based on section ordering rules.",
                        disruption="Reorders one block without changing content.",
                    ),
                    scores=compute_score(
                        impact=5,
                        alignment=4,
                        confidence=5,
                        disruption=3,
                        misaligned=home.goal not in ("credibility", "conversion", "trust"),
                    ),
                    tool="reorderSections",
                    args={"page_id": "home", "ordered_section_ids": ordered + ["ctaPrimary"]},
                    tradeoff="CTA appears later, which can slow action for returning visitors.",
                )
            )

        if not has_proof:
            candidates.append(
                _candidate(
                    "addMissingProof",
                    "addMissingProof:home",
                    "structure",
                    "Add a proof block to the homepage.",
                    rationale="There are no credibility signals yet.",
                    impact_summary="Adds trust before asking visitors to act.",
                    criteria=CriteriaText(
                        impact="Adds a missing credibility layer.",
                        alignment="Matches the need for trust on the homepage.",
                        confidence="Based on missing proof sections.",
                        disruption="Adds a single section.",
                    ),
                    scores=compute_score(
                        impact=4,
                        alignment=4,
                        confidence=4,
                        disruption=2,
                        misaligned=home.goal == "navigation",
                    ),
                    tool="addSection",
                    args={"page_id": "home", "section_id": "proofMetrics"},
                    tradeoff="Adds page length and one more section to maintain.",
                )
            )

        hero = next((s for s in home.sections if is_hero(s.section_id)), None)
        headline = (hero.content or {}).get("headline") if hero else None
        if voice_complete and hero and isinstance(headline, str) and count_words(headline) > 12:
            candidates.append(
                _candidate(
                    "strengthenHeroClarity",
                    f"strengthenHeroClarity:{hero.id}",
                    "content",
                    "Tighten the homepage hero headline for clarity.",
                    rationale="The headline is long and dilutes the main point.",
                    impact_summary="Sharper framing improves first-glance comprehension.",
                    criteria=CriteriaText(
                        impact="Improves the clarity of the primary message.",
                        alignment="Fits the site goal and audience expectations.",
                        confidence="Based on headline length.",
                        disruption="Copy-only change.",
                    ),
                    scores=compute_score(impact=3, alignment=4, confidence=3, disruption=1),
                    tool="rewriteSectionContent",
                    args={
                        "section_instance_id": hero.id,
                        "instruction": "Shorten the headline for clarity and focus.",
                    },
                    tradeoff="Shorter copy can reduce nuance if over-tightened.",
                )
            )

    if voice_complete:
        densest = None
        densest_words = 120
        for page, section in site.iter_sections():
            if not section.content:
                continue
            words = sum(count_words(text) for text in collect_strings(section.content))
            if words > densest_words:
                densest, densest_words = (page, section), words
        if densest:
            page, section = densest
            candidates.append(
                _candidate(
                    "reduceContentDensity",
                    f"reduceContentDensity:{section.id}",
                    "content",
                    f"Reduce content density in {page.page_id} {section.section_id}.",
                    rationale="The section is text-heavy for its role.",
                    impact_summary="Improves scanability and pacing.",
                    criteria=CriteriaText(
                        impact="Improves readability and pacing.",
                        alignment="Supports clearer communication for the audience.",
                        confidence="Based on content length.",
                        disruption="Copy-only change.",
                    ),
                    scores=compute_score(impact=2, alignment=3, confidence=2, disruption=1),
                    tool="rewriteSectionContent",
                    args={
                        "section_instance_id": section.id,
                        "instruction": "Tighten the copy to reduce density while preserving meaning.",
                    },
                    tradeoff="Condensing text may remove nuance if over-edited.",
                )
            )

    if not theme_locked:
        suggested = suggest_theme(intake, voice)
        if site.theme_id != suggested:
            candidates.append(
                _candidate(
                    "alignThemeToPurpose",
                    f"alignThemeToPurpose:{suggested}",
                    "presentation",
                    f"Align the theme to {THEMES[suggested].label}.",
                    rationale="The current theme doesn't match the intended tone.",
                    impact_summary="Aligns visual tone with the site's purpose.",
                    criteria=CriteriaText(
                        impact="Improves visual alignment with intent.",
                        alignment="Matches the chosen purpose and tone.",
                        confidence="Based on theme intent mapping.",
                        disruption="Theme swap only.",
                    ),
                    scores=compute_score(impact=2, alignment=4, confidence=3, disruption=1),
                    tool="applyTheme",
                    args={"theme_id": suggested},
                    tradeoff="A theme change can shift expectations for returning visitors.",
                )
            )

    case_grid = next(
        ((page, section) for page, section in site.iter_sections() if section.section_id == "caseGrid" and section.content),
        None,
    )
    if case_grid:
        _, section = case_grid
        items = section.content.get("items") if section.content else None
        count = len(items) if isinstance(items, list) else 0
        if 0 < count <= 3 and section.variant_id != "twoColumn":
            candidates.append(
                _candidate(
                    "switchSectionVariantForFocus",
                    f"switchSectionVariantForFocus:{section.id}",
                    "presentation",
                    "Switch the case grid to a two-column layout.",
                    rationale="Fewer items benefit from larger tiles and focus.",
                    impact_summary="Improves emphasis on each case study.",
                    criteria=CriteriaText(
                        impact="Improves focus and scanability.",
                        alignment="Fits the work/credibility goal.",
                        confidence="Based on the item count.",
                        disruption="Layout-only change.",
                    ),
                    scores=compute_score(impact=3, alignment=3, confidence=3, disruption=1),
                    tool="switchSectionVariant",
                    args={"section_instance_id": section.id, "variant_id": "twoColumn"},
                    tradeoff="Larger tiles reduce above-the-fold density.",
                )
            )

    return candidates


def build_leave_as_is(site: Site) -> Recommendation:
    home = site.page("home")
    hero = next((s for s in home.sections if is_hero(s.section_id) and s.content), None) if home else None
    if hero:
        target = "the homepage hero"
    elif site.theme_id:
        target = "the current theme"
    else:
        target = "the core structure"
    return Recommendation(
        recommendation_id="leaveAsIs",
        key=f"leaveAsIs:{target.replace(' ', '_')}",
        phase="none",
        title=target,
        rationale="It already supports the site's primary intent without introducing friction.",
        impact_summary="Preserves a strong element that is working.",
        criteria=CriteriaText(
            impact="Keeping this element avoids unnecessary churn.",
            alignment="It aligns with the site purpose and audience expectations.",
            confidence="This is based on the current structure and content.",
            disruption="No changes required.",
        ),
        scores=compute_score(impact=0, alignment=0, confidence=0, disruption=0),
        tool=None,
        args={},
        tradeoffs=["No change means no new upside from experimentation."],
    )


def rank_recommendations(
    candidates: Iterable[Recommendation],
    history: History,
    *,
    site: Site,
    audience_level: str | None,
    config: ScoringConfig,
) -> list[Recommendation]:
    """Eligible candidates at or above threshold, best first, capped by audience, plus one leave-as-is."""
    eligible = [c for c in candidates if is_eligible(history, c.key)]
    eligible.sort(key=lambda c: c.scores.score, reverse=True)
    qualified = [c for c in eligible if c.scores.score >= config.threshold]
    surfaced = qualified[: config.cap_for(audience_level)]

    ranked = []
    for recommendation in surfaced:
        siblings = [
            c for c in eligible
            if c.key != recommendation.key and c.scores.score <= recommendation.scores.score
        ][: config.max_alternatives]
        ranked.append(
            recommendation.model_copy(
                update={
                    "why_not_alternatives": [
                        f'I did not recommend "{sibling.title}" because it scored lower on impact/confidence.'
                        for sibling in siblings
                    ]
                }
            )
        )
    ranked.append(build_leave_as_is(site))
    return ranked


def build_reminder(recommendations: Iterable[Recommendation], history: History) -> str | None:
    for recommendation in recommendations:
        if not recommendation.actionable:
            continue
        if history.get(recommendation.key, Counter()).get(RecommendationStatus.deferred.value, 0) > 0:
            return f"I flagged this earlier and it hasn't been addressed: {recommendation.title}"
    return None


PHASE_LABELS = {"structure": "Structure", "content": "Content", "presentation": "Presentation"}


def format_recommendations(
    recommendations: list[Recommendation],
    voice: VoiceContract,
    *,
    include_tradeoffs: bool = False,
) -> str:
    actionable = [r for r in recommendations if r.actionable]
    leave = next((r for r in recommendations if not r.actionable), None)
    if not actionable:
        return "I don't have any recommendations worth acting on right now."

    verbosity = voice.verbosity or "standard"
    audience = voice.audience_level or "professional"
    soften = voice.assertiveness == "reserved" or audience == "general"
    show_tradeoffs = include_tradeoffs or audience == "expert" or verbosity == "rich"

    lines: list[str] = []
    for index, rec in enumerate(actionable, start=1):
        phase = PHASE_LABELS.get(rec.phase, "Structure")
        if verbosity == "tight":
            lines.append(f"{index}. {rec.title} ({phase})")
            continue
        rationale = rec.rationale
        if soften:
            rationale = f"This likely helps because {rationale[:1].lower()}{rationale[1:]}"
        lines.append(f"{index}. {rec.title}")
        lines.append(f"Why: {rationale}")
        lines.append(f"Impact: {rec.impact_summary}")
        lines.append(f"({phase})")
        if show_tradeoffs and rec.tradeoffs:
            lines.append(f"Tradeoff: {rec.tradeoffs[0]}")
        lines.append("")

    if leave:
        if verbosity == "tight":
            lines.append(f"- Leave {leave.title} as-is.")
        else:
            lines.append(f"I would leave {leave.title} as-is.")
    return "\n".join(lines).strip()


def format_first_prescriptive_moment(recommendations: list[Recommendation], voice: VoiceContract) -> str:
    actionable = [r for r in recommendations if r.actionable]
    if not actionable:
        return "Your site is live. I don't have any high-confidence changes to recommend right now."
    count = "is 1 change" if len(actionable) == 1 else f"are {len(actionable)} changes"
    intro = (
        "Your site is live and structurally coherent for its stated purpose.\n"
        f"Based on its purpose and audience, there {count} I would recommend prioritizing next "
        "and one thing I would not touch."
    )
    body = format_recommendations(recommendations, voice, include_tradeoffs=voice.audience_level == "expert")
    return f"{intro}\n\n{body}\n\nReply with a number to apply one, or no to skip."


def format_explanation(recommendations: list[Recommendation]) -> str:
    blocks = []
    for index, rec in enumerate([r for r in recommendations if r.actionable], start=1):
        lines = [
            f"{index}. {rec.title} (score {rec.scores.score:g})",
            f"Impact: {rec.criteria.impact}",
            f"Alignment: {rec.criteria.alignment}",
            f"Confidence: {rec.criteria.confidence}",
            f"Disruption: {rec.criteria.disruption}",
        ]
        lines.extend(f"Tradeoff: {tradeoff}" for tradeoff in rec.tradeoffs)
        lines.extend(rec.why_not_alternatives)
        blocks.append("\n".join(lines))
    if not blocks:
        return "There is nothing to explain yet; I haven't recommended any changes."
    return "\n\n".join(blocks)


__all__ = [
    "build_candidates",
    "build_history",
    "build_leave_as_is",
    "build_reminder",
    "compute_score",
    "format_explanation",
    "format_first_prescriptive_moment",
    "format_recommendations",
    "is_eligible",
    "rank_recommendations",
    "suggest_theme",
]
