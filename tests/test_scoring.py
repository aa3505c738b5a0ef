from __future__ import annotations

from collections import Counter

from site_copilot.config import ScoringConfig
from site_copilot.models.contracts import IntakeContract, VoiceContract
from site_copilot.models.recommendation import RecommendationRecord, RecommendationStatus
from site_copilot.models.site import Page, Section, Site
from site_copilot.scoring import (
    build_candidates,
    build_history,
    build_reminder,
    compute_score,
    format_explanation,
    format_recommendations,
    is_eligible,
    rank_recommendations,
    suggest_theme,
)

INTAKE = IntakeContract(
    purpose="Portfolio for my design studio",
    audience="Agency creative directors",
    action="Book a call",
    tone="expressive",
    blog="no",
)

VOICE = VoiceContract(audience_level="professional", tone="balanced", assertiveness="confident", verbosity="standard")

CASES = {
    "items": [
        {"title": "Harbor rebrand", "outcome": "Launched in six weeks"},
        {"title": "Atlas app", "outcome": "Doubled sign-ups"},
        {"title": "Field notes", "outcome": "Won a regional award"},
    ]
}


def _section(page_id: str, section_id: str, position: int, variant_id: str, content=None) -> Section:
    return Section(
        id=f"sec_{page_id}_{section_id}",
        page_id=page_id,
        section_id=section_id,
        position=position,
        variant_id=variant_id,
        content=content,
    )


def _site() -> Site:
    home = Page(
        id="page_home",
        page_id="home",
        goal="conversion",
        sections=[
            _section("home", "heroEditorial", 0, "stacked"),
            _section("home", "ctaPrimary", 1, "banner"),
            _section("home", "proofMetrics", 2, "inline"),
        ],
    )
    work = Page(
        id="page_work",
        page_id="work",
        goal="credibility",
        sections=[
            _section("work", "heroMinimal", 0, "centered"),
            _section("work", "caseGrid", 1, "threeColumn", CASES),
        ],
    )
    return Site(id="site_1", owner_id="user-1", pages=[home, work])


def _record(key: str, status: RecommendationStatus) -> RecommendationRecord:
    recommendation = build_candidates(_site(), INTAKE, VOICE)[0].model_copy(update={"key": key})
    return RecommendationRecord(id=f"rec_{status.value}", site_id="site_1", status=status, recommendation=recommendation)


def test_score_is_weighted_sum():
    scores = compute_score(impact=5, alignment=4, confidence=5, disruption=3)

    assert scores.score == 3.9


def test_misaligned_candidates_have_alignment_capped():
    scores = compute_score(impact=5, alignment=4, confidence=5, disruption=3, misaligned=True)

    assert scores.alignment == 2
    assert scores.score == 3.3


def test_eligibility_follows_history():
    history = {
        "a": Counter({"deferred": 1}),
        "b": Counter({"deferred": 2}),
        "c": Counter({"accepted": 1}),
        "d": Counter({"proposed": 1}),
    }

    assert is_eligible(history, "a")
    assert not is_eligible(history, "b")
    assert not is_eligible(history, "c")
    assert not is_eligible(history, "d")
    assert is_eligible(history, "unseen")


def test_history_counts_statuses_per_key():
    records = [
        _record("moveProofAboveCTA:home", RecommendationStatus.deferred),
        _record("moveProofAboveCTA:home", RecommendationStatus.deferred),
        _record("alignThemeToPurpose:studioNeutral", RecommendationStatus.rejected),
    ]

    history = build_history(records)

    assert history["moveProofAboveCTA:home"]["deferred"] == 2
    assert history["alignThemeToPurpose:studioNeutral"]["rejected"] == 1


def test_candidates_for_site_state():
    candidates = {c.recommendation_id: c for c in build_candidates(_site(), INTAKE, VOICE)}

    assert set(candidates) == {"moveProofAboveCTA", "alignThemeToPurpose", "switchSectionVariantForFocus"}
    assert candidates["moveProofAboveCTA"].args == {
        "page_id": "home",
        "ordered_section_ids": ["heroEditorial", "proofMetrics", "ctaPrimary"],
    }
    assert candidates["alignThemeToPurpose"].args == {"theme_id": "studioNeutral"}
    assert candidates["switchSectionVariantForFocus"].scores.score == 2.6


def test_locked_theme_is_not_second_guessed():
    candidates = build_candidates(_site(), INTAKE, VOICE, theme_locked=True)

    assert "alignThemeToPurpose" not in [c.recommendation_id for c in candidates]


def test_suggested_theme_follows_purpose_then_tone():
    assert suggest_theme(INTAKE, VOICE) == "studioNeutral"
    bakery = INTAKE.model_copy(update={"purpose": "Neighborhood bakery"})
    assert suggest_theme(bakery, VOICE.model_copy(update={"tone": "conservative"})) == "minimalMono"
    assert suggest_theme(bakery, VoiceContract()) == "expressiveColor"


def test_default_threshold_keeps_only_strong_recommendations():
    site = _site()
    ranked = rank_recommendations(
        build_candidates(site, INTAKE, VOICE), {}, site=site, audience_level="professional", config=ScoringConfig()
    )

    assert [r.recommendation_id for r in ranked] == ["moveProofAboveCTA", "leaveAsIs"]
    assert ranked[-1].title == "the core structure"


def test_audience_level_caps_the_list():
    site = _site()
    candidates = build_candidates(site, INTAKE, VOICE)
    config = ScoringConfig(threshold=2.0)

    general = rank_recommendations(candidates, {}, site=site, audience_level="general", config=config)
    expert = rank_recommendations(candidates, {}, site=site, audience_level="expert", config=config)

    assert [r.recommendation_id for r in general] == ["moveProofAboveCTA", "leaveAsIs"]
    assert [r.recommendation_id for r in expert] == [
        "moveProofAboveCTA",
        "switchSectionVariantForFocus",
        "alignThemeToPurpose",
        "leaveAsIs",
    ]
    assert general[0].why_not_alternatives == [
        'I did not recommend "Switch the case grid to a two-column layout." because it scored lower on impact/confidence.',
        'I did not recommend "Align the theme to Studio Neutral." because it scored lower on impact/confidence.',
    ]


def test_ineligible_recommendations_are_skipped():
    site = _site()
    history = {"moveProofAboveCTA:home": Counter({"rejected": 1})}

    ranked = rank_recommendations(
        build_candidates(site, INTAKE, VOICE), history, site=site, audience_level="general", config=ScoringConfig(threshold=2.0)
    )

    assert [r.recommendation_id for r in ranked] == ["switchSectionVariantForFocus", "leaveAsIs"]


def test_reminder_mentions_deferred_recommendation():
    site = _site()
    ranked = rank_recommendations(
        build_candidates(site, INTAKE, VOICE), {}, site=site, audience_level="professional", config=ScoringConfig()
    )

    assert build_reminder(ranked, {}) is None
    history = {"moveProofAboveCTA:home": Counter({"deferred": 1})}
    assert build_reminder(ranked, history) == (
        "I flagged this earlier and it hasn't been addressed: Move proof above the primary CTA on the homepage."
    )


def test_tight_format():
    site = _site()
    ranked = rank_recommendations(
        build_candidates(site, INTAKE, VOICE), {}, site=site, audience_level="professional", config=ScoringConfig()
    )

    text = format_recommendations(ranked, VOICE.model_copy(update={"verbosity": "tight"}))

    assert text == (
        "1. Move proof above the primary CTA on the homepage. (Structure)\n"
        "- Leave the core structure as-is."
    )


def test_reserved_voice_softens_rationale():
    site = _site()
    ranked = rank_recommendations(
        build_candidates(site, INTAKE, VOICE), {}, site=site, audience_level="professional", config=ScoringConfig()
    )

    text = format_recommendations(ranked, VOICE.model_copy(update={"assertiveness": "reserved"}))

    assert "Why: This likely helps because right now the CTA arrives before credibility signals." in text
    assert "Tradeoff:" not in text
    assert text.endswith("I would leave the core structure as-is.")


def test_explanation_lists_criteria_and_alternatives():
    site = _site()
    ranked = rank_recommendations(
        build_candidates(site, INTAKE, VOICE), {}, site=site, audience_level="general", config=ScoringConfig(threshold=2.0)
    )

    text = format_explanation(ranked)

    assert text.startswith("1. Move proof above the primary CTA on the homepage. (score 3.9)")
    assert "Disruption: Reorders one block without changing content." in text
    assert "Switch the case grid" in text
    assert format_explanation(ranked[-1:]) == "There is nothing to explain yet; I haven't recommended any changes."
