from __future__ import annotations

from site_copilot.audit import (
    content_findings,
    conversion_findings,
    format_audit,
    presentation_findings,
    run_audit,
    voice_findings,
)
from site_copilot.models.contracts import IntakeContract, VoiceContract
from site_copilot.models.recommendation import AuditFinding, AuditMode, Severity
from site_copilot.models.site import Page, Section, Site

INTAKE = IntakeContract(
    purpose="Portfolio for my design studio",
    audience="Agency creative directors",
    action="Book a call",
    tone="expressive",
    blog="no",
)

VOICE = VoiceContract(audience_level="professional", tone="balanced", assertiveness="confident", verbosity="standard")


def _page(page_id: str, goal: str, *sections: tuple[str, str, dict | None]) -> Page:
    return Page(
        id=f"page_{page_id}",
        page_id=page_id,
        goal=goal,
        sections=[
            Section(
                id=f"sec_{page_id}_{section_id}",
                page_id=page_id,
                section_id=section_id,
                position=position,
                variant_id=variant_id,
                content=content,
            )
            for position, (section_id, variant_id, content) in enumerate(sections)
        ],
    )


def _site(*pages: Page, theme_id: str | None = "studioNeutral") -> Site:
    return Site(id="site_1", owner_id="user-1", theme_id=theme_id, pages=list(pages))


def _issues(findings: list[AuditFinding]) -> list[str]:
    return [finding.issue for finding in findings]


def test_empty_sections_on_conversion_pages_are_high_impact():
    site = _site(
        _page(
            "home",
            "conversion",
            ("heroEditorial", "stacked", None),
            ("ctaPrimary", "banner", {"headline": "Talk to us", "action_label": "Book a call with our design team today"}),
        ),
        _page("about", "trust", ("heroMinimal", "centered", None)),
    )

    findings = content_findings(site, INTAKE, VOICE)

    assert [(f.area, f.severity) for f in findings] == [
        ("home heroEditorial", Severity.high),
        ("home ctaPrimary", Severity.low),
        ("about heroMinimal", Severity.medium),
    ]
    assert findings[1].issue == "CTA label is wordy."


def test_proof_after_primary_cta():
    site = _site(
        _page(
            "home",
            "conversion",
            ("heroEditorial", "stacked", None),
            ("ctaPrimary", "banner", None),
            ("proofMetrics", "inline", None),
        )
    )

    assert _issues(conversion_findings(site, INTAKE, VOICE)) == ["Proof appears after the primary CTA."]


def test_required_sections_on_pages_that_exist():
    site = _site(
        _page("home", "conversion", ("heroEditorial", "stacked", None)),
        _page("pricing", "conversion", ("heroMinimal", "centered", None), ("faq", "accordion", None)),
    )

    findings = conversion_findings(site, INTAKE, VOICE)

    assert _issues(findings) == ["Primary CTA is missing.", "Pricing table is missing."]
    assert {finding.severity for finding in findings} == {Severity.high}


def test_voice_audit_requires_a_complete_contract():
    findings = voice_findings(_site(), INTAKE, VoiceContract(tone="balanced"))

    assert _issues(findings) == ["Voice contract is incomplete."]
    assert findings[0].severity == Severity.high


def test_voice_audit_flags_banned_language():
    site = _site(_page("home", "conversion", ("heroEditorial", "stacked", {"headline": "Innovative design solutions"})))

    findings = voice_findings(site, INTAKE, VOICE)

    assert [(f.area, f.issue) for f in findings] == [("home heroEditorial", "Content violates voice constraints.")]


def test_presentation_flags_missing_theme_and_mixed_variants():
    site = _site(
        _page("about", "trust", ("heroMinimal", "centered", None)),
        _page("contact", "conversion", ("heroMinimal", "left", None)),
        theme_id=None,
    )

    assert _issues(presentation_findings(site, INTAKE, VOICE)) == [
        "Theme is not set.",
        "heroMinimal uses multiple variants across pages.",
    ]


def test_full_audit_does_not_repeat_findings():
    site = _site(_page("home", "conversion", ("heroEditorial", "stacked", {"headline": "Brand systems for calm teams"})))

    findings = run_audit(site, INTAKE, VOICE, AuditMode.full)
    issues = _issues(findings)

    assert issues.count("Missing a Work page for a portfolio-oriented purpose.") == 1
    assert issues.count("Services page is missing for a service-led purpose.") == 1
    assert "Primary CTA is missing." in issues


def test_single_mode_runs_one_rule_set():
    site = _site(_page("home", "conversion", ("heroEditorial", "stacked", {"headline": "Brand systems for calm teams"})))

    assert _issues(run_audit(site, INTAKE, VOICE, AuditMode.structure)) == [
        "Missing a Work page for a portfolio-oriented purpose.",
        "Services page is missing for a service-led purpose.",
    ]


def test_format_groups_by_severity():
    findings = [
        AuditFinding(severity=Severity.low, area="Home", issue="Low thing.", rationale="Minor."),
        AuditFinding(severity=Severity.high, area="Home", issue="Big thing.", rationale="Major.", recommendation="Fix it."),
    ]

    assert format_audit(findings) == (
        "High-impact issues:\n- Home: Big thing. Major. Next: Fix it.\n\n"
        "Low-impact polish:\n- Home: Low thing. Minor."
    )
    assert format_audit([]) == "No material issues found under this audit mode."
