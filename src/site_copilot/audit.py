from __future__ import annotations

import re
from typing import Callable, Mapping

from .catalog import PROOF_SECTIONS, default_variant, is_hero
from .models.contracts import IntakeContract, VoiceContract
from .models.recommendation import AuditFinding, AuditMode, Severity
from .models.site import Site
from .validators import collect_strings, find_policy_violations


def count_words(text: str) -> int:
    return len(text.split())


def structure_findings(site: Site, intake: IntakeContract, voice: VoiceContract) -> list[AuditFinding]:
    findings: list[AuditFinding] = []
    page_ids = {page.page_id for page in site.pages}
    purpose = (intake.purpose or "").lower()

    if re.search(r"portfolio|case stud|work|projects", purpose) and "work" not in page_ids:
        findings.append(
            AuditFinding(
                severity=Severity.medium,
                area="Structure",
                issue="Missing a Work page for a portfolio-oriented purpose.",
                rationale="Visitors looking for proof won't see a dedicated body of work.",
                recommendation="Add a Work page with case studies.",
            )
        )
    if re.search(r"saas|product|software|startup", purpose) and "pricing" not in page_ids:
        findings.append(
            AuditFinding(
                severity=Severity.medium,
                area="Structure",
                issue="No Pricing page for a product-led purpose.",
                rationale="Decision-making is slowed without a clear pricing path.",
                recommendation="Add a Pricing page.",
            )
        )
    if re.search(r"service|agency|studio|consult", purpose) and "services" not in page_ids:
        findings.append(
            AuditFinding(
                severity=Severity.medium,
                area="Structure",
                issue="Services page is missing for a service-led purpose.",
                rationale="Visitors cannot understand the scope of what you offer.",
                recommendation="Add a Services page.",
            )
        )

    for page in site.pages:
        if len(page.sections) > 6:
            findings.append(
                AuditFinding(
                    severity=Severity.low,
                    area=page.page_id,
                    issue="Page feels overloaded.",
                    rationale="Large section counts dilute focus and slow scanning.",
                    recommendation="Consider trimming or splitting sections.",
                )
            )
        section_ids = page.section_ids()
        if "caseGrid" in section_ids and "caseFeatured" in section_ids:
            findings.append(
                AuditFinding(
                    severity=Severity.low,
                    area=page.page_id,
                    issue="Two case study blocks compete for attention.",
                    rationale="Duplicated proof formats can blur the narrative.",
                )
            )
    return findings


def content_findings(site: Site, intake: IntakeContract, voice: VoiceContract) -> list[AuditFinding]:
    findings: list[AuditFinding] = []
    for page, section in site.iter_sections():
        area = f"{page.page_id} {section.section_id}"
        if not section.content:
            findings.append(
                AuditFinding(
                    severity=Severity.high if page.goal == "conversion" or page.page_id == "home" else Severity.medium,
                    area=area,
                    issue="Section is empty.",
                    rationale="Missing content blocks visitors from understanding the intent.",
                    recommendation="Generate content for this section.",
                )
            )
            continue

        strings = collect_strings(section.content)
        if is_hero(section.section_id):
            headline = section.content.get("headline", "")
            if headline and count_words(headline) > 12:
                findings.append(
                    AuditFinding(
                        severity=Severity.medium,
                        area=area,
                        issue="Hero headline is long.",
                        rationale="Long headlines reduce clarity at first glance.",
                        recommendation="Tighten the headline.",
                    )
                )
        if section.section_id == "ctaPrimary":
            label = section.content.get("action_label") or next((s for s in strings if s), "")
            if label and count_words(label) > 5:
                findings.append(
                    AuditFinding(
                        severity=Severity.low,
                        area=area,
                        issue="CTA label is wordy.",
                        rationale="Short CTAs increase clarity and click intent.",
                    )
                )
    return findings


def voice_findings(site: Site, intake: IntakeContract, voice: VoiceContract) -> list[AuditFinding]:
    if not voice.is_complete():
        return [
            AuditFinding(
                severity=Severity.high,
                area="Voice",
                issue="Voice contract is incomplete.",
                rationale="Content cannot be evaluated for consistency without it.",
                recommendation="Lock the voice contract.",
            )
        ]

    findings: list[AuditFinding] = []
    for page, section in site.iter_sections():
        if section.content and find_policy_violations(section.section_id, section.content):
            findings.append(
                AuditFinding(
                    severity=Severity.medium,
                    area=f"{page.page_id} {section.section_id}",
                    issue="Content violates voice constraints.",
                    rationale="Banned language erodes the intended tone.",
                    recommendation="Rewrite the section to remove banned language.",
                )
            )
    return findings


def presentation_findings(site: Site, intake: IntakeContract, voice: VoiceContract) -> list[AuditFinding]:
    findings: list[AuditFinding] = []
    if not site.theme_id:
        findings.append(
            AuditFinding(
                severity=Severity.medium,
                area="Presentation",
                issue="Theme is not set.",
                rationale="Without a theme, visual tone is undefined.",
                recommendation="Apply a theme.",
            )
        )
    if site.theme_id == "expressiveColor" and voice.tone == "conservative":
        findings.append(
            AuditFinding(
                severity=Severity.medium,
                area="Presentation",
                issue="Theme and tone are misaligned.",
                rationale="Expressive color can undermine a conservative tone.",
                recommendation="Switch to a more restrained theme.",
            )
        )

    variants: dict[str, set[str]] = {}
    for _, section in site.iter_sections():
        variants.setdefault(section.section_id, set()).add(section.variant_id or default_variant(section.section_id))
    for section_id, used in variants.items():
        if len(used) > 1:
            findings.append(
                AuditFinding(
                    severity=Severity.low,
                    area="Presentation",
                    issue=f"{section_id} uses multiple variants across pages.",
                    rationale="Inconsistent variants can reduce visual cohesion.",
                    recommendation="Standardize the variant for consistency.",
                )
            )
    return findings


def conversion_findings(site: Site, intake: IntakeContract, voice: VoiceContract) -> list[AuditFinding]:
    findings: list[AuditFinding] = []

    home = site.page("home")
    if home:
        section_ids = home.section_ids()
        if "ctaPrimary" not in section_ids:
            findings.append(
                AuditFinding(
                    severity=Severity.high,
                    area="Home",
                    issue="Primary CTA is missing.",
                    rationale="Visitors have no clear next action.",
                    recommendation="Add a primary CTA to the home page.",
                )
            )
        if "ctaPrimary" in section_ids and any(
            s in PROOF_SECTIONS for s in section_ids[section_ids.index("ctaPrimary") + 1 :]
        ):
            findings.append(
                AuditFinding(
                    severity=Severity.medium,
                    area="Home",
                    issue="Proof appears after the primary CTA.",
                    rationale="Credibility should be established before asking for action.",
                    recommendation="Move proof sections above the CTA.",
                )
            )

    required = (
        ("pricing", "pricingTable", Severity.high, "Pricing", "Pricing table is missing.", "Visitors cannot evaluate costs.", "Add a pricing table."),
        ("services", "serviceList", Severity.medium, "Services", "Service list is missing.", "Visitors cannot see what is offered.", "Add a service list."),
        ("contact", "contactForm", Severity.high, "Contact", "Contact form is missing.", "Interested visitors have no clear way to reach out.", "Add a contact form."),
    )
    for page_id, section_id, severity, area, issue, rationale, recommendation in required:
        page = site.page(page_id)
        if page and not page.find(section_id):
            findings.append(
                AuditFinding(
                    severity=severity,
                    area=area,
                    issue=issue,
                    rationale=rationale,
                    recommendation=recommendation,
                )
            )
    return findings


def coherence_findings(site: Site, intake: IntakeContract, voice: VoiceContract) -> list[AuditFinding]:
    findings = [f for f in structure_findings(site, intake, voice) if f.severity != Severity.low]
    if voice.tone == "expressive" and site.theme_id == "minimalMono":
        findings.append(
            AuditFinding(
                severity=Severity.low,
                area="Coherence",
                issue="Theme may be too restrained for an expressive tone.",
                rationale="The visual system might underplay the intended energy.",
            )
        )
    return findings


RuleSet = Callable[[Site, IntakeContract, VoiceContract], list[AuditFinding]]

RULE_SETS: Mapping[AuditMode, RuleSet] = {
    AuditMode.structure: structure_findings,
    AuditMode.content: content_findings,
    AuditMode.voice: voice_findings,
    AuditMode.presentation: presentation_findings,
    AuditMode.conversion: conversion_findings,
    AuditMode.coherence: coherence_findings,
}


def run_audit(site: Site, intake: IntakeContract, voice: VoiceContract, mode: AuditMode) -> list[AuditFinding]:
    if mode == AuditMode.full:
        findings: list[AuditFinding] = []
        for rule_set in RULE_SETS.values():
            for finding in rule_set(site, intake, voice):
                if finding not in findings:
                    findings.append(finding)
        return findings
    return RULE_SETS[mode](site, intake, voice)


SEVERITY_HEADINGS = (
    (Severity.high, "High-impact issues"),
    (Severity.medium, "Medium-impact opportunities"),
    (Severity.low, "Low-impact polish"),
)


def format_audit(findings: list[AuditFinding]) -> str:
    if not findings:
        return "No material issues found under this audit mode."
    blocks = []
    for severity, heading in SEVERITY_HEADINGS:
        group = [finding for finding in findings if finding.severity == severity]
        if not group:
            continue
        lines = [f"{heading}:"]
        for finding in group:
            line = f"- {finding.area}: {finding.issue} {finding.rationale}"
            if finding.recommendation:
                line += f" Next: {finding.recommendation}"
            lines.append(line)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


__all__ = [
    "RULE_SETS",
    "coherence_findings",
    "content_findings",
    "conversion_findings",
    "count_words",
    "format_audit",
    "presentation_findings",
    "run_audit",
    "structure_findings",
    "voice_findings",
]
