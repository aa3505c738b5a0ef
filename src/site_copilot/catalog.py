from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence


@dataclass(frozen=True)
class SectionDefinition:
    key: str
    default_variant: str
    variants: Sequence[str]
    label: str

    @property
    def is_hero(self) -> bool:
        return self.key.startswith("hero")

    @property
    def blog_only(self) -> bool:
        return self.key in BLOG_ONLY_SECTIONS


@dataclass(frozen=True)
class ThemeDefinition:
    key: str
    label: str
    intent: str


@dataclass(frozen=True)
class RecommendationDefinition:
    key: str
    phase: str


PAGE_IDS: Sequence[str] = ("home", "about", "work", "services", "pricing", "blog", "contact")

PAGE_GOALS: Sequence[str] = (
    "credibility",
    "conversion",
    "education",
    "exploration",
    "trust",
    "navigation",
)

BLOG_ONLY_SECTIONS = frozenset({"blogIndex", "postList"})

PROOF_SECTIONS = frozenset({"proofMetrics", "logoCloud", "testimonialStack", "caseGrid", "caseFeatured"})


def _section(key: str, label: str, default: str, *variants: str) -> SectionDefinition:
    return SectionDefinition(key=key, default_variant=default, variants=variants or (default,), label=label)


SECTIONS: Mapping[str, SectionDefinition] = {
    definition.key: definition
    for definition in (
        _section("heroEditorial", "Editorial hero", "stacked", "stacked", "split"),
        _section("heroSplit", "Split hero", "balanced", "balanced", "reverse"),
        _section("heroMinimal", "Minimal hero", "centered", "centered", "left"),
        _section("proofMetrics", "Proof metrics", "inline", "inline", "cards"),
        _section("logoCloud", "Logo cloud", "grid", "grid", "row"),
        _section("testimonialStack", "Testimonials", "stacked", "stacked", "cards"),
        _section("caseGrid", "Case grid", "threeColumn", "threeColumn", "twoColumn"),
        _section("caseFeatured", "Featured case", "split", "split", "stacked"),
        _section("valueProps", "Value propositions", "columns", "columns", "rows"),
        _section("processSteps", "Process steps", "numbered", "numbered", "timeline"),
        _section("serviceList", "Service list", "cards", "cards", "list"),
        _section("pricingTable", "Pricing table", "cards", "cards", "compact"),
        _section("faq", "FAQ", "accordion", "accordion", "list"),
        _section("timeline", "Timeline", "vertical", "vertical", "horizontal"),
        _section("bioLong", "Long bio", "singleColumn"),
        _section("values", "Values", "grid", "grid", "list"),
        _section("ctaPrimary", "Primary call to action", "banner", "banner", "split"),
        _section("ctaSecondary", "Secondary call to action", "banner", "banner", "split"),
        _section("contactForm", "Contact form", "split", "split", "stacked"),
        _section("blogIndex", "Blog index", "standard"),
        _section("postList", "Post list", "grid", "grid", "list"),
    )
}

SECTION_IDS: Sequence[str] = tuple(SECTIONS)

ALLOWED_SECTIONS: Mapping[str, Sequence[str]] = {
    "home": (
        "heroEditorial",
        "heroSplit",
        "heroMinimal",
        "valueProps",
        "proofMetrics",
        "logoCloud",
        "testimonialStack",
        "caseGrid",
        "caseFeatured",
        "ctaPrimary",
    ),
    "about": ("heroMinimal", "bioLong", "timeline", "values", "testimonialStack", "ctaSecondary"),
    "work": ("heroMinimal", "caseGrid", "caseFeatured", "testimonialStack", "ctaSecondary"),
    "services": ("heroSplit", "serviceList", "processSteps", "faq", "ctaPrimary"),
    "pricing": ("heroMinimal", "pricingTable", "faq", "ctaPrimary"),
    "blog": ("heroMinimal", "blogIndex", "postList", "ctaSecondary"),
    "contact": ("heroMinimal", "contactForm", "ctaPrimary"),
}

DEFAULT_PAGE_SECTIONS: Mapping[str, Sequence[str]] = {
    "home": ("heroEditorial", "valueProps", "proofMetrics", "ctaPrimary"),
    "about": ("heroMinimal", "bioLong", "values", "ctaSecondary"),
    "work": ("heroMinimal", "caseGrid", "testimonialStack", "ctaSecondary"),
    "services": ("heroSplit", "serviceList", "processSteps", "faq", "ctaPrimary"),
    "pricing": ("heroMinimal", "pricingTable", "faq", "ctaPrimary"),
    "blog": ("heroMinimal", "blogIndex", "postList", "ctaSecondary"),
    "contact": ("heroMinimal", "contactForm", "ctaPrimary"),
}

DEFAULT_PAGE_GOALS: Mapping[str, str] = {
    "home": "conversion",
    "about": "trust",
    "work": "credibility",
    "services": "conversion",
    "pricing": "conversion",
    "blog": "education",
    "contact": "conversion",
}

THEMES: Mapping[str, ThemeDefinition] = {
    theme.key: theme
    for theme in (
        ThemeDefinition("editorialDark", "Editorial Dark", "Authority and thought leadership with high-contrast typography."),
        ThemeDefinition("editorialLight", "Editorial Light", "Clarity and long-form reading with bright surfaces."),
        ThemeDefinition("studioNeutral", "Studio Neutral", "Portfolio clarity for studios and agencies."),
        ThemeDefinition("studioContrast", "Studio Contrast", "Product and SaaS emphasis with crisp hierarchy."),
        ThemeDefinition("minimalMono", "Minimal Mono", "Restraint and credibility with minimal color noise."),
        ThemeDefinition("expressiveColor", "Expressive Color", "Creative energy for bold, expressive brands."),
    )
}

DISALLOWED_PLAN_FIELDS = frozenset(
    {
        "copy",
        "text",
        "headline",
        "subhead",
        "theme",
        "color",
        "font",
        "layout",
        "spacing",
        "animation",
        "html",
        "css",
        "jsx",
        "content",
    }
)

RECOMMENDATIONS: Mapping[str, RecommendationDefinition] = {
    definition.key: definition
    for definition in (
        RecommendationDefinition("moveProofAboveCTA", "structure"),
        RecommendationDefinition("addMissingProof", "structure"),
        RecommendationDefinition("removeRedundantSection", "structure"),
        RecommendationDefinition("simplifyPageStructure", "structure"),
        RecommendationDefinition("strengthenHeroClarity", "content"),
        RecommendationDefinition("tightenCTAPlacement", "content"),
        RecommendationDefinition("reduceContentDensity", "content"),
        RecommendationDefinition("alignThemeToPurpose", "presentation"),
        RecommendationDefinition("switchSectionVariantForFocus", "presentation"),
        RecommendationDefinition("leaveAsIs", "none"),
    )
}

INTAKE_FIELDS: Sequence[str] = ("purpose", "audience", "action", "tone", "blog")

INTAKE_QUESTIONS: Mapping[str, str] = {
    "purpose": "What is this site for?",
    "audience": "Who is it primarily for?",
    "action": "What should visitors do when they land?",
    "tone": "Should this feel more conservative or expressive (pick one direction, not vibes)?",
    "blog": "Do you want a blog? (yes/no/undecided)",
}

VOICE_FIELDS: Sequence[str] = ("audience_level", "tone", "assertiveness", "verbosity")

VOICE_OPTIONS: Mapping[str, Sequence[str]] = {
    "audience_level": ("general", "professional", "expert", "undecided"),
    "tone": ("conservative", "balanced", "expressive", "undecided"),
    "assertiveness": ("reserved", "confident", "direct", "undecided"),
    "verbosity": ("tight", "standard", "rich", "undecided"),
}

VOICE_QUESTIONS: Mapping[str, str] = {
    "audience_level": "Audience level (general, professional, expert, or undecided)?",
    "tone": "Tone (conservative, balanced, expressive, or undecided)?",
    "assertiveness": "Assertiveness (reserved, confident, direct, or undecided)?",
    "verbosity": "Verbosity (tight, standard, rich, or undecided)?",
}

DESIGN_INTENT_LABELS: Mapping[str, Mapping[str, str]] = {
    "visual_gravity": {
        "minimal": "Minimal layouts",
        "balanced": "Balanced layouts",
        "expressive": "Expressive layouts",
    },
    "motion_energy": {
        "still": "Still motion",
        "guided": "Guided motion",
        "cinematic": "Cinematic motion",
    },
    "spatial_density": {
        "airy": "Airy spacing",
        "neutral": "Neutral spacing",
        "dense": "Dense spacing",
    },
    "emotional_temperature": {
        "cool": "Cool emotional tone",
        "neutral": "Neutral emotional tone",
        "warm": "Warm emotional tone",
    },
    "prestige_level": {
        "utilitarian": "Utilitarian finish",
        "professional": "Professional finish",
        "luxury": "Luxury finish",
    },
}


def default_variant(section_id: str) -> str:
    definition = SECTIONS.get(section_id)
    return definition.default_variant if definition else "default"


def is_allowed_variant(section_id: str, variant_id: str) -> bool:
    definition = SECTIONS.get(section_id)
    return bool(definition) and variant_id in definition.variants


def is_hero(section_id: str) -> bool:
    return section_id.startswith("hero")


__all__ = [
    "ALLOWED_SECTIONS",
    "BLOG_ONLY_SECTIONS",
    "DEFAULT_PAGE_GOALS",
    "DEFAULT_PAGE_SECTIONS",
    "DESIGN_INTENT_LABELS",
    "DISALLOWED_PLAN_FIELDS",
    "INTAKE_FIELDS",
    "INTAKE_QUESTIONS",
    "PAGE_GOALS",
    "PAGE_IDS",
    "PROOF_SECTIONS",
    "RECOMMENDATIONS",
    "RecommendationDefinition",
    "SECTIONS",
    "SECTION_IDS",
    "SectionDefinition",
    "THEMES",
    "ThemeDefinition",
    "VOICE_FIELDS",
    "VOICE_OPTIONS",
    "VOICE_QUESTIONS",
    "default_variant",
    "is_allowed_variant",
    "is_hero",
]
