from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .catalog import DESIGN_INTENT_LABELS
from .models.contracts import (
    DesignIntent,
    EmotionalTemperature,
    IntakeContract,
    IntentMutation,
    MotionEnergy,
    PrestigeLevel,
    SpatialDensity,
    VisualGravity,
)


@dataclass(frozen=True)
class IntentSignals:
    site_type: str
    audience_type: str
    tone_axis: str
    industry: str | None
    media_heavy: bool


MUTATION_PRESETS: Mapping[IntentMutation, Mapping[str, object]] = {
    IntentMutation.calmer: {
        "motion_energy": MotionEnergy.guided,
        "visual_gravity": VisualGravity.balanced,
    },
    IntentMutation.bolder: {
        "visual_gravity": VisualGravity.expressive,
        "emotional_temperature": EmotionalTemperature.warm,
    },
    IntentMutation.minimal: {
        "visual_gravity": VisualGravity.minimal,
        "spatial_density": SpatialDensity.airy,
        "motion_energy": MotionEnergy.still,
    },
}


def derive_signals(intake: IntakeContract) -> IntentSignals:
    purpose = (intake.purpose or "").lower()
    audience = (intake.audience or "").lower()
    tone = (intake.tone or "").lower()
    industry_text = f"{purpose} {audience}"

    if "portfolio" in purpose:
        site_type = "portfolio"
    elif any(word in purpose for word in ("editorial", "blog", "thought")):
        site_type = "editorial"
    else:
        site_type = "marketing"

    if "hiring" in audience or "recruit" in audience:
        audience_type = "hiring"
    elif "investor" in audience:
        audience_type = "investors"
    elif any(word in audience for word in ("client", "customer", "buyer")):
        audience_type = "clients"
    else:
        audience_type = "general"

    if "finance" in industry_text:
        industry: str | None = "finance"
    elif any(word in industry_text for word in ("creative", "design", "studio")):
        industry = "creative"
    elif "tech" in industry_text or "saas" in industry_text:
        industry = "tech"
    elif "personal" in industry_text:
        industry = "personal"
    else:
        industry = None

    media_heavy = any(word in purpose for word in ("portfolio", "gallery", "photo", "video", "showcase"))

    return IntentSignals(
        site_type=site_type,
        audience_type=audience_type,
        tone_axis="expressive" if "expressive" in tone else "conservative",
        industry=industry,
        media_heavy=media_heavy,
    )


def infer_design_intent(signals: IntentSignals) -> DesignIntent:
    return DesignIntent(
        visual_gravity=VisualGravity.expressive if signals.tone_axis == "expressive" else VisualGravity.balanced,
        motion_energy=(
            MotionEnergy.cinematic
            if signals.media_heavy or signals.site_type == "portfolio"
            else MotionEnergy.guided
        ),
        spatial_density=SpatialDensity.airy if signals.audience_type == "hiring" else SpatialDensity.neutral,
        emotional_temperature=(
            EmotionalTemperature.cool if signals.industry == "finance" else EmotionalTemperature.neutral
        ),
        prestige_level=PrestigeLevel.luxury if signals.site_type == "portfolio" else PrestigeLevel.professional,
    )


def apply_mutation(intent: DesignIntent, mutation: IntentMutation) -> DesignIntent:
    if mutation == IntentMutation.confirm:
        return intent
    return intent.model_copy(update=dict(MUTATION_PRESETS[mutation]))


def describe_intent(intent: DesignIntent) -> list[str]:
    return [
        DESIGN_INTENT_LABELS[axis][getattr(intent, axis).value]
        for axis in (
            "visual_gravity",
            "motion_energy",
            "spatial_density",
            "emotional_temperature",
            "prestige_level",
        )
    ]


def build_intent_message(intent: DesignIntent) -> str:
    lines = "\n".join(f"- {line}" for line in describe_intent(intent))
    return (
        "Before I design anything, I want to confirm the aesthetic direction I'm optimizing for.\n\n"
        "Visual direction:\n"
        f"{lines}\n\n"
        "You can:\n"
        "1) Confirm\n"
        "2) Make it calmer\n"
        "3) Make it bolder\n"
        "4) Make it more minimal"
    )


__all__ = [
    "IntentSignals",
    "MUTATION_PRESETS",
    "apply_mutation",
    "build_intent_message",
    "derive_signals",
    "describe_intent",
    "infer_design_intent",
]
