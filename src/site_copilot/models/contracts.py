from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel

from ..catalog import INTAKE_FIELDS, VOICE_FIELDS

BlogPresence = Literal["yes", "no", "undecided"]
AudienceLevel = Literal["general", "professional", "expert", "undecided"]
VoiceTone = Literal["conservative", "balanced", "expressive", "undecided"]
Assertiveness = Literal["reserved", "confident", "direct", "undecided"]
Verbosity = Literal["tight", "standard", "rich", "undecided"]


class IntakeContract(BaseModel):
    purpose: str | None = None
    audience: str | None = None
    action: str | None = None
    tone: str | None = None
    blog: BlogPresence | None = None

    def missing_fields(self) -> list[str]:
        return [name for name in INTAKE_FIELDS if getattr(self, name) in (None, "")]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def merged(self, answers: dict[str, str]) -> "IntakeContract":
        return self.model_copy(update={k: v for k, v in answers.items() if v})


class VoiceContract(BaseModel):
    audience_level: AudienceLevel | None = None
    tone: VoiceTone | None = None
    assertiveness: Assertiveness | None = None
    verbosity: Verbosity | None = None

    def missing_fields(self) -> list[str]:
        return [name for name in VOICE_FIELDS if getattr(self, name) is None]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def merged(self, answers: dict[str, str]) -> "VoiceContract":
        return self.model_copy(update={k: v for k, v in answers.items() if v})


class VisualGravity(str, Enum):
    minimal = "minimal"
    balanced = "balanced"
    expressive = "expressive"


class MotionEnergy(str, Enum):
    still = "still"
    guided = "guided"
    cinematic = "cinematic"


class SpatialDensity(str, Enum):
    airy = "airy"
    neutral = "neutral"
    dense = "dense"


class EmotionalTemperature(str, Enum):
    cool = "cool"
    neutral = "neutral"
    warm = "warm"


class PrestigeLevel(str, Enum):
    utilitarian = "utilitarian"
    professional = "professional"
    luxury = "luxury"


class IntentMutation(str, Enum):
    confirm = "confirm"
    calmer = "calmer"
    bolder = "bolder"
    minimal = "minimal"


class DesignIntent(BaseModel):
    visual_gravity: VisualGravity
    motion_energy: MotionEnergy
    spatial_density: SpatialDensity
    emotional_temperature: EmotionalTemperature
    prestige_level: PrestigeLevel


class DesignIntentState(BaseModel):
    intent: DesignIntent
    locked_at: datetime | None = None
    decision: IntentMutation | None = None

    @property
    def locked(self) -> bool:
        return self.locked_at is not None

    def lock(self, intent: DesignIntent, decision: IntentMutation) -> "DesignIntentState":
        if self.locked:
            return self
        return DesignIntentState(intent=intent, locked_at=datetime.utcnow(), decision=decision)


__all__ = [
    "Assertiveness",
    "AudienceLevel",
    "BlogPresence",
    "DesignIntent",
    "DesignIntentState",
    "EmotionalTemperature",
    "IntakeContract",
    "IntentMutation",
    "MotionEnergy",
    "PrestigeLevel",
    "SpatialDensity",
    "Verbosity",
    "VisualGravity",
    "VoiceContract",
    "VoiceTone",
]
