from __future__ import annotations

from typing import Any

from .models.contracts import (
    DesignIntent,
    MotionEnergy,
    PrestigeLevel,
    SpatialDensity,
    VisualGravity,
)

LUXURY_BACKGROUNDS = {"cool": "#0b0c10", "neutral": "#101113", "warm": "#14110f"}
PROFESSIONAL_LIGHT = "#f6f5f2"
PROFESSIONAL_DARK = "#14161a"
UTILITARIAN_BACKGROUND = "#ffffff"

PRIMARY_COLORS = {"cool": "#1d4ed8", "neutral": "#334155", "warm": "#f97316"}
ACCENT_COLORS = {"cool": "#0ea5e9", "neutral": "#ef4444", "warm": "#e11d48"}


def _color(intent: DesignIntent) -> dict[str, Any]:
    temperature = intent.emotional_temperature.value
    if intent.prestige_level == PrestigeLevel.luxury:
        background = LUXURY_BACKGROUNDS[temperature]
    elif intent.prestige_level == PrestigeLevel.professional:
        background = PROFESSIONAL_LIGHT if intent.visual_gravity == VisualGravity.minimal else PROFESSIONAL_DARK
    else:
        background = UTILITARIAN_BACKGROUND

    primary = PRIMARY_COLORS[temperature]
    expressive = intent.visual_gravity == VisualGravity.expressive
    accent = ACCENT_COLORS[temperature] if expressive else primary
    light = background in (UTILITARIAN_BACKGROUND, PROFESSIONAL_LIGHT)

    color: dict[str, Any] = {
        "background": background,
        "surface": "#f8fafc" if light else "#1f2937",
        "primary": primary,
        "accent": accent,
        "muted": "#64748b" if light else "#6b7280",
    }
    if expressive:
        color["gradient"] = {"from": primary, "to": accent, "angle": 135}
    return color


def _typography(intent: DesignIntent) -> dict[str, Any]:
    if intent.visual_gravity == VisualGravity.minimal:
        scale = "compact"
    elif intent.visual_gravity == VisualGravity.expressive:
        scale = "dramatic"
    else:
        scale = "editorial"

    if intent.prestige_level == PrestigeLevel.luxury:
        heading = {"family": "High-contrast serif", "weight": 600, "tracking": 0.02}
        body = {"family": "Neutral grotesk", "weight": 400, "line_height": 1.6}
    elif intent.prestige_level == PrestigeLevel.utilitarian:
        heading = {"family": "System sans", "weight": 600, "tracking": 0}
        body = {"family": "System sans", "weight": 400, "line_height": 1.5}
    else:
        heading = {"family": "Modern grotesk", "weight": 600, "tracking": 0.01}
        body = {"family": "Humanist sans", "weight": 400, "line_height": 1.6}
    return {"heading_font": heading, "body_font": body, "scale": scale}


def _spacing(intent: DesignIntent) -> dict[str, Any]:
    base = {SpatialDensity.airy: 8, SpatialDensity.dense: 4}.get(intent.spatial_density, 6)
    return {
        "base_unit": base,
        "section_padding": base * (10 if intent.visual_gravity == VisualGravity.expressive else 8),
        "content_max_width": 1120 if intent.prestige_level == PrestigeLevel.luxury else 960,
    }


def _motion(intent: DesignIntent) -> dict[str, Any]:
    reveal = "none"
    if intent.motion_energy == MotionEnergy.guided:
        reveal = "fade"
    elif intent.motion_energy == MotionEnergy.cinematic:
        reveal = "slide" if intent.spatial_density == SpatialDensity.dense else "parallax"
    return {
        "easing": "linear" if intent.prestige_level == PrestigeLevel.utilitarian else "easeOut",
        "duration_scale": {MotionEnergy.still: 0, MotionEnergy.guided: 1}.get(intent.motion_energy, 1.6),
        "reveal_style": reveal,
    }


def generate_visual_system(intent: DesignIntent) -> dict[str, Any]:
    """Derive design tokens from a locked design intent."""
    return {
        "color": _color(intent),
        "typography": _typography(intent),
        "spacing": _spacing(intent),
        "motion": _motion(intent),
    }


__all__ = ["generate_visual_system"]
