from __future__ import annotations

from site_copilot.design_intent import (
    apply_mutation,
    build_intent_message,
    derive_signals,
    describe_intent,
    infer_design_intent,
)
from site_copilot.models.contracts import IntakeContract, IntentMutation
from site_copilot.visual_system import generate_visual_system

STUDIO = IntakeContract(
    purpose="Portfolio for my design studio",
    audience="Agency creative directors",
    action="Book a call",
    tone="expressive",
    blog="no",
)


def test_signals_from_intake():
    signals = derive_signals(STUDIO)

    assert signals.site_type == "portfolio"
    assert signals.industry == "creative"
    assert signals.media_heavy
    assert signals.tone_axis == "expressive"


def test_portfolio_intent_is_expressive_and_cinematic():
    intent = infer_design_intent(derive_signals(STUDIO))

    assert describe_intent(intent) == [
        "Expressive layouts",
        "Cinematic motion",
        "Neutral spacing",
        "Neutral emotional tone",
        "Luxury finish",
    ]


def test_finance_audience_for_hiring_is_cool_and_airy():
    intake = IntakeContract(
        purpose="Careers site for a finance firm",
        audience="Hiring graduates",
        action="Apply",
        tone="conservative",
        blog="no",
    )

    intent = infer_design_intent(derive_signals(intake))

    assert intent.emotional_temperature.value == "cool"
    assert intent.spatial_density.value == "airy"
    assert intent.visual_gravity.value == "balanced"
    assert intent.motion_energy.value == "guided"


def test_mutations_adjust_only_their_axes():
    intent = infer_design_intent(derive_signals(STUDIO))

    minimal = apply_mutation(intent, IntentMutation.minimal)

    assert minimal.visual_gravity.value == "minimal"
    assert minimal.spatial_density.value == "airy"
    assert minimal.motion_energy.value == "still"
    assert minimal.prestige_level == intent.prestige_level
    assert apply_mutation(intent, IntentMutation.confirm) == intent


def test_intent_message_offers_four_choices():
    message = build_intent_message(infer_design_intent(derive_signals(STUDIO)))

    assert "- Luxury finish" in message
    assert message.endswith("4) Make it more minimal")


def test_visual_system_tokens():
    intent = infer_design_intent(derive_signals(STUDIO))

    tokens = generate_visual_system(intent)

    assert tokens["color"]["background"] == "#101113"
    assert tokens["color"]["gradient"] == {"from": "#334155", "to": "#ef4444", "angle": 135}
    assert tokens["typography"]["scale"] == "dramatic"
    assert tokens["spacing"] == {"base_unit": 6, "section_padding": 60, "content_max_width": 1120}
    assert tokens["motion"] == {"easing": "easeOut", "duration_scale": 1.6, "reveal_style": "parallax"}


def test_still_motion_has_no_reveal():
    intent = apply_mutation(infer_design_intent(derive_signals(STUDIO)), IntentMutation.minimal)

    motion = generate_visual_system(intent)["motion"]

    assert motion["reveal_style"] == "none"
    assert motion["duration_scale"] == 0
