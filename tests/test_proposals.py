from __future__ import annotations

import json
import logging

import pytest

from site_copilot.errors import SchemaViolation
from site_copilot.models.contracts import IntakeContract, VoiceContract
from site_copilot.models.site import Snapshot, SnapshotState
from site_copilot.proposals import (
    ContentWriter,
    ReleaseRoutingError,
    SitePlanProposer,
    ToolRouter,
    completed_leaves,
    fallback_plan,
    implied_pages,
    route_release,
)

INTAKE = IntakeContract(
    purpose="Portfolio for my design studio",
    audience="Agency creative directors",
    action="Book a call",
    tone="expressive",
    blog="no",
)

VOICE = VoiceContract(audience_level="professional", tone="balanced", assertiveness="confident", verbosity="tight")


def test_implied_pages_follow_purpose_and_blog_answer():
    assert implied_pages(INTAKE) == ["home", "about", "work", "services", "contact"]
    saas = INTAKE.model_copy(update={"purpose": "SaaS product launch", "blog": "yes"})
    assert implied_pages(saas) == ["home", "about", "pricing", "blog", "contact"]


def test_fallback_plan_uses_default_sections():
    proposal = fallback_plan(INTAKE)

    assert proposal.plan.pages["home"].sections == ["heroEditorial", "valueProps", "proofMetrics", "ctaPrimary"]
    assert proposal.plan.pages["work"].goal == "credibility"
    assert "Book a call" in proposal.explanation


def test_plan_is_regenerated_with_violations_until_valid(client):
    invalid = {"pages": {"home": {"goal": "conversion", "sections": ["ctaPrimary", "heroEditorial"]}}}
    valid = {"pages": {"home": {"goal": "conversion", "sections": ["heroEditorial", "ctaPrimary"]}}}
    client.queue(json.dumps(invalid), "A lean home page.\n" + json.dumps(valid))

    proposal = SitePlanProposer(client).propose(INTAKE, None, "build")

    assert proposal.plan.pages["home"].sections == ["heroEditorial", "ctaPrimary"]
    assert proposal.explanation == "A lean home page."
    assert "home hero must be the first section." in client.prompts[1]
    assert "violated the Exhibit site plan schema" in client.prompts[1]


def test_plan_gives_up_after_three_attempts(client):
    plan = {"pages": {"home": {"goal": "conversion", "sections": ["heroEditorial"], "headline": "Hi"}}}
    client.queue(*[json.dumps(plan)] * 3)

    with pytest.raises(SchemaViolation) as excinfo:
        SitePlanProposer(client).propose(INTAKE, None, "build")

    assert excinfo.value.violations == ["Disallowed fields: headline"]
    assert len(client.prompts) == 3


def test_plan_without_json_is_rejected(client):
    client.queue("Sure, here is a nice site.", "No JSON again.", "Still nothing.")

    with pytest.raises(SchemaViolation) as excinfo:
        SitePlanProposer(client).propose(INTAKE, None, "build")

    assert excinfo.value.violations == ["No JSON detected"]


def _snapshot(snapshot_id: str, state: SnapshotState) -> Snapshot:
    return Snapshot(id=snapshot_id, site_id="site_1", state=state, data={})


def test_route_release_preview_with_label():
    routed = route_release("create a preview called Spring refresh", published_snapshot_id=None, snapshots=[])

    assert routed.call.tool == "createPreview"
    assert routed.call.arguments.label == "Spring refresh"


def test_route_release_publish_picks_latest_preview():
    snapshots = [
        _snapshot("snap_aaaaaa000001", SnapshotState.preview),
        _snapshot("snap_aaaaaa000002", SnapshotState.published),
        _snapshot("snap_aaaaaa000003", SnapshotState.preview),
    ]

    routed = route_release("publish it", published_snapshot_id="snap_aaaaaa000002", snapshots=snapshots)

    assert routed.call.tool == "publishSnapshot"
    assert routed.call.arguments.snapshot_id == "snap_aaaaaa000003"


def test_route_release_refuses_to_publish_a_live_snapshot():
    snapshots = [_snapshot("snap_aaaaaa000001", SnapshotState.published)]

    with pytest.raises(ReleaseRoutingError, match="Only a preview snapshot can be published."):
        route_release("publish snap_aaaaaa000001", published_snapshot_id="snap_aaaaaa000001", snapshots=snapshots)


def test_route_release_rollback_targets_previous_live_version():
    snapshots = [
        _snapshot("snap_aaaaaa000001", SnapshotState.published),
        _snapshot("snap_aaaaaa000002", SnapshotState.published),
    ]

    routed = route_release("roll back", published_snapshot_id="snap_aaaaaa000002", snapshots=snapshots)

    assert routed.call.arguments.snapshot_id == "snap_aaaaaa000001"

    with pytest.raises(ReleaseRoutingError, match="no earlier published version"):
        route_release("roll back", published_snapshot_id="snap_aaaaaa000001", snapshots=snapshots[:1])


def test_route_release_ignores_other_requests():
    assert route_release("what's next?", published_snapshot_id=None, snapshots=[]) is None


def test_router_returns_none_for_no_tool(client, confirmed_site, store):
    _, site_id = confirmed_site
    client.queue('{"tool": "none", "arguments": {}}')

    assert ToolRouter(client).route_structural("hmm", store.get_site(site_id), INTAKE) is None


def test_router_retries_invalid_arguments(client, confirmed_site, store):
    _, site_id = confirmed_site
    client.queue(
        '{"tool": "addSection", "arguments": {"page": "home"}}',
        'Here: {"tool": "addSection", "arguments": {"page_id": "home", "section_id": "logoCloud"}, "reason": "Client logos add proof."}',
    )

    routed = ToolRouter(client).route_structural("add client logos", store.get_site(site_id), INTAKE)

    assert routed.call.arguments.section_id == "logoCloud"
    assert routed.reason == "Client logos add proof."
    assert "Return ONLY valid JSON" in client.prompts[-1]


def test_router_raises_after_repeated_garbage(client, confirmed_site, store, caplog):
    _, site_id = confirmed_site
    client.queue("nope", "still nope", "{broken")

    with caplog.at_level(logging.WARNING, logger="site_copilot.proposals"):
        with pytest.raises(SchemaViolation):
            ToolRouter(client).route_presentation("darker", store.get_site(site_id), INTAKE, VOICE)

    rejected = [record for record in caplog.records if record.getMessage() == "Router output rejected"]
    assert [record.attempt for record in rejected] == [1, 2, 3]


def test_content_router_rejects_unknown_sections(client, confirmed_site, store):
    _, site_id = confirmed_site
    client.queue(*['{"tool": "generateSectionContent", "arguments": {"section_instance_id": "sec_missing"}}'] * 3)

    with pytest.raises(SchemaViolation) as excinfo:
        ToolRouter(client).route_content("write it", store.get_site(site_id), VOICE)

    assert excinfo.value.violations == ["Unknown section target: sec_missing"]


def test_writer_prompt_lists_schema_and_banned_words():
    prompt = ContentWriter(None).build_prompt(
        "ctaPrimary", page_goal="conversion", intake=INTAKE, voice=VOICE, instruction="Keep it short"
    )

    assert "action_label" in prompt
    assert "Instruction: Keep it short" in prompt
    assert "cutting-edge" in prompt


def test_writer_without_client_fails_fast():
    with pytest.raises(SchemaViolation):
        ContentWriter(None).write("ctaPrimary", page_goal="conversion", intake=INTAKE, voice=VOICE)


def test_stream_rejects_content_that_breaks_policy(client):
    for _ in range(3):
        client.queue_stream(['{"headline": "Book a call", ', '"action_label": "Visit https://example.com"}'])
    writer = ContentWriter(client)

    records = writer.stream("ctaPrimary", page_goal="conversion", intake=INTAKE, voice=VOICE)
    assert next(records) == {"path": "headline", "value": "Book a call"}
    with pytest.raises(SchemaViolation) as excinfo:
        list(records)

    assert "Content policy violation: links" in excinfo.value.violations
    assert len(client.prompts) == 3
    assert "violated the content schema" in client.prompts[-1]


def test_stream_regenerates_after_a_rejected_attempt(client):
    client.queue_stream(['{"headline": "The best studio"}'])
    client.queue_stream(['{"headline": "Brand systems', ' for calm teams"}'])
    writer = ContentWriter(client)

    records = list(writer.stream("heroMinimal", page_goal="trust", intake=INTAKE, voice=VOICE))

    assert records == [
        {"path": "headline", "value": "The best studio"},
        {"__reset__": 2},
        {"path": "headline", "value": "Brand systems for calm teams"},
        {"__final__": {"headline": "Brand systems for calm teams"}},
    ]
    assert not client.streams


def test_completed_leaves_skips_unfinished_values():
    text = '{"headline": "Hi", "items": [{"title": "A"}, {"title": "B'

    assert completed_leaves(text) == [("headline", "Hi"), ("items.0.title", "A")]
    assert completed_leaves('{"count": 12') == []
    assert completed_leaves('{"count": 12, "ok": true}') == [("count", 12), ("ok", True)]
