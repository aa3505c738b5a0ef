from __future__ import annotations

import json
from typing import Iterator

import pytest

from site_copilot.config import Settings
from site_copilot.models.contracts import VoiceContract
from site_copilot.models.site import Section, Site
from site_copilot.orchestrator import TurnOrchestrator
from site_copilot.store import InMemoryStore
from site_copilot.tools import SiteTools

USER_ID = "user-1"

INTAKE_ANSWERS = (
    "1. Portfolio for my design studio\n"
    "2. Agency creative directors\n"
    "3. Book a call\n"
    "4. expressive\n"
    "5. no"
)

VOICE_ANSWERS = "1. professional\n2. balanced\n3. confident\n4. standard"

PLAN = {
    "pages": {
        "home": {"goal": "conversion", "sections": ["heroEditorial", "valueProps", "ctaPrimary"]},
        "work": {"goal": "credibility", "sections": ["heroMinimal", "caseGrid", "ctaSecondary"]},
        "contact": {"goal": "conversion", "sections": ["heroMinimal", "contactForm", "ctaPrimary"]},
    }
}

PLAN_RESPONSE = (
    "This structure puts the studio's work first and ends every page on booking a call.\n"
    "```json\n" + json.dumps(PLAN) + "\n```"
)


class FakeGenerativeClient:
    """Returns queued responses in order and records every prompt."""

    def __init__(self) -> None:
        self.responses: list[str] = []
        self.streams: list[list[str]] = []
        self.prompts: list[str] = []

    def queue(self, *responses: str) -> None:
        self.responses.extend(responses)

    def queue_stream(self, chunks: list[str]) -> None:
        self.streams.append(list(chunks))

    def generate_content(self, prompt: str, *, temperature: float = 0.5) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("Unexpected generate_content call")
        return self.responses.pop(0)

    def stream_content(self, prompt: str, *, temperature: float = 0.5) -> Iterator[str]:
        self.prompts.append(prompt)
        if not self.streams:
            raise AssertionError("Unexpected stream_content call")
        yield from self.streams.pop(0)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[dict[str, str]] = []

    def publish_release(self, *, site_id: str, snapshot_id: str, action: str) -> str:
        self.events.append({"site_id": site_id, "snapshot_id": snapshot_id, "action": action})
        return f"msg-{len(self.events)}"


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def client() -> FakeGenerativeClient:
    return FakeGenerativeClient()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def tools(store, settings, publisher) -> SiteTools:
    return SiteTools(store, settings=settings, events=publisher)


@pytest.fixture
def orchestrator(store, settings, client, tools) -> TurnOrchestrator:
    return TurnOrchestrator(store, settings=settings, client=client, tools=tools)


@pytest.fixture
def confirmed_site(orchestrator, client):
    """Run intake, lock the design intent and create the site; returns (conversation_id, site_id)."""
    first = orchestrator.handle_turn(INTAKE_ANSWERS, user_id=USER_ID)
    conversation_id = first.conversation_id
    orchestrator.handle_turn("1", conversation_id=conversation_id, user_id=USER_ID)
    client.queue(PLAN_RESPONSE)
    orchestrator.handle_turn("yes", conversation_id=conversation_id, user_id=USER_ID)
    created = orchestrator.handle_turn("yes", conversation_id=conversation_id, user_id=USER_ID)
    return conversation_id, created.site_id


@pytest.fixture
def lock_voice(store):
    def lock(conversation_id: str, **overrides: str) -> None:
        state = store.get_conversation(conversation_id)
        voice = VoiceContract(
            audience_level="professional",
            tone="balanced",
            assertiveness="confident",
            verbosity="standard",
        )
        state.voice = voice.model_copy(update=overrides)
        store.save_conversation(state)

    return lock


@pytest.fixture
def find_section(store):
    def find(site_id: str, page_id: str, section_id: str) -> Section:
        site: Site = store.get_site(site_id)
        section = site.page(page_id).find(section_id)
        assert section is not None, f"{page_id} has no {section_id}"
        return section

    return find
