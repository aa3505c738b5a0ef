from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .contracts import DesignIntent


class ReleaseState(str, Enum):
    draft = "draft"
    preview = "preview"
    published = "published"


class SnapshotState(str, Enum):
    preview = "preview"
    published = "published"


class AdvisoryMode(str, Enum):
    assistive = "assistive"
    prescriptive = "prescriptive"


class PlanPage(BaseModel):
    goal: str
    sections: list[str]


class SitePlan(BaseModel):
    pages: dict[str, PlanPage]


class Section(BaseModel):
    id: str
    page_id: str
    section_id: str
    position: int
    variant_id: str
    content: dict[str, Any] | None = None


class Page(BaseModel):
    id: str
    page_id: str
    goal: str
    sections: list[Section] = Field(default_factory=list)

    def section_ids(self) -> list[str]:
        return [section.section_id for section in self.sections]

    def find(self, section_id: str) -> Section | None:
        return next((s for s in self.sections if s.section_id == section_id), None)


class Site(BaseModel):
    id: str
    owner_id: str | None = None
    conversation_id: str | None = None
    theme_id: str | None = None
    design_intent: DesignIntent | None = None
    visual_system: dict[str, Any] | None = None
    release_state: ReleaseState = ReleaseState.draft
    published_snapshot_id: str | None = None
    advisory_mode: AdvisoryMode = AdvisoryMode.assistive
    pages: list[Page] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def page(self, page_id: str) -> Page | None:
        return next((p for p in self.pages if p.page_id == page_id), None)

    def section(self, section_instance_id: str) -> tuple[Page, Section] | None:
        for page in self.pages:
            for section in page.sections:
                if section.id == section_instance_id:
                    return page, section
        return None

    def iter_sections(self):
        for page in self.pages:
            for section in page.sections:
                yield page, section

    def capture(self) -> dict[str, Any]:
        """Full-state capture used for snapshots and mutation-log entries."""
        return {
            "site_id": self.id,
            "theme_id": self.theme_id,
            "release_state": self.release_state.value,
            "pages": [page.model_dump(mode="json") for page in self.pages],
        }

    def to_plan(self) -> SitePlan:
        return SitePlan(
            pages={
                page.page_id: PlanPage(goal=page.goal, sections=page.section_ids())
                for page in self.pages
            }
        )


class Snapshot(BaseModel):
    id: str
    site_id: str
    state: SnapshotState
    label: str | None = None
    data: dict[str, Any]
    source_snapshot_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MutationLogEntry(BaseModel):
    id: str
    site_id: str
    conversation_id: str | None = None
    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ContentHistoryEntry(BaseModel):
    id: str
    site_id: str
    section_instance_id: str
    content: dict[str, Any]
    status: str
    instruction: str | None = None
    reason: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


__all__ = [
    "AdvisoryMode",
    "ContentHistoryEntry",
    "MutationLogEntry",
    "Page",
    "PlanPage",
    "ReleaseState",
    "Section",
    "Site",
    "SitePlan",
    "Snapshot",
    "SnapshotState",
]
