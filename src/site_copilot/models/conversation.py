from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, Field

from .contracts import DesignIntentState, IntakeContract, VoiceContract
from .drafts import ContentDraft, DraftKind, PresentationDraft, RecommendationDraft, ReleaseDraft, StructuralCall
from .site import SitePlan


class Mode(str, Enum):
    advisor = "advisor"
    clarifier = "clarifier"
    builder = "builder"
    ready = "ready"
    voice = "voice"
    audit = "audit"
    intent = "intent"


class Role(str, Enum):
    user = "user"
    assistant = "assistant"


class Message(BaseModel):
    role: Role
    content: str
    mode: Mode | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PlanStatus(str, Enum):
    proposed = "proposed"
    confirmed = "confirmed"
    rejected = "rejected"


class StoredPlan(BaseModel):
    status: PlanStatus
    plan: SitePlan
    explanation: str = ""
    amendment: StructuralCall | None = None

    @property
    def pending(self) -> bool:
        return self.status == PlanStatus.proposed


class DraftSlots(BaseModel):
    content: ContentDraft | None = None
    presentation: PresentationDraft | None = None
    release: ReleaseDraft | None = None
    recommendation: RecommendationDraft | None = None

    def get(self, kind: DraftKind):
        return getattr(self, kind.value)

    def put(self, draft: ContentDraft | PresentationDraft | ReleaseDraft | RecommendationDraft) -> None:
        setattr(self, draft.kind, draft)

    def clear(self, kind: DraftKind) -> None:
        setattr(self, kind.value, None)

    def pending(self) -> Iterator[ContentDraft | PresentationDraft | ReleaseDraft | RecommendationDraft]:
        for kind in (DraftKind.release, DraftKind.presentation, DraftKind.recommendation, DraftKind.content):
            draft = self.get(kind)
            if draft is not None:
                yield draft


class ConversationState(BaseModel):
    """Externally persisted state for one conversation, split into named slices."""

    id: str
    site_id: str | None = None
    user_id: str | None = None
    intake: IntakeContract = Field(default_factory=IntakeContract)
    design_intent: DesignIntentState | None = None
    voice: VoiceContract = Field(default_factory=VoiceContract)
    plan: StoredPlan | None = None
    drafts: DraftSlots = Field(default_factory=DraftSlots)
    last_mode: Mode | None = None
    pending_content_request: str | None = None
    explained_keys: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def intent_locked(self) -> bool:
        return self.design_intent is not None and self.design_intent.locked


class TurnResult(BaseModel):
    conversation_id: str
    site_id: str | None = None
    mode: Mode
    user_message: str
    assistant_message: str
    payload: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    def envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "conversationId": self.conversation_id,
            "siteId": self.site_id,
            "mode": self.mode.value,
            "userMessage": self.user_message,
            "assistantMessage": self.assistant_message,
            **self.payload,
        }
        if self.error:
            body["error"] = self.error
        return body


__all__ = [
    "ConversationState",
    "DraftSlots",
    "Message",
    "Mode",
    "PlanStatus",
    "Role",
    "StoredPlan",
    "TurnResult",
]
