from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Protocol

from .models.conversation import ConversationState, Message
from .models.recommendation import AuditRun, RecommendationRecord, RecommendationStatus
from .models.site import ContentHistoryEntry, MutationLogEntry, Site, Snapshot


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class CopilotStore(Protocol):
    def create_conversation(self, *, site_id: str | None = None, user_id: str | None = None) -> ConversationState:
        ...

    def get_conversation(self, conversation_id: str) -> ConversationState | None:
        ...

    def save_conversation(self, state: ConversationState) -> ConversationState:
        ...

    def append_message(self, conversation_id: str, message: Message) -> None:
        ...

    def list_messages(self, conversation_id: str, *, limit: int | None = None) -> list[Message]:
        ...

    def create_site(self, *, owner_id: str | None, conversation_id: str | None) -> Site:
        ...

    def get_site(self, site_id: str) -> Site | None:
        ...

    def save_site(self, site: Site) -> Site:
        ...

    def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        ...

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        ...

    def list_snapshots(self, site_id: str) -> list[Snapshot]:
        ...

    def append_mutation(self, entry: MutationLogEntry) -> MutationLogEntry:
        ...

    def list_mutations(self, site_id: str) -> list[MutationLogEntry]:
        ...

    def save_recommendations(self, records: Iterable[RecommendationRecord]) -> None:
        ...

    def list_recommendations(self, site_id: str) -> list[RecommendationRecord]:
        ...

    def update_recommendation_status(self, record_ids: Iterable[str], status: RecommendationStatus) -> None:
        ...

    def add_audit_run(self, run: AuditRun) -> AuditRun:
        ...

    def list_audit_runs(self, site_id: str) -> list[AuditRun]:
        ...

    def add_content_history(self, entry: ContentHistoryEntry) -> ContentHistoryEntry:
        ...

    def list_content_history(self, site_id: str, section_instance_id: str) -> list[ContentHistoryEntry]:
        ...


class InMemoryStore:
    """Process-local store for dev and tests. Returned records are copies."""

    def __init__(self) -> None:
        self._conversations: Dict[str, ConversationState] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._sites: Dict[str, Site] = {}
        self._snapshots: Dict[str, Snapshot] = {}
        self._mutations: List[MutationLogEntry] = []
        self._recommendations: Dict[str, RecommendationRecord] = {}
        self._audit_runs: List[AuditRun] = []
        self._content_history: List[ContentHistoryEntry] = []
        self._lock = threading.Lock()

    def create_conversation(self, *, site_id: str | None = None, user_id: str | None = None) -> ConversationState:
        with self._lock:
            state = ConversationState(id=new_id("conv"), site_id=site_id, user_id=user_id)
            self._conversations[state.id] = state
            self._messages[state.id] = []
            return state.model_copy(deep=True)

    def get_conversation(self, conversation_id: str) -> ConversationState | None:
        with self._lock:
            state = self._conversations.get(conversation_id)
            return state.model_copy(deep=True) if state else None

    def save_conversation(self, state: ConversationState) -> ConversationState:
        with self._lock:
            state.updated_at = datetime.utcnow()
            self._conversations[state.id] = state.model_copy(deep=True)
            return state

    def append_message(self, conversation_id: str, message: Message) -> None:
        with self._lock:
            self._messages.setdefault(conversation_id, []).append(message.model_copy())

    def list_messages(self, conversation_id: str, *, limit: int | None = None) -> list[Message]:
        with self._lock:
            messages = list(self._messages.get(conversation_id, []))
        return messages[-limit:] if limit else messages

    def create_site(self, *, owner_id: str | None, conversation_id: str | None) -> Site:
        with self._lock:
            site = Site(id=new_id("site"), owner_id=owner_id, conversation_id=conversation_id)
            self._sites[site.id] = site
            return site.model_copy(deep=True)

    def get_site(self, site_id: str) -> Site | None:
        with self._lock:
            site = self._sites.get(site_id)
            return site.model_copy(deep=True) if site else None

    def save_site(self, site: Site) -> Site:
        with self._lock:
            site.updated_at = datetime.utcnow()
            self._sites[site.id] = site.model_copy(deep=True)
            return site

    def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        with self._lock:
            self._snapshots[snapshot.id] = snapshot.model_copy(deep=True)
            return snapshot

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        with self._lock:
            snapshot = self._snapshots.get(snapshot_id)
            return snapshot.model_copy(deep=True) if snapshot else None

    def list_snapshots(self, site_id: str) -> list[Snapshot]:
        with self._lock:
            snapshots = [s.model_copy(deep=True) for s in self._snapshots.values() if s.site_id == site_id]
        return sorted(snapshots, key=lambda s: s.created_at)

    def append_mutation(self, entry: MutationLogEntry) -> MutationLogEntry:
        with self._lock:
            self._mutations.append(entry.model_copy(deep=True))
            return entry

    def list_mutations(self, site_id: str) -> list[MutationLogEntry]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._mutations if m.site_id == site_id]

    def save_recommendations(self, records: Iterable[RecommendationRecord]) -> None:
        with self._lock:
            for record in records:
                self._recommendations[record.id] = record.model_copy(deep=True)

    def list_recommendations(self, site_id: str) -> list[RecommendationRecord]:
        with self._lock:
            records = [r.model_copy(deep=True) for r in self._recommendations.values() if r.site_id == site_id]
        return sorted(records, key=lambda r: r.created_at)

    def update_recommendation_status(self, record_ids: Iterable[str], status: RecommendationStatus) -> None:
        with self._lock:
            now = datetime.utcnow()
            for record_id in record_ids:
                record = self._recommendations.get(record_id)
                if record is None:
                    continue
                record.status = status
                record.updated_at = now

    def add_audit_run(self, run: AuditRun) -> AuditRun:
        with self._lock:
            self._audit_runs.append(run.model_copy(deep=True))
            return run

    def list_audit_runs(self, site_id: str) -> list[AuditRun]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._audit_runs if r.site_id == site_id]

    def add_content_history(self, entry: ContentHistoryEntry) -> ContentHistoryEntry:
        with self._lock:
            self._content_history.append(entry.model_copy(deep=True))
            return entry

    def list_content_history(self, site_id: str, section_instance_id: str) -> list[ContentHistoryEntry]:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in self._content_history
                if e.site_id == site_id and e.section_instance_id == section_instance_id
            ]


__all__ = ["CopilotStore", "InMemoryStore", "new_id"]
