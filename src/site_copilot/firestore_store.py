from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .models.conversation import ConversationState, Message
from .models.recommendation import AuditRun, RecommendationRecord, RecommendationStatus
from .models.site import ContentHistoryEntry, MutationLogEntry, Site, Snapshot
from .store import new_id

logger = logging.getLogger(__name__)


class FirestoreStore:
    """Firestore-backed store for production use."""

    CONVERSATIONS = "conversations"
    MESSAGES = "messages"
    SITES = "sites"
    SNAPSHOTS = "snapshots"
    MUTATIONS = "mutation_log"
    RECOMMENDATIONS = "recommendations"
    AUDIT_RUNS = "audit_runs"
    CONTENT_HISTORY = "section_content_history"

    def __init__(self, project_id: str | None = None) -> None:
        self._db = firestore.Client(project=project_id)

    def _collection(self, name: str):
        return self._db.collection(name)

    def create_conversation(self, *, site_id: str | None = None, user_id: str | None = None) -> ConversationState:
        state = ConversationState(id=new_id("conv"), site_id=site_id, user_id=user_id)
        self._collection(self.CONVERSATIONS).document(state.id).set(self._to_firestore_dict(state))
        logger.info("Created conversation", extra={"conversation_id": state.id, "site_id": site_id})
        return state

    def get_conversation(self, conversation_id: str) -> ConversationState | None:
        doc = self._collection(self.CONVERSATIONS).document(conversation_id).get()
        if not doc.exists:
            return None
        return ConversationState.model_validate(doc.to_dict())

    def save_conversation(self, state: ConversationState) -> ConversationState:
        state.updated_at = datetime.utcnow()
        self._collection(self.CONVERSATIONS).document(state.id).set(self._to_firestore_dict(state))
        return state

    def append_message(self, conversation_id: str, message: Message) -> None:
        messages = self._collection(self.CONVERSATIONS).document(conversation_id).collection(self.MESSAGES)
        messages.document().set(self._to_firestore_dict(message))

    def list_messages(self, conversation_id: str, *, limit: int | None = None) -> list[Message]:
        query = (
            self._collection(self.CONVERSATIONS)
            .document(conversation_id)
            .collection(self.MESSAGES)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
        )
        if limit:
            query = query.limit(limit)
        messages = [Message.model_validate(doc.to_dict()) for doc in query.stream()]
        return list(reversed(messages))

    def create_site(self, *, owner_id: str | None, conversation_id: str | None) -> Site:
        site = Site(id=new_id("site"), owner_id=owner_id, conversation_id=conversation_id)
        self._collection(self.SITES).document(site.id).set(self._to_firestore_dict(site))
        logger.info("Created site", extra={"site_id": site.id, "conversation_id": conversation_id})
        return site

    def get_site(self, site_id: str) -> Site | None:
        doc = self._collection(self.SITES).document(site_id).get()
        if not doc.exists:
            return None
        return Site.model_validate(doc.to_dict())

    def save_site(self, site: Site) -> Site:
        site.updated_at = datetime.utcnow()
        self._collection(self.SITES).document(site.id).set(self._to_firestore_dict(site))
        return site

    def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        self._collection(self.SNAPSHOTS).document(snapshot.id).set(self._to_firestore_dict(snapshot))
        return snapshot

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        doc = self._collection(self.SNAPSHOTS).document(snapshot_id).get()
        if not doc.exists:
            return None
        return Snapshot.model_validate(doc.to_dict())

    def list_snapshots(self, site_id: str) -> list[Snapshot]:
        return [Snapshot.model_validate(data) for data in self._by_site(self.SNAPSHOTS, site_id)]

    def append_mutation(self, entry: MutationLogEntry) -> MutationLogEntry:
        # create() fails on an existing id, so log entries are never overwritten
        self._collection(self.MUTATIONS).document(entry.id).create(self._to_firestore_dict(entry))
        return entry

    def list_mutations(self, site_id: str) -> list[MutationLogEntry]:
        return [MutationLogEntry.model_validate(data) for data in self._by_site(self.MUTATIONS, site_id)]

    def save_recommendations(self, records: Iterable[RecommendationRecord]) -> None:
        batch = self._db.batch()
        for record in records:
            batch.set(self._collection(self.RECOMMENDATIONS).document(record.id), self._to_firestore_dict(record))
        batch.commit()

    def list_recommendations(self, site_id: str) -> list[RecommendationRecord]:
        return [RecommendationRecord.model_validate(data) for data in self._by_site(self.RECOMMENDATIONS, site_id)]

    def update_recommendation_status(self, record_ids: Iterable[str], status: RecommendationStatus) -> None:
        batch = self._db.batch()
        now = datetime.utcnow()
        for record_id in record_ids:
            batch.update(
                self._collection(self.RECOMMENDATIONS).document(record_id),
                {"status": status.value, "updated_at": now},
            )
        batch.commit()

    def add_audit_run(self, run: AuditRun) -> AuditRun:
        self._collection(self.AUDIT_RUNS).document(run.id).create(self._to_firestore_dict(run))
        return run

    def list_audit_runs(self, site_id: str) -> list[AuditRun]:
        return [AuditRun.model_validate(data) for data in self._by_site(self.AUDIT_RUNS, site_id)]

    def add_content_history(self, entry: ContentHistoryEntry) -> ContentHistoryEntry:
        self._collection(self.CONTENT_HISTORY).document(entry.id).set(self._to_firestore_dict(entry))
        return entry

    def list_content_history(self, site_id: str, section_instance_id: str) -> list[ContentHistoryEntry]:
        query = (
            self._collection(self.CONTENT_HISTORY)
            .where(filter=FieldFilter("site_id", "==", site_id))
            .where(filter=FieldFilter("section_instance_id", "==", section_instance_id))
            .order_by("created_at")
        )
        return [ContentHistoryEntry.model_validate(doc.to_dict()) for doc in query.stream()]

    def _by_site(self, collection: str, site_id: str) -> list[dict[str, Any]]:
        query = (
            self._collection(collection)
            .where(filter=FieldFilter("site_id", "==", site_id))
            .order_by("created_at")
        )
        return [doc.to_dict() for doc in query.stream()]

    def _to_firestore_dict(self, model) -> dict[str, Any]:
        """JSON-safe dump with native timestamps so Firestore can order by them."""
        data = model.model_dump(mode="json")
        for key in ("created_at", "updated_at"):
            value = getattr(model, key, None)
            if isinstance(value, datetime):
                data[key] = value
        return data


__all__ = ["FirestoreStore"]
