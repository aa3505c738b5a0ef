from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from google.cloud import pubsub_v1

logger = logging.getLogger(__name__)


class ReleaseEventPublisher:
    """Publishes release events so export and deploy workers can react to a new live snapshot."""

    def __init__(self, project_id: str, *, topic_id: str = "site-release-events") -> None:
        self.project_id = project_id
        self.topic_id = topic_id
        self.publisher = pubsub_v1.PublisherClient()

    def publish(
        self,
        message: dict[str, Any],
        *,
        attributes: dict[str, str] | None = None,
    ) -> str:
        """Publish a message to the release topic.

        Args:
            message: The message payload as a dictionary
            attributes: Optional message attributes

        Returns:
            Message ID from Pub/Sub
        """
        topic_path = self.publisher.topic_path(self.project_id, self.topic_id)
        data = json.dumps(message).encode("utf-8")
        future = self.publisher.publish(topic_path, data, **(attributes or {}))
        message_id = future.result()

        logger.info(
            "Published release event",
            extra={
                "topic_id": self.topic_id,
                "message_id": message_id,
                "attributes": attributes,
            },
        )
        return message_id

    def publish_release(self, *, site_id: str, snapshot_id: str, action: str) -> str:
        message = {
            "site_id": site_id,
            "snapshot_id": snapshot_id,
            "action": action,
            "occurred_at": datetime.utcnow().isoformat() + "Z",
        }
        return self.publish(
            message,
            attributes={"site_id": site_id, "event_type": f"snapshot_{action}"},
        )


__all__ = ["ReleaseEventPublisher"]
