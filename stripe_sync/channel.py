"""Outbound event channel.

Handled webhook events are re-published to a Pub/Sub topic as
``{"type": "com.stripe.v1.<event type>", "data": <object>}`` so other
services can react without registering their own Stripe endpoint.
Publishing is best-effort: a failure is logged and never fails the webhook.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from google.cloud import pubsub_v1

logger = logging.getLogger("stripe_sync.channel")

EVENT_TYPE_PREFIX = "com.stripe.v1."
PUBLISH_TIMEOUT_SEC = 10


class EventChannel:
    """Thin wrapper around a Pub/Sub publisher bound to one topic."""

    def __init__(self, publisher, topic_path: str):
        self.publisher = publisher
        self.topic_path = topic_path

    @classmethod
    def from_topic(cls, project_id: str, topic: str) -> "EventChannel":
        publisher = pubsub_v1.PublisherClient()
        # Accept either a bare topic id or a full projects/.../topics/... path
        if topic.startswith("projects/"):
            topic_path = topic
        else:
            topic_path = publisher.topic_path(project_id, topic)
        return cls(publisher, topic_path)

    def publish(self, event_type: str, data: Dict[str, Any]) -> Optional[str]:
        """Publish one event; returns the message id, or None if publishing failed."""
        message = {"type": f"{EVENT_TYPE_PREFIX}{event_type}", "data": data}
        try:
            payload = json.dumps(message, default=str).encode("utf-8")
            future = self.publisher.publish(self.topic_path, payload)
            message_id = future.result(timeout=PUBLISH_TIMEOUT_SEC)
            logger.debug("Published %s to %s (%s)", message["type"], self.topic_path, message_id)
            return message_id
        except Exception:
            logger.exception("Event channel publish failed type=%s topic=%s", message["type"], self.topic_path)
            return None
