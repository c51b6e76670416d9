"""Session publisher module for pub/sub event publishing."""

import logging
from typing import Any
from pubsub import pub
from ..models.events import SessionEvent

logger = logging.getLogger(__name__)


class SessionPublisher:
    """Publishes session notifications using pubsub.pub for pub/sub architecture."""

    def __init__(self, topic: str = "capture.session"):
        """Initialize session publisher.

        Args:
            topic: Pub/sub topic name for session events
        """
        self.topic = topic
        logger.info(f"SessionPublisher initialized with topic: {topic}")

    def publish(self, event_type: str, session_id: int, **metadata: Any) -> None:
        """Publish a session event to the pub/sub topic.

        Args:
            event_type: "state", "transcript", "error" or "stopped"
            session_id: Session the event belongs to
            **metadata: Event payload
        """
        event = SessionEvent(event_type=event_type, session_id=session_id, metadata=metadata)
        pub.sendMessage(self.topic, event=event)
        logger.debug(f"Published {event_type} event for session {session_id}")
