"""Fan-out of captured microphone audio over pub/sub.

Every recognition engine instance subscribes to the audio topic while it
runs, so replacing an engine never touches the capture thread.
"""

import logging
from pubsub import pub
from ..models.events import AudioEvent

logger = logging.getLogger(__name__)


class AudioPublisher:
    """Sends each AudioEvent to ``topic`` and keeps running totals."""

    def __init__(self, topic: str = "audio.frame"):
        """Initialize audio publisher.

        Args:
            topic: Pub/sub topic the engines listen on
        """
        self.topic = topic
        self.frames_published = 0
        self.bytes_published = 0
        logger.info(f"AudioPublisher initialized with topic: {topic}")

    def publish_audio_event(self, audio_event: AudioEvent) -> None:
        pub.sendMessage(self.topic, event=audio_event)
        self.frames_published += 1
        self.bytes_published += len(audio_event.audio_data)

        if audio_event.final:
            logger.info(f"Final audio frame published on {self.topic}: "
                        f"{self.frames_published} frames, {self.bytes_published} bytes")
