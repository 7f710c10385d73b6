"""Event publisher for the consumer event stream."""

import logging
from pubsub import pub

from ..models.events import (
    SegmentEvent,
    VolumeEvent,
    PipelineResultEvent,
    PipelineErrorEvent,
    SessionEvent,
    TOPIC_SEGMENT_FINALIZED,
    TOPIC_PIPELINE_RESULT,
    TOPIC_PIPELINE_ERROR,
    TOPIC_VOLUME,
    TOPIC_SESSION_STARTED,
    TOPIC_SESSION_STOPPED,
    TOPIC_SESSION_ERROR,
)

logger = logging.getLogger(__name__)

SESSION_TOPICS = {
    "started": TOPIC_SESSION_STARTED,
    "stopped": TOPIC_SESSION_STOPPED,
    "error": TOPIC_SESSION_ERROR,
}


class EventPublisher:
    """Publishes capture and pipeline events using pubsub.pub."""
    
    def __init__(self, prefix: str = ""):
        """Initialize event publisher.
        
        Args:
            prefix: Optional topic prefix, e.g. to isolate several sessions
        """
        self.prefix = prefix
        logger.info(f"EventPublisher initialized with prefix: '{prefix}'")

    def topic(self, name: str) -> str:
        return f"{self.prefix}.{name}" if self.prefix else name
    
    def publish_segment(self, event: SegmentEvent) -> None:
        pub.sendMessage(self.topic(TOPIC_SEGMENT_FINALIZED), event=event)
        logger.debug(f"Published segment event: {event.segment_id}")

    def publish_volume(self, event: VolumeEvent) -> None:
        pub.sendMessage(self.topic(TOPIC_VOLUME), event=event)

    def publish_result(self, event: PipelineResultEvent) -> None:
        pub.sendMessage(self.topic(TOPIC_PIPELINE_RESULT), event=event)
        logger.debug(f"Published pipeline result: {event.result.segment_id}")

    def publish_error(self, event: PipelineErrorEvent) -> None:
        pub.sendMessage(self.topic(TOPIC_PIPELINE_ERROR), event=event)
        logger.debug(f"Published pipeline error: {event.segment_id} ({event.stage})")

    def publish_session(self, event: SessionEvent) -> None:
        pub.sendMessage(self.topic(SESSION_TOPICS[event.event_type]), event=event)
        logger.debug(f"Published session event: {event.session_id} {event.event_type}")
