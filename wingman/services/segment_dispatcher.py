"""Serialized hand-off of finalized segments to the audio pipeline."""

import time
import asyncio
import logging
import threading
import queue
from typing import Dict, Optional, Set

from ..audio.audio_pub import EventPublisher
from ..models.audio import Segment
from ..models.events import SegmentEvent, PipelineResultEvent, PipelineErrorEvent
from ..pipeline.audio_pipeline import AudioPipeline
from ..pipeline.base import PipelineError

logger = logging.getLogger(__name__)


class SegmentDispatcher:
    """Feeds segments to the pipeline one at a time, in dispatch order.

    A single worker thread owns an asyncio loop and runs one pipeline
    invocation at a time, so results come back in utterance order. Runs
    already in flight are never cancelled; their results are dropped if
    their session has ended by the time they complete. Segments still
    queued when their session ends are skipped without running.
    """

    def __init__(self, pipeline: AudioPipeline, publisher: EventPublisher):
        self.pipeline = pipeline
        self.publisher = publisher

        self.task_queue: "queue.Queue[Optional[Segment]]" = queue.Queue()
        self.worker_thread: Optional[threading.Thread] = None
        self.shutdown_event = threading.Event()

        self.lock = threading.Lock()
        # session_id -> segment ids dispatched for it; dropped once the
        # session has ended and none of its segments are queued
        self.dispatched_ids: Dict[str, Set[str]] = {}
        self.queued_counts: Dict[str, int] = {}
        self.active_sessions: Set[str] = set()

        self.stats = {
            "dispatched": 0,
            "rejected_duplicates": 0,
            "completed": 0,
            "failed": 0,
            "discarded": 0,
            "skipped": 0,
        }

    def start(self) -> None:
        """Start the worker thread."""
        if self.worker_thread and self.worker_thread.is_alive():
            return
        self.shutdown_event.clear()
        self.worker_thread = threading.Thread(target=self._worker_loop, daemon=True)
        self.worker_thread.name = "SegmentDispatcherWorker"
        self.worker_thread.start()
        logger.info("Segment dispatcher started")

    def begin_session(self, session_id: str) -> None:
        with self.lock:
            self.active_sessions.add(session_id)

    def end_session(self, session_id: str) -> None:
        """Results for this session arriving from now on are discarded."""
        with self.lock:
            self.active_sessions.discard(session_id)
            self._forget_if_drained(session_id)

    def is_session_active(self, session_id: str) -> bool:
        with self.lock:
            return session_id in self.active_sessions

    def tracked_sessions(self) -> Set[str]:
        """Sessions whose dispatched segment ids are still remembered."""
        with self.lock:
            return set(self.dispatched_ids)

    def dispatch(self, segment: Segment) -> bool:
        """Queue a segment for processing.

        Returns:
            False if this segment was already dispatched or the dispatcher is shut down
        """
        if self.shutdown_event.is_set():
            logger.warning(f"Dispatcher shut down, dropping segment {segment.segment_id}")
            return False

        with self.lock:
            seen = self.dispatched_ids.setdefault(segment.session_id, set())
            if segment.segment_id in seen:
                self.stats["rejected_duplicates"] += 1
                logger.warning(f"Segment {segment.segment_id} already dispatched, ignoring")
                return False
            seen.add(segment.segment_id)
            self.queued_counts[segment.session_id] = self.queued_counts.get(segment.session_id, 0) + 1
            self.stats["dispatched"] += 1

        logger.info(f"Dispatching segment {segment.segment_id} ({segment.size_bytes} bytes)")
        self.publisher.publish_segment(SegmentEvent.from_segment(segment))
        self.task_queue.put(segment)
        return True

    def _worker_loop(self) -> None:
        """Process queued segments on a private event loop until a sentinel arrives."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        try:
            while True:
                segment = self.task_queue.get()
                if segment is None:
                    logger.debug("Dispatcher worker received sentinel, exiting.")
                    self.task_queue.task_done()
                    break
                try:
                    loop.run_until_complete(self._process_segment(segment))
                finally:
                    self._segment_done(segment.session_id)
                    self.task_queue.task_done()
        finally:
            loop.close()
            logger.debug("Dispatcher worker exiting and closing its event loop.")

    async def _process_segment(self, segment: Segment) -> None:
        if not self.is_session_active(segment.session_id):
            self._count("skipped")
            logger.info(f"Session {segment.session_id} ended, skipping segment {segment.segment_id}")
            return

        try:
            result = await self.pipeline.process(segment)
        except PipelineError as e:
            self._count("failed")
            logger.error(f"Pipeline failed for segment {segment.segment_id} at {e.stage}: {e}")
            self._report_error(segment, e.stage, str(e))
            return
        except Exception as e:
            self._count("failed")
            logger.error(f"Unhandled exception processing segment {segment.segment_id}: {e}", exc_info=True)
            self._report_error(segment, "internal", str(e))
            return

        if not self.is_session_active(segment.session_id):
            self._count("discarded")
            logger.info(f"Session {segment.session_id} ended, discarding result for {segment.segment_id}")
            return

        self._count("completed")
        self.publisher.publish_result(PipelineResultEvent(result=result))

    def _report_error(self, segment: Segment, stage: str, message: str) -> None:
        if not self.is_session_active(segment.session_id):
            self._count("discarded")
            return
        self.publisher.publish_error(PipelineErrorEvent(
            segment_id=segment.segment_id,
            session_id=segment.session_id,
            stage=stage,
            message=message,
        ))

    def _count(self, key: str) -> None:
        with self.lock:
            self.stats[key] += 1

    def _segment_done(self, session_id: str) -> None:
        with self.lock:
            self.queued_counts[session_id] -= 1
            self._forget_if_drained(session_id)

    def _forget_if_drained(self, session_id: str) -> None:
        # Caller holds self.lock
        if session_id in self.active_sessions or self.queued_counts.get(session_id, 0) > 0:
            return
        self.queued_counts.pop(session_id, None)
        self.dispatched_ids.pop(session_id, None)

    def pending_count(self) -> int:
        return self.task_queue.unfinished_tasks

    def wait_until_idle(self, timeout: float = 30.0) -> bool:
        """Poll until every dispatched segment has been processed."""
        start_time = time.time()
        while time.time() - start_time < timeout:
            if self.task_queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        logger.warning(f"Timeout waiting for dispatcher: {self.task_queue.unfinished_tasks} segments remain")
        return False

    def shutdown(self, timeout: float = 30.0) -> None:
        """Finish queued segments, then stop the worker."""
        if self.shutdown_event.is_set():
            return
        logger.info("Shutting down segment dispatcher...")
        self.shutdown_event.set()
        if self.worker_thread and self.worker_thread.is_alive():
            self.wait_until_idle(timeout)
            self.task_queue.put(None)
            self.worker_thread.join(2.0)
            if self.worker_thread.is_alive():
                logger.warning("Dispatcher worker did not terminate cleanly.")
        logger.info(f"Segment dispatcher shutdown complete: {self.stats}")
