"""Unit tests for serialized segment dispatch."""

import asyncio
import threading
import pytest
from unittest.mock import Mock, AsyncMock

from wingman.models.pipeline import PipelineResult
from wingman.models.events import PipelineErrorEvent
from wingman.pipeline.base import TranscriptionError, InferenceError
from wingman.services.segment_dispatcher import SegmentDispatcher
from conftest import make_segment


def result_for(segment):
    return PipelineResult(response_text=f"reply to {segment.segment_id}",
                          segment_id=segment.segment_id, session_id=segment.session_id)


@pytest.fixture
def pipeline():
    pipeline = Mock()
    pipeline.process = AsyncMock(side_effect=result_for)
    return pipeline


@pytest.fixture
def dispatcher(pipeline, mock_publisher):
    dispatcher = SegmentDispatcher(pipeline, mock_publisher)
    dispatcher.start()
    dispatcher.begin_session("s1")
    yield dispatcher
    dispatcher.shutdown(timeout=5.0)


def published_results(publisher):
    return [c.args[0].result for c in publisher.publish_result.call_args_list]


@pytest.mark.unit
class TestSegmentDispatcher:

    def test_result_published_for_active_session(self, dispatcher, mock_publisher):
        assert dispatcher.dispatch(make_segment("s1-a")) is True
        assert dispatcher.wait_until_idle(5.0)

        results = published_results(mock_publisher)
        assert [r.response_text for r in results] == ["reply to s1-a"]
        assert dispatcher.stats["completed"] == 1

    def test_segment_event_published_on_dispatch(self, dispatcher, mock_publisher):
        dispatcher.dispatch(make_segment("s1-a"))
        event = mock_publisher.publish_segment.call_args.args[0]
        assert event.segment_id == "s1-a"
        assert event.size_bytes > 0

    def test_duplicate_segment_rejected(self, dispatcher, pipeline):
        segment = make_segment("s1-a")
        assert dispatcher.dispatch(segment) is True
        assert dispatcher.dispatch(segment) is False
        dispatcher.wait_until_idle(5.0)

        assert pipeline.process.await_count == 1
        assert dispatcher.stats["rejected_duplicates"] == 1

    def test_results_in_dispatch_order(self, dispatcher, pipeline, mock_publisher):
        delays = {"s1-a": 0.05, "s1-b": 0.0, "s1-c": 0.02}

        async def slow_process(segment):
            await asyncio.sleep(delays[segment.segment_id])
            return result_for(segment)

        pipeline.process = AsyncMock(side_effect=slow_process)
        for segment_id in ["s1-a", "s1-b", "s1-c"]:
            dispatcher.dispatch(make_segment(segment_id))
        assert dispatcher.wait_until_idle(5.0)

        assert [r.segment_id for r in published_results(mock_publisher)] == ["s1-a", "s1-b", "s1-c"]

    def test_runs_never_overlap(self, dispatcher, pipeline):
        running = []
        overlaps = []

        async def tracked_process(segment):
            if running:
                overlaps.append(segment.segment_id)
            running.append(segment.segment_id)
            await asyncio.sleep(0.01)
            running.remove(segment.segment_id)
            return result_for(segment)

        pipeline.process = AsyncMock(side_effect=tracked_process)
        for i in range(5):
            dispatcher.dispatch(make_segment(f"s1-{i}"))
        assert dispatcher.wait_until_idle(5.0)
        assert overlaps == []

    def test_result_discarded_after_session_ends(self, dispatcher, pipeline, mock_publisher):
        started = threading.Event()
        release = threading.Event()

        async def blocked_process(segment):
            started.set()
            while not release.is_set():
                await asyncio.sleep(0.005)
            return result_for(segment)

        pipeline.process = AsyncMock(side_effect=blocked_process)
        dispatcher.dispatch(make_segment("s1-a"))
        assert started.wait(5.0)
        dispatcher.end_session("s1")
        release.set()
        assert dispatcher.wait_until_idle(5.0)

        mock_publisher.publish_result.assert_not_called()
        assert dispatcher.stats["discarded"] == 1

    def test_transcription_failure_reported(self, dispatcher, pipeline, mock_publisher):
        pipeline.process = AsyncMock(side_effect=TranscriptionError("whisper-cli exited with 1"))
        dispatcher.dispatch(make_segment("s1-a"))
        assert dispatcher.wait_until_idle(5.0)

        event = mock_publisher.publish_error.call_args.args[0]
        assert isinstance(event, PipelineErrorEvent)
        assert event.stage == "transcription"
        assert event.segment_id == "s1-a"
        mock_publisher.publish_result.assert_not_called()

    def test_failure_does_not_stop_later_segments(self, dispatcher, pipeline, mock_publisher):
        async def flaky(segment):
            if segment.segment_id == "s1-a":
                raise InferenceError("connection refused")
            return result_for(segment)

        pipeline.process = AsyncMock(side_effect=flaky)
        dispatcher.dispatch(make_segment("s1-a"))
        dispatcher.dispatch(make_segment("s1-b"))
        assert dispatcher.wait_until_idle(5.0)

        assert mock_publisher.publish_error.call_args.args[0].stage == "inference"
        assert [r.segment_id for r in published_results(mock_publisher)] == ["s1-b"]

    def test_unexpected_exception_reported_as_internal(self, dispatcher, pipeline, mock_publisher):
        pipeline.process = AsyncMock(side_effect=RuntimeError("boom"))
        dispatcher.dispatch(make_segment("s1-a"))
        assert dispatcher.wait_until_idle(5.0)
        assert mock_publisher.publish_error.call_args.args[0].stage == "internal"

    def test_error_for_ended_session_not_reported(self, dispatcher, pipeline, mock_publisher):
        pipeline.process = AsyncMock(side_effect=InferenceError("refused"))
        dispatcher.end_session("s1")
        dispatcher.dispatch(make_segment("s1-a"))
        assert dispatcher.wait_until_idle(5.0)
        mock_publisher.publish_error.assert_not_called()
        pipeline.process.assert_not_called()

    def test_dispatch_after_shutdown_rejected(self, pipeline, mock_publisher):
        dispatcher = SegmentDispatcher(pipeline, mock_publisher)
        dispatcher.start()
        dispatcher.shutdown(timeout=1.0)
        assert dispatcher.dispatch(make_segment("s1-a")) is False
        assert not dispatcher.worker_thread.is_alive()

    def test_shutdown_drains_queue(self, pipeline, mock_publisher):
        dispatcher = SegmentDispatcher(pipeline, mock_publisher)
        dispatcher.start()
        dispatcher.begin_session("s1")
        for i in range(3):
            dispatcher.dispatch(make_segment(f"s1-{i}"))
        dispatcher.shutdown(timeout=5.0)

        assert pipeline.process.await_count == 3
        assert dispatcher.pending_count() == 0

    def test_queued_segments_of_ended_session_skipped(self, dispatcher, pipeline, mock_publisher):
        started = threading.Event()
        release = threading.Event()

        async def gated_process(segment):
            started.set()
            while not release.is_set():
                await asyncio.sleep(0.005)
            return result_for(segment)

        pipeline.process = AsyncMock(side_effect=gated_process)
        dispatcher.dispatch(make_segment("s1-a"))
        assert started.wait(5.0)
        dispatcher.dispatch(make_segment("s1-b"))
        dispatcher.end_session("s1")
        release.set()
        assert dispatcher.wait_until_idle(5.0)

        assert pipeline.process.await_count == 1
        assert dispatcher.stats["discarded"] == 1
        assert dispatcher.stats["skipped"] == 1
        mock_publisher.publish_result.assert_not_called()

    def test_segment_ids_forgotten_once_session_drains(self, dispatcher):
        dispatcher.dispatch(make_segment("s1-a"))
        assert dispatcher.wait_until_idle(5.0)
        assert dispatcher.tracked_sessions() == {"s1"}

        dispatcher.end_session("s1")
        assert dispatcher.tracked_sessions() == set()
        assert dispatcher.queued_counts == {}

    def test_ids_kept_while_ended_session_has_queued_work(self, dispatcher, pipeline):
        started = threading.Event()
        release = threading.Event()

        async def gated_process(segment):
            started.set()
            while not release.is_set():
                await asyncio.sleep(0.005)
            return result_for(segment)

        pipeline.process = AsyncMock(side_effect=gated_process)
        dispatcher.dispatch(make_segment("s1-a"))
        assert started.wait(5.0)
        dispatcher.end_session("s1")

        assert dispatcher.tracked_sessions() == {"s1"}
        assert dispatcher.dispatch(make_segment("s1-a")) is False

        release.set()
        assert dispatcher.wait_until_idle(5.0)
        assert dispatcher.tracked_sessions() == set()

    def test_stats_consistent_under_load(self, dispatcher, pipeline):
        for i in range(40):
            dispatcher.dispatch(make_segment(f"s1-{i}"))
        assert dispatcher.wait_until_idle(5.0)
        assert dispatcher.stats["dispatched"] == 40
        assert dispatcher.stats["completed"] == 40
