"""Recording session: continuous capture split into segments at speech boundaries."""

import time
import logging
import threading
from typing import Optional, Callable

from ..audio.audio_pub import EventPublisher
from ..audio.calibrator import ThresholdCalibrator, compute_rms, volume_bars
from ..audio.capture import MicrophoneStream, CaptureUnit, CaptureError
from ..audio.vad import VadSegmenter, VadDecision
from ..config import WingmanConfig
from ..models.audio import AudioFrame
from ..models.events import VolumeEvent, SessionEvent
from ..models.session import SessionState
from .segment_dispatcher import SegmentDispatcher

logger = logging.getLogger(__name__)

TICK_JOIN_TIMEOUT = 2.0


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RecordingSession:
    """Owns the microphone stream and rotates capture units on speech end.

    Every tick reads one analysis block, feeds it to the current capture
    unit, updates calibration and VAD, and completes any pending stop. A
    stop finalizes the unit, dispatches its segment and, while the session
    is active, starts a replacement unit on the same stream before
    ``stop_in_flight`` is cleared.

    The tick loop runs on its own thread. ``manual_flush`` and
    ``stop_session`` may be called from any thread; all state transitions
    happen under ``self.lock``.
    """
    
    def __init__(
        self,
        dispatcher: SegmentDispatcher,
        publisher: EventPublisher,
        stream_factory: Callable[[], MicrophoneStream] = MicrophoneStream,
        calibrator: Optional[ThresholdCalibrator] = None,
        segmenter: Optional[VadSegmenter] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        """Initialize recording session.
        
        Args:
            dispatcher: Receives every finalized segment
            publisher: Event stream for volume and session events
            stream_factory: Creates the microphone stream on session start
            calibrator: Noise floor tracker (defaults to standard tunables)
            segmenter: VAD state machine (defaults to standard tunables)
            clock: Millisecond clock used to timestamp frames
        """
        self.dispatcher = dispatcher
        self.publisher = publisher
        self.stream_factory = stream_factory
        self.calibrator = calibrator or ThresholdCalibrator()
        self.segmenter = segmenter or VadSegmenter()
        self.clock = clock

        self.state = SessionState()
        self.stream: Optional[MicrophoneStream] = None
        self.lock = threading.RLock()

        self.tick_thread: Optional[threading.Thread] = None
        self.cancel_event: Optional[threading.Event] = None
        self.join_timeout = TICK_JOIN_TIMEOUT

    @classmethod
    def from_config(cls, config: WingmanConfig, dispatcher: SegmentDispatcher,
                    publisher: EventPublisher) -> "RecordingSession":
        def stream_factory() -> MicrophoneStream:
            return MicrophoneStream(
                sample_rate=config.get('audio.sample_rate', 16000),
                chunk_size=config.get('audio.chunk_size', 512),
                channels=config.get('audio.channels', 1),
                device_index=config.get('audio.device_index'),
            )

        return cls(
            dispatcher=dispatcher,
            publisher=publisher,
            stream_factory=stream_factory,
            calibrator=ThresholdCalibrator(
                calibration_ms=config.get('vad.calibration_ms', 800),
                min_threshold=config.get('vad.min_threshold_rms', 0.002),
                noise_multiplier=config.get('vad.noise_multiplier', 2.0),
            ),
            segmenter=VadSegmenter(
                silence_duration_ms=config.get('vad.silence_duration_ms', 1500),
            ),
        )

    @property
    def is_active(self) -> bool:
        return self.state.active

    @property
    def current_unit(self) -> Optional[CaptureUnit]:
        return self.state.current_unit

    # Lifecycle

    def start_session(self, run_tick_loop: bool = True) -> str:
        """Open the microphone and begin capturing.

        Args:
            run_tick_loop: Start the capture thread; tests drive ``process_frame`` directly

        Returns:
            The new session ID

        Raises:
            CaptureError: If the microphone cannot be opened; no session is started
        """
        with self.lock:
            if self.state.active:
                logger.warning("Session already active")
                return self.state.session_id

            stream = self.stream_factory()
            stream.open()

            now = self.clock()
            self.stream = stream
            self.state = SessionState.create(started_at_ms=now)
            self.calibrator.begin(now)
            self.segmenter.reset()
            self.dispatcher.begin_session(self.state.session_id)

            unit = CaptureUnit(stream, session_id=self.state.session_id)
            unit.start()
            self.state.current_unit = unit
            session_id = self.state.session_id

            # One cancel event per tick loop; a later start never clears it
            self.cancel_event = threading.Event()
            if run_tick_loop:
                self.tick_thread = threading.Thread(
                    target=self._tick_loop,
                    args=(stream, session_id, self.cancel_event),
                    daemon=True,
                )
                self.tick_thread.name = f"VadTickThread-{session_id}"
                self.tick_thread.start()

        logger.info(f"Recording session started: {session_id}")
        self.publisher.publish_session(SessionEvent(session_id=session_id, event_type="started"))
        return session_id

    def stop_session(self, session_id: Optional[str] = None) -> None:
        """Tear the session down. Idempotent.

        Cancels the tick loop, finalizes and dispatches the current unit
        without replacing it, releases the stream and resets all state.

        Args:
            session_id: Only stop if this is still the current session
        """
        with self.lock:
            if not self.state.active and self.stream is None:
                return
            if session_id is not None and session_id != self.state.session_id:
                logger.debug(f"Ignoring stop for ended session {session_id}")
                return
            session_id = self.state.session_id
            self.state.active = False
            self.dispatcher.end_session(session_id)
            tick_thread, cancel_event = self.tick_thread, self.cancel_event
            self.tick_thread = None

        if cancel_event is not None:
            cancel_event.set()
        if tick_thread and tick_thread is not threading.current_thread():
            tick_thread.join(timeout=self.join_timeout)
            if tick_thread.is_alive():
                logger.warning(f"Tick thread {tick_thread.name} did not stop in time; "
                               f"it will exit on its next read")

        with self.lock:
            if self.state.session_id != session_id:
                # Already torn down by the tick thread
                return
            unit = self.state.current_unit
            if unit is not None:
                if unit.is_recording:
                    unit.request_stop()
                    self.state.stop_in_flight = True
                if unit.is_finalizing:
                    self._complete_pending_stop()
                self.state.current_unit = None

            if self.stream is not None:
                self.stream.close()
                self.stream = None

            segments = self.state.segments_finalized
            self.state.reset()
            self.calibrator.reset()
            self.segmenter.reset()

        logger.info(f"Recording session stopped: {session_id} ({segments} segments)")
        self.publisher.publish_session(SessionEvent(
            session_id=session_id, event_type="stopped", metadata={"segments": segments}
        ))

    def manual_flush(self) -> bool:
        """Finalize the current segment now and keep recording.

        The stop completes on the next tick. Rejected if a stop is already
        in flight or nothing is recording.

        Returns:
            True if a stop was requested
        """
        with self.lock:
            if self.state.stop_in_flight:
                logger.debug("Manual flush ignored: stop already in flight")
                return False
            if not self._request_stop():
                logger.debug("Manual flush ignored: no unit recording")
                return False
            logger.info("Manual flush: stopping recorder")
            return True

    # Tick processing

    def process_frame(self, frame: AudioFrame, session_id: Optional[str] = None) -> None:
        """One tick: accumulate audio, calibrate, run VAD, complete pending stops.

        Frames tagged with a ``session_id`` other than the current one are dropped.
        """
        with self.lock:
            if not self.state.active:
                return
            if session_id is not None and session_id != self.state.session_id:
                return

            unit = self.state.current_unit
            if unit is not None:
                unit.append(frame.data)

            rms = compute_rms(frame.samples)
            self.calibrator.update(rms, frame.timestamp_ms)
            decision = self.segmenter.process(rms, self.calibrator.threshold, frame.timestamp_ms)

            if decision == VadDecision.SPEECH_END:
                if self._request_stop():
                    logger.info("Silence detected: stopping recorder")

            if unit is not None and unit.is_finalizing:
                self._complete_pending_stop()

            is_speaking = self.segmenter.is_speaking

        self.publisher.publish_volume(VolumeEvent(level=volume_bars(rms), rms=rms, is_speaking=is_speaking))

    def _request_stop(self) -> bool:
        """Ask the current unit to stop; no-op if a stop is in flight or it is not recording."""
        unit = self.state.current_unit
        if self.state.stop_in_flight or unit is None or not unit.is_recording:
            return False
        unit.request_stop()
        self.state.stop_in_flight = True
        self.segmenter.clear_silence()
        return True

    def _complete_pending_stop(self) -> None:
        """Finalize the stopping unit, dispatch it, then replace it if still active."""
        unit = self.state.current_unit
        try:
            segment = unit.finalize()
            if segment is not None:
                self.state.segments_finalized += 1
                self.dispatcher.dispatch(segment)
        finally:
            if self.state.active and self.stream is not None and self.stream.is_open:
                try:
                    new_unit = CaptureUnit(self.stream, session_id=self.state.session_id)
                    new_unit.start()
                    self.state.current_unit = new_unit
                    self.segmenter.reset()
                    logger.debug(f"New capture unit started after stop: {new_unit.unit_id}")
                except CaptureError as e:
                    logger.error(f"Failed to restart recorder: {e}")
                    self.state.current_unit = None
            else:
                logger.debug("Session inactive, not restarting recorder")
                self.state.current_unit = None
            self.state.stop_in_flight = False

    def _tick_loop(self, stream: MicrophoneStream, session_id: str, cancel_event: threading.Event) -> None:
        """Capture thread for one session: one tick per analysis block until cancelled.

        Any failure ends the session the loop was started for and is
        published as a session error. A later session is never touched.
        """
        try:
            while not cancel_event.is_set():
                frame = stream.read_frame(self.clock())
                if cancel_event.is_set():
                    break
                self.process_frame(frame, session_id=session_id)
        except CaptureError as e:
            self._end_after_failure(session_id, str(e))
        except Exception as e:
            logger.error(f"Unexpected error in tick loop for session {session_id}: {e}", exc_info=True)
            self._end_after_failure(session_id, f"Internal error: {e}")

    def _end_after_failure(self, session_id: str, error: str) -> None:
        with self.lock:
            still_running = self.state.active and self.state.session_id == session_id
        if not still_running:
            logger.info(f"Tick loop for ended session {session_id} exiting: {error}")
            return

        logger.error(f"Capture failed, ending session {session_id}: {error}")
        self.publisher.publish_session(SessionEvent(
            session_id=session_id, event_type="error", error=error
        ))
        self.stop_session(session_id)
