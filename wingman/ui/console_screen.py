"""Terminal front end: volume meter, live reveal and transcript."""

import time
import logging
import threading

from pubsub import pub
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..audio.audio_pub import EventPublisher
from ..audio.capture import CaptureError
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
    TOPIC_SESSION_ERROR,
)
from ..models.ui import ScreenStatus
from ..services.recording_service import RecordingSession
from ..services.segment_dispatcher import SegmentDispatcher
from .keyboard_input import create_input_handler
from .reveal import RevealController, Transcript

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1 / 30
TRANSCRIPT_ROWS = 6


def meter(level: int) -> Text:
    """Ten-segment volume bar coloured green, yellow, red."""
    bar = Text()
    for i in range(10):
        if i >= level:
            bar.append("▁", style="grey37")
        elif i < 3:
            bar.append("█", style="green")
        elif i < 7:
            bar.append("█", style="yellow")
        else:
            bar.append("█", style="red")
    return bar


class ConsoleScreen:
    """Renders the event stream and maps keys to session commands.

    Keys: ``r`` start/stop the session, ``f`` flush the current segment,
    ``q`` quit.
    """

    def __init__(
        self,
        session: RecordingSession,
        dispatcher: SegmentDispatcher,
        publisher: EventPublisher,
        reveal_min_step: int = 1,
        reveal_max_step: int = 3,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.publisher = publisher
        self.console = Console()
        self.status = ScreenStatus()
        self.transcript = Transcript()
        self.reveal = RevealController(
            self.transcript,
            min_step=reveal_min_step,
            max_step=reveal_max_step,
        )
        self.quit_event = threading.Event()

        pub.subscribe(self.on_segment, publisher.topic(TOPIC_SEGMENT_FINALIZED))
        pub.subscribe(self.on_volume, publisher.topic(TOPIC_VOLUME))
        pub.subscribe(self.on_result, publisher.topic(TOPIC_PIPELINE_RESULT))
        pub.subscribe(self.on_error, publisher.topic(TOPIC_PIPELINE_ERROR))
        pub.subscribe(self.on_session_error, publisher.topic(TOPIC_SESSION_ERROR))

    # Event handlers (called from capture and dispatcher threads)

    def on_segment(self, event: SegmentEvent) -> None:
        self.status.segments_sent += 1

    def on_volume(self, event: VolumeEvent) -> None:
        self.status.volume_level = event.level
        self.status.is_speaking = event.is_speaking

    def on_result(self, event: PipelineResultEvent) -> None:
        result = event.result
        self.status.last_transcript = result.transcript
        if result.response_text.strip():
            self.reveal.start(result.response_text)

    def on_error(self, event: PipelineErrorEvent) -> None:
        self.status.add_message(f"[red]{event.stage} failed:[/red] {event.message}")

    def on_session_error(self, event: SessionEvent) -> None:
        self.status.is_recording = False
        self.status.add_message(f"[red]Microphone error:[/red] {event.error}")

    # Commands

    def toggle_recording(self) -> None:
        if self.session.is_active:
            self.session.stop_session()
            self.reveal.cancel()
            self.status.is_recording = False
            self.status.volume_level = 0
            return

        self.transcript.clear()
        self.status.messages.clear()
        try:
            self.status.session_id = self.session.start_session()
            self.status.is_recording = True
        except CaptureError as e:
            logger.error(f"Could not start recording: {e}")
            self.status.add_message(f"[red]Microphone error:[/red] {e}")

    def handle_key(self, key: str) -> bool:
        if key == 'q':
            self.quit_event.set()
            return False
        if key == 'r':
            self.toggle_recording()
        elif key == 'f':
            if not self.session.manual_flush():
                self.status.add_message("Nothing to flush")
        return True

    # Rendering

    def render(self):
        header = Table.grid(padding=(0, 2))
        header.add_column()
        header.add_column()
        if self.status.is_recording:
            header.add_row(Text("● REC", style="bold red"), meter(self.status.volume_level))
        else:
            header.add_row(Text("■ STOPPED", style="bold yellow"), meter(0))
        pending = self.dispatcher.pending_count()
        header.add_row("Segments", f"{self.status.segments_sent} sent, {pending} processing")
        if self.status.last_transcript:
            header.add_row("Heard", Text(self.status.last_transcript, style="italic"))

        transcript = Table.grid()
        for entry in self.transcript.entries()[-TRANSCRIPT_ROWS:]:
            transcript.add_row(Text(f"{entry.timestamp:%H:%M:%S}  {entry.text}"))
        if self.reveal.in_progress:
            transcript.add_row(Text(self.reveal.current_text + "▌", style="bold cyan"))

        parts = [header, Panel(transcript, title="Responses")]
        for message in self.status.messages:
            parts.append(Text.from_markup(message))
        parts.append(Text("r start/stop · f flush segment · q quit", style="dim"))
        return Panel(Group(*parts), title="Wingman", border_style="blue")

    def run(self) -> None:
        """Render until the user quits."""
        handler = create_input_handler(self.handle_key)
        handler.start()
        try:
            with Live(self.render(), console=self.console, refresh_per_second=30, transient=False) as live:
                while not self.quit_event.is_set() and handler.running:
                    self.reveal.advance()
                    live.update(self.render())
                    time.sleep(FRAME_INTERVAL)
        finally:
            handler.stop()
            if self.session.is_active:
                self.session.stop_session()
            self.reveal.cancel()
