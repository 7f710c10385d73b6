"""Main application entry point for Wingman."""

import sys
import time
import argparse
import logging
from pathlib import Path
from typing import List

from pubsub import pub

from wingman import __version__
from wingman.audio.audio_pub import EventPublisher
from wingman.audio.capture import CaptureError
from wingman.models.events import (
    PipelineResultEvent,
    PipelineErrorEvent,
    TOPIC_PIPELINE_RESULT,
    TOPIC_PIPELINE_ERROR,
)
from wingman.pipeline.audio_pipeline import AudioPipeline
from wingman.services.recording_service import RecordingSession
from wingman.services.segment_dispatcher import SegmentDispatcher

from .config import WingmanConfig

logger = logging.getLogger(__name__)


class Server:
    """Wires the recording session, dispatcher and pipeline together."""

    def __init__(self, config_path: str, log_level: str = None):
        self.config = WingmanConfig(config_path)
        # Command line overrides config
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.results: List[PipelineResultEvent] = []
        self.errors: List[PipelineErrorEvent] = []

    def init(self):
        logger.info("Initializing services...")

        sample_rate = self.config.get('audio.sample_rate', 16000)
        chunk_size = self.config.get('audio.chunk_size', 512)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk "
                    f"({sample_rate / chunk_size:.1f} ticks per second)")

        self.publisher = EventPublisher()
        self.pipeline = AudioPipeline.from_config(self.config)
        self.pipeline.file_manager.cleanup_stale()
        self.dispatcher = SegmentDispatcher(self.pipeline, self.publisher)
        self.dispatcher.start()
        self.session = RecordingSession.from_config(self.config, self.dispatcher, self.publisher)

    def on_result(self, event: PipelineResultEvent) -> None:
        self.results.append(event)
        print(f"\n🗣  {event.result.transcript}\n💬 {event.result.response_text}")

    def on_error(self, event: PipelineErrorEvent) -> None:
        self.errors.append(event)
        print(f"\n❌ {event.stage} failed: {event.message}")

    def run_auto(self, duration: int) -> None:
        """Record for ``duration`` seconds, flush, wait for results, stop."""
        pub.subscribe(self.on_result, self.publisher.topic(TOPIC_PIPELINE_RESULT))
        pub.subscribe(self.on_error, self.publisher.topic(TOPIC_PIPELINE_ERROR))
        try:
            session_id = self.session.start_session()
            print(f"🎙️  Recording session {session_id} for {duration}s...")
            time.sleep(duration)
            self.session.manual_flush()
            # The flush completes on the next tick
            time.sleep(0.1)
            print("⏳ Waiting for pending segments...")
            self.dispatcher.wait_until_idle(self.config.get('pipeline.drain_timeout', 120))
        finally:
            self.cleanup()
        print(f"✅ {len(self.results)} responses, {len(self.errors)} errors")

    def run_interactive(self) -> None:
        from wingman.ui.console_screen import ConsoleScreen

        screen = ConsoleScreen(
            self.session,
            self.dispatcher,
            self.publisher,
            reveal_min_step=self.config.get('reveal.min_step', 1),
            reveal_max_step=self.config.get('reveal.max_step', 3),
        )
        try:
            screen.run()
        finally:
            self.cleanup()

    def cleanup(self):
        self.session.stop_session()
        self.dispatcher.shutdown(timeout=self.config.get('pipeline.drain_timeout', 120))


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/wingman.log')
    console_output = config.get('logging.console_output', True)
    
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)
    
    handlers = []
    
    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)
    
    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)
    
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)
    
    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("Wingman starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def main() -> None:
    """Main entry point for Wingman."""
    parser = argparse.ArgumentParser(
        description="Wingman - voice-activated local assistant",
        epilog="Keys: r=Start/stop session, f=Flush segment, q=Quit"
    )
    
    parser.add_argument(
        "--config",
        type=str,
        default="wingman.yaml",
        help="Path to configuration YAML file (default: wingman.yaml)"
    )
    
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )
    
    parser.add_argument(
        "--auto",
        action="store_true",
        help="Run headless: record for the given duration, print responses, then exit"
    )
    
    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Duration in seconds for auto mode recording (default: 10)"
    )
    
    parser.add_argument(
        "--version",
        action="version",
        version=f"Wingman v{__version__}"
    )
    
    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init()
        if args.auto:
            server.run_auto(args.duration)
        else:
            server.run_interactive()
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except CaptureError as e:
        print(f"❌ Microphone error: {e}")
        logging.error(f"Microphone error: {e}")
        sys.exit(2)
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
