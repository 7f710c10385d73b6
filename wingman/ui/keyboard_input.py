"""Single-key session commands read from the terminal on a background thread."""

import sys
import threading
from typing import Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)

POLL_SECONDS = 0.05

# Raw key -> command key understood by the screen
KEY_ALIASES: Dict[str, str] = {
    'r': 'r',
    'f': 'f',
    ' ': 'f',
    'q': 'q',
    '\x03': 'q',  # Ctrl-C arrives as a byte in cbreak mode
    '\x1b': 'q',
}


def normalize_key(raw: str) -> Optional[str]:
    """Map a raw keypress to a command key; None for keys with no command."""
    if not raw:
        return None
    return KEY_ALIASES.get(raw.lower())


class KeyboardInputHandler:
    """Polls stdin for keypresses and forwards recognised commands.

    The callback returns False to stop the handler (quit).
    """

    def __init__(self, on_command: Callable[[str], bool]):
        self.on_command = on_command
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.name = "KeyboardInputThread"
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def dispatch(self, raw: str) -> bool:
        """Forward one raw key; returns False once the handler should stop."""
        command = normalize_key(raw)
        if command is None:
            logger.debug(f"Ignoring key {raw!r}")
            return True
        if not self.on_command(command):
            self.running = False
            return False
        return True

    def _run(self) -> None:
        if sys.platform == "win32":
            self._poll_windows()
        else:
            self._poll_unix()
        self.running = False
        logger.info("Keyboard input loop ended")

    def _poll_windows(self) -> None:
        import msvcrt
        import time

        while self.running:
            if msvcrt.kbhit():
                raw = msvcrt.getch().decode('utf-8', errors='ignore')
                if not self.dispatch(raw):
                    return
            else:
                time.sleep(POLL_SECONDS)

    def _poll_unix(self) -> None:
        import select
        import termios
        import tty

        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        try:
            # cbreak for the whole loop so keys typed between polls are not echoed or lost
            tty.setcbreak(fd)
            while self.running:
                readable, _, _ = select.select([sys.stdin], [], [], POLL_SECONDS)
                if readable and not self.dispatch(sys.stdin.read(1)):
                    return
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class LineInputHandler(KeyboardInputHandler):
    """Line-based fallback when stdin is not a terminal; an empty line toggles recording."""

    def _run(self) -> None:
        while self.running:
            try:
                line = input("> ").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not self.dispatch(line[:1] or 'r'):
                break
        self.running = False


def create_input_handler(on_command: Callable[[str], bool]) -> KeyboardInputHandler:
    """Raw key handler on an interactive terminal, line-based otherwise."""
    if sys.platform != "win32" and not sys.stdin.isatty():
        logger.warning("stdin is not a terminal, using line-based input")
        return LineInputHandler(on_command)
    return KeyboardInputHandler(on_command)
