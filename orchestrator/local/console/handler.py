import os
import sys
import codecs
import logging
from typing import Any, Optional, TextIO

# --- Platform-specific non-blocking keypress detection ---
try:
    import msvcrt
    def is_keypress_waiting(stream: TextIO) -> bool:
        return msvcrt.kbhit()
    def read_key(stream: TextIO, decoder: Any) -> Optional[str]:
        return msvcrt.getwch()
    termios = tty = None
except ImportError:
    import select
    import termios
    import tty
    def is_keypress_waiting(stream: TextIO) -> bool:
        readable, _, _ = select.select([stream], [], [], 0)
        return bool(readable)
    def read_key(stream: TextIO, decoder: Any) -> Optional[str]:
        """
        Reads one character, byte by byte, straight from the descriptor so
        Python's buffer never hides pending keys.

        :return: The character, "" if only part of a multi-byte character has
                 arrived so far, or None at end of input.
        """
        while True:
            data = os.read(stream.fileno(), 1)
            if not data:
                return None
            key = decoder.decode(data)
            if key:
                return key
            if not is_keypress_waiting(stream):
                return ""

log = logging.getLogger(__name__)

SEPARATOR = "-" * 24


class ConsoleKeyReader:
    """
    Reads single keypresses from the console without blocking.

    Used as a context manager: on POSIX terminals it switches stdin to cbreak
    mode (keys arrive without Enter, Ctrl-C still raises SIGINT) and restores
    the previous mode on exit.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdin
        self._old_settings = None
        self._eof = False
        # Undecodable bytes become U+FFFD and are reported as an invalid key.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def _is_tty(self) -> bool:
        try:
            return self.stream.isatty()
        except (AttributeError, ValueError):
            return False

    def __enter__(self) -> "ConsoleKeyReader":
        if termios is not None and self._is_tty():
            fd = self.stream.fileno()
            self._old_settings = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        return self

    def __exit__(self, *exc_info) -> None:
        if self._old_settings is not None:
            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._old_settings)
            self._old_settings = None

    def poll(self) -> Optional[str]:
        """Returns the next key if one is waiting, else None."""
        if self._eof:
            return None
        try:
            if not is_keypress_waiting(self.stream):
                return None
            key = read_key(self.stream, self._decoder)
        except (OSError, ValueError) as e:
            log.warning(f"Console input unavailable, key polling disabled: {e}")
            self._eof = True
            return None
        if key is None:
            log.debug("End of console input reached. Only signals can stop the orchestrator now.")
            self._eof = True
            return None
        # "" while the rest of a multi-byte character is still on its way.
        return key or None


def show_menu(status: str, game_count: int, clear: bool = False) -> None:
    """Prints the status banner and the list of commands."""
    if clear and sys.stdout.isatty():
        print("\033[2J\033[H", end="")
    print(f"{game_count} Game Orchestrator")
    print(SEPARATOR)
    print(f"Current status: {status}")
    print(SEPARATOR)
    print("Enter Q to quit")
    print("Enter R to restart the games.")
    print("Enter U to update logs.")
    print()
    sys.stdout.flush()
