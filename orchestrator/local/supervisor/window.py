import sys
import shutil
import logging
import threading
import subprocess
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .process_utils import ManagedProcess

log = logging.getLogger(__name__)

XDOTOOL_TIMEOUT = 5  # seconds per xdotool call


class WindowRenamer:
    """
    Renames a game's window to its slot title once the window has appeared.

    Runs entirely in background threads through `xdotool`. Any failure is
    logged and otherwise ignored; it never affects the game process.
    """

    def __init__(self, delay: float = 2.0, xdotool: Optional[str] = None) -> None:
        """
        :param delay: Seconds to wait after start for the window to appear.
        :param xdotool: Path to xdotool. Looked up on PATH when not given.
        """
        self.delay = delay
        self.xdotool = xdotool or shutil.which("xdotool")
        self._cancel = threading.Event()

    @property
    def available(self) -> bool:
        return sys.platform != "win32" and self.xdotool is not None

    def _run(self, *args: str) -> Optional[str]:
        """Runs one xdotool command. Returns stdout, or None on failure."""
        try:
            result = subprocess.run(
                [self.xdotool, *args], capture_output=True, text=True,
                timeout=XDOTOOL_TIMEOUT, check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.warning(f"xdotool {args[0]} failed: {e}")
            return None
        if result.returncode != 0:
            log.debug(f"xdotool {' '.join(args)} exited with {result.returncode}: {result.stderr.strip()}")
            return None
        return result.stdout

    def find_window(self, pid: int) -> Optional[str]:
        """Returns the first window ID owned by `pid`, if any."""
        output = self._run("search", "--pid", str(pid))
        if not output:
            return None
        lines = output.split()
        return lines[0] if lines else None

    def rename(self, managed: "ManagedProcess") -> bool:
        """Renames the process's window now. Returns True on success."""
        title = managed.spec.title
        if not title or not managed.is_alive():
            return False
        window_id = self.find_window(managed.pid)
        if window_id is None:
            log.debug(f"No window found for {managed.name} (PID {managed.pid}).")
            return False
        if self._run("set_window", "--name", title, window_id) is None:
            return False
        log.info(f"Renamed window {window_id} of {managed.name} to '{title}'.")
        return True

    def _delayed_rename(self, managed: "ManagedProcess") -> None:
        if self._cancel.wait(self.delay):
            return
        try:
            self.rename(managed)
        except Exception as e:
            log.warning(f"Window rename for {managed.name} failed: {e}")

    def schedule(self, managed: "ManagedProcess") -> None:
        """Renames the window of `managed` after the configured delay, in the background."""
        if not self.available:
            log.debug("xdotool not available, skipping window rename.")
            return
        self._cancel.clear()
        threading.Thread(
            target=self._delayed_rename, args=(managed,),
            daemon=True, name=f"WindowRename-{managed.name}",
        ).start()

    def cancel_pending(self) -> None:
        """Drops renames that are still waiting for their delay."""
        self._cancel.set()
