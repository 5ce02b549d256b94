import time
import signal
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from orchestrator.local import app_globals
from orchestrator.local.console.handler import ConsoleKeyReader, show_menu
from orchestrator.local.supervisor import LaunchSpec, ProcessManager, TerminationError, log_pairs
from orchestrator.log.pump import LogPump, discard_logs

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1

# Signals routed to the same cleanup path as the quit command.
SHUTDOWN_SIGNALS = [
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP", "SIGBREAK")
    if hasattr(signal, name)
]


class SupervisorState(str, Enum):
    RUNNING = "Running"
    RESTARTING = "Restarting"
    CLOSING = "Closing"


class CommandLoop:
    """
    The interactive control loop.

    Polls for a delivered termination signal, then for a keypress, and
    otherwise sleeps for `poll_interval`. A termination signal and the Q
    command go through the same `shutdown` path.
    """

    def __init__(
        self,
        manager: ProcessManager,
        pump: LogPump,
        specs: List[LaunchSpec],
        key_reader: Optional[Any] = None,
        poll_interval: Optional[float] = None,
        restart_delay: Optional[float] = None,
        discard_logs_on_restart: Optional[bool] = None,
        clear_screen: Optional[bool] = None,
    ) -> None:
        self.manager = manager
        self.pump = pump
        self.specs = list(specs)
        self.key_reader = key_reader if key_reader is not None else ConsoleKeyReader()
        self.poll_interval = app_globals.COMMAND_POLL_INTERVAL if poll_interval is None else poll_interval
        self.restart_delay = app_globals.RESTART_DELAY if restart_delay is None else restart_delay
        self.discard_logs_on_restart = (
            app_globals.DISCARD_RAW_LOGS_ON_RESTART if discard_logs_on_restart is None else discard_logs_on_restart
        )
        self.clear_screen = app_globals.CLEAR_SCREEN if clear_screen is None else clear_screen

        self.status = SupervisorState.RUNNING
        self.exit_code = EXIT_OK
        # Plain flag: written from a signal handler, so no locks may be involved.
        self.shutdown_requested = False
        self.received_signal: Optional[int] = None
        self._closed = False

    #* --- Signals ---
    def request_shutdown(self, signum: Optional[int] = None, frame: Any = None) -> None:
        """Signal handler. Only flags the request; the loop acts on it at its next tick."""
        self.received_signal = signum
        self.shutdown_requested = True

    def _pause(self, seconds: float) -> None:
        """Sleeps up to `seconds` in short slices, returning early once shutdown is requested."""
        deadline = time.monotonic() + seconds
        step = max(self.poll_interval, 0.01)
        while not self.shutdown_requested:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(step, remaining))

    def install_signal_handlers(self) -> Dict[int, Any]:
        """Routes termination signals to `request_shutdown`. Returns the previous handlers."""
        previous = {}
        if threading.current_thread() is not threading.main_thread():
            log.warning("Command loop is not on the main thread; signal handlers not installed.")
            return previous
        for sig in SHUTDOWN_SIGNALS:
            try:
                previous[sig] = signal.signal(sig, self.request_shutdown)
            except (OSError, ValueError) as e:
                log.debug(f"Could not install handler for signal {sig}: {e}")
        return previous

    @staticmethod
    def restore_signal_handlers(previous: Dict[int, Any]) -> None:
        for sig, handler in previous.items():
            # None means the handler was not installed from Python; nothing to restore.
            if handler is not None:
                signal.signal(sig, handler)

    #* --- Display ---
    def render(self) -> None:
        show_menu(self.status.value, len(self.specs), clear=self.clear_screen)

    def _set_status(self, status: SupervisorState) -> None:
        self.status = status
        log.debug(f"Status changed to {status.value}.")
        self.render()

    #* --- Actions ---
    def _start_processes(self) -> None:
        failures = self.manager.start_all(self.specs)
        for spec, error in failures:
            print(f"Failed to start {spec.name}: {error}")

    def start(self) -> None:
        """Shows the banner, starts the games and the log pump."""
        self.render()
        self._start_processes()
        self.pump.start()

    def _report_fatal(self, error: TerminationError) -> None:
        log.critical(f"Could not stop all processes: {error}")
        print(f"FATAL: processes could not be stopped: {', '.join(map(str, error.pids))}")
        self.exit_code = EXIT_FATAL

    def restart(self) -> bool:
        """Stops every game and starts them again."""
        if self.status is not SupervisorState.RUNNING:
            log.info(f"Ignoring restart while {self.status.value}.")
            return False

        self._set_status(SupervisorState.RESTARTING)
        print("Restarting processes...")
        try:
            self.manager.stop_all()
        except TerminationError as e:
            self._report_fatal(e)
            return self.shutdown()

        if self.discard_logs_on_restart:
            discard_logs(pair for spec in self.specs for pair in log_pairs(spec))

        self._pause(self.restart_delay)
        if self.shutdown_requested:
            log.info(f"Termination signal {self.received_signal} received during restart. Shutting down.")
            return self.shutdown()

        self._set_status(SupervisorState.RUNNING)
        self._start_processes()
        return False

    def update_logs(self) -> bool:
        """Runs a log pass right away, outside the pump's schedule."""
        print("Updating logs...")
        self.pump.pump_once()
        print("Logs updated.")
        return False

    def shutdown(self) -> bool:
        """Stops every game, writes the final filtered logs and ends the loop."""
        if self._closed:
            return True
        self._closed = True

        self._set_status(SupervisorState.CLOSING)
        print("Cleaning up...")
        try:
            self.manager.stop_all()
        except TerminationError as e:
            self._report_fatal(e)
        finally:
            self.pump.stop(flush=True)
        print("Logs updated.")
        return True

    def execute_command(self, key: str) -> bool:
        """
        Executes a single-key command from the operator.

        :param key: The key pressed. Case-insensitive; whitespace is ignored.
        :return: True if the loop should exit, False otherwise.
        """
        command = key.strip().lower()
        if not command:
            return False

        command_map: Dict[str, Callable[[], bool]] = {
            "q": self.shutdown,
            "r": self.restart,
            "u": self.update_logs,
        }
        action = command_map.get(command)
        if action is None:
            log.debug(f"Invalid command key: {key!r}")
            print(f"Invalid command '{key}'. Please enter Q, R, or U.")
            return False

        log.debug(f"Executing command: {command}")
        return bool(action())

    #* --- Main loop ---
    def run(self) -> int:
        """
        Starts everything and polls until quit or a termination signal.

        :return: The process exit code (0 on clean quit, 1 if processes could not be stopped).
        """
        previous_handlers = self.install_signal_handlers()
        try:
            with self.key_reader:
                self.start()
                while True:
                    if self.shutdown_requested:
                        log.info(f"Termination signal {self.received_signal} received. Shutting down.")
                        self.shutdown()
                        break

                    key = self.key_reader.poll()
                    if key is None:
                        time.sleep(self.poll_interval)
                        continue

                    if self.execute_command(key):
                        break
        finally:
            if not self._closed:
                # Unexpected error: still stop the games rather than orphan them.
                self.shutdown()
            self.restore_signal_handlers(previous_handlers)
        return self.exit_code
