import psutil
import logging
import threading
import subprocess
from typing import Dict, Iterable, List, Optional, Set, Tuple

from orchestrator.local import app_globals
from orchestrator.local.supervisor import process_utils, shutdown
from orchestrator.local.supervisor.launch import LaunchSpec
from orchestrator.local.supervisor.process_utils import ManagedProcess
from orchestrator.local.supervisor.window import WindowRenamer

log = logging.getLogger(__name__)

SpawnFailures = List[Tuple[LaunchSpec, Exception]]


class ProcessManager:
    """
    Manages the lifecycle of the supervised game processes.

    Holds the ordered collection of running ManagedProcess handles (start
    order). Every access to that collection goes through `self.lock`.
    """

    def __init__(
        self,
        grace_period: Optional[float] = None,
        kill_timeout: Optional[float] = None,
        window_renamer: Optional[WindowRenamer] = None,
    ) -> None:
        """
        :param grace_period: Seconds between the terminate request and the forced kill.
        :param kill_timeout: Seconds to wait for killed processes to disappear.
        :param window_renamer: Optional collaborator that renames game windows after start.
        """
        self.grace_period = app_globals.GRACEFUL_SHUTDOWN_TIMEOUT if grace_period is None else grace_period
        self.kill_timeout = app_globals.FORCE_KILL_TIMEOUT if kill_timeout is None else kill_timeout
        self.window_renamer = window_renamer
        self.running_procs: Dict[str, ManagedProcess] = {}
        self.lock = threading.RLock()

    def start_all(self, specs: Iterable[LaunchSpec]) -> SpawnFailures:
        """
        Starts every LaunchSpec. A spec that fails to start does not prevent
        the others from starting.

        :param specs: The slots to start, in order.
        :return: A list of (spec, exception) for the slots that failed.
        """
        failures: SpawnFailures = []
        with self.lock:
            for spec in specs:
                existing = self.running_procs.get(spec.name)
                if existing is not None and existing.is_alive():
                    log.warning(f"Process '{spec.name}' is already running (PID {existing.pid}). Skipping.")
                    continue

                try:
                    managed = process_utils.launch_process(spec)
                except (OSError, subprocess.SubprocessError, psutil.Error) as e:
                    failures.append((spec, e))
                    continue

                if existing is not None:
                    managed.leftovers = existing.leftovers
                self.running_procs[spec.name] = managed
                self._rename_window(managed)

            pids = " ".join(str(mp.pid) for mp in self.running_procs.values())
        log.info(f"Started processes with PIDs: {pids}")
        if failures:
            log.error(f"{len(failures)} process(es) failed to start: {[spec.name for spec, _ in failures]}")
        return failures

    def _rename_window(self, managed: ManagedProcess) -> None:
        if self.window_renamer is None:
            return
        try:
            self.window_renamer.schedule(managed)
        except Exception as e:
            log.warning(f"Could not schedule window rename for {managed.name}: {e}")

    def stop_all(self) -> None:
        """
        Stops all tracked processes: terminate, wait for the grace period,
        then kill whatever is left. Calling it with nothing tracked is a no-op.

        :raises shutdown.TerminationError: If processes survive the forced kill.
            Only the survivors stay tracked.
        """
        with self.lock:
            if not self.running_procs:
                log.debug("No running processes to stop.")
                return

            if self.window_renamer is not None:
                self.window_renamer.cancel_pending()

            managed = list(self.running_procs.values())
            for mp in managed:
                mp.state = process_utils.STATE_STOPPING

            log.info(f"Stopping processes with PIDs: {' '.join(str(mp.pid) for mp in managed)}")
            trees = {mp.name: shutdown.process_tree(mp) for mp in managed}
            procs_to_stop = shutdown.identify_processes_to_stop(trees.values())
            survivors: Set[int] = set()
            try:
                if procs_to_stop:
                    shutdown.graceful_shutdown_sequence(procs_to_stop, self.grace_period, self.kill_timeout)
            except shutdown.TerminationError as e:
                survivors.update(e.pids)
                raise
            finally:
                self._forget_terminated(managed, trees, survivors)

            log.info("All processes stopped.")

    def _forget_terminated(
        self,
        managed: List[ManagedProcess],
        trees: Dict[str, List[psutil.Process]],
        survivors: Set[int],
    ) -> None:
        """
        Drops every handle whose process tree is gone. A handle stays tracked
        while its own process or any of its descendants survived, so the next
        `stop_all` retries them.
        """
        for mp in managed:
            mp.leftovers = [proc for proc in trees.get(mp.name, ()) if proc.pid in survivors and proc.pid != mp.pid]
            if mp.is_alive():
                continue
            if mp.leftovers:
                log.error(f"{mp.name} exited but descendants {[p.pid for p in mp.leftovers]} survived; keeping it tracked.")
                continue
            mp.state = process_utils.STATE_TERMINATED
            log.debug(f"{mp.name} (PID {mp.pid}) terminated with return code {mp.returncode}.")
            self.running_procs.pop(mp.name, None)

    def is_alive(self, managed: ManagedProcess) -> bool:
        """Non-blocking liveness check for one handle."""
        with self.lock:
            return managed.is_alive()

    def processes(self) -> List[ManagedProcess]:
        """A snapshot of the tracked handles, in start order."""
        with self.lock:
            return list(self.running_procs.values())

    def alive_count(self) -> int:
        with self.lock:
            return sum(1 for mp in self.running_procs.values() if mp.is_alive())
