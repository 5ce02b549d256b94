import psutil
import logging
from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from .process_utils import ManagedProcess

log = logging.getLogger(__name__)


class TerminationError(RuntimeError):
    """Raised when processes are still alive after being forcefully killed."""

    def __init__(self, pids: List[int]) -> None:
        self.pids = pids
        super().__init__(f"Processes still alive after forced kill: {pids}")


def process_tree(mp: "ManagedProcess") -> List[psutil.Process]:
    """
    Collects a handle's live process together with all of its descendants,
    plus the leftovers of an earlier stop that failed. Descendants must be
    gathered before the parent dies, or they get re-parented.
    """
    tree: List[psutil.Process] = []
    if mp.proc is not None and mp.is_alive():
        tree.append(mp.proc)
        try:
            tree.extend(mp.proc.children(recursive=True))
        except psutil.NoSuchProcess:
            log.warning(f"Process {mp.pid} no longer exists, skipping children retrieval.")
        except psutil.AccessDenied:
            log.warning(f"Access denied listing children of {mp.pid}.")
    tree.extend(proc for proc in mp.leftovers if _is_running(proc))
    return tree


def identify_processes_to_stop(trees: Iterable[List[psutil.Process]]) -> List[psutil.Process]:
    """
    Flattens the process trees of the tracked handles.

    :param trees: One list per handle, as returned by `process_tree`.
    :return: A de-duplicated list of psutil.Process objects, parents first.
    """
    to_stop: List[psutil.Process] = []
    seen = set()
    for tree in trees:
        for proc in tree:
            if proc.pid not in seen:
                seen.add(proc.pid)
                to_stop.append(proc)
    return to_stop


def _terminate_processes(processes: Iterable[psutil.Process]) -> None:
    """Sends SIGTERM (TerminateProcess on Windows) to all processes."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to PID {proc.pid}")
            proc.terminate()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping termination.")
        except psutil.AccessDenied:
            log.warning(f"Access denied terminating process {proc.pid}.")


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing kill...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping forceful kill.")
        except psutil.AccessDenied:
            log.error(f"Access denied killing process {proc.pid}.")


def _is_running(proc: psutil.Process) -> bool:
    """A zombie has exited; only its parent reaping it is outstanding."""
    # is_running() also catches a PID that was reused by an unrelated process.
    if not proc.is_running():
        return False
    try:
        return proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


def _wait(processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
    """Waits up to `timeout` seconds and returns the processes still alive."""
    if not processes:
        return []
    gone, alive = psutil.wait_procs(processes, timeout=timeout)
    for proc in gone:
        log.debug(f"Process {proc.pid} exited with code {getattr(proc, 'returncode', None)}.")
    return [proc for proc in alive if _is_running(proc)]


def graceful_shutdown_sequence(processes: List[psutil.Process], grace_period: float, kill_timeout: float) -> None:
    """
    Terminates the given processes, waits up to `grace_period` seconds, then
    kills whatever is left and waits up to `kill_timeout` seconds for that.

    :param processes: The processes to shut down.
    :param grace_period: Seconds to wait after the graceful request.
    :param kill_timeout: Seconds to wait for killed processes to disappear.
    :raises TerminationError: If processes survive the forced kill.
    """
    _terminate_processes(processes)
    alive = _wait(processes, grace_period)

    # If any processes are still alive after the grace period, forcefully kill them.
    _forceful_kill(alive)
    alive = _wait(alive, kill_timeout)

    if alive:
        pids = [p.pid for p in alive]
        log.critical(f"Processes survived forced kill: {pids}")
        raise TerminationError(pids)
