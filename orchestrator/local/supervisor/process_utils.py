import os
import sys
import time
import psutil
import logging
import subprocess
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from orchestrator.local.supervisor.launch import command_line

if TYPE_CHECKING:
    from .launch import LaunchSpec

log = logging.getLogger(__name__)

#* --- Slot states ---
STATE_RUNNING = "running"
STATE_STOPPING = "stopping"
STATE_TERMINATED = "terminated"


class ManagedProcess:
    """Runtime handle of one started LaunchSpec."""

    def __init__(self, spec: "LaunchSpec", popen: subprocess.Popen) -> None:
        self.spec = spec
        self.popen = popen
        try:
            self.proc: Optional[psutil.Process] = psutil.Process(popen.pid)
        except psutil.NoSuchProcess:
            # Exited before we could attach to it.
            self.proc = None
        self.started_at = time.time()
        self.state = STATE_RUNNING
        # Descendants that survived a failed stop; retried by the next one.
        self.leftovers: List[psutil.Process] = []

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.popen.returncode

    def is_alive(self) -> bool:
        """Non-blocking liveness check. Also reaps the process once it has exited."""
        return self.popen.poll() is None

    def __repr__(self) -> str:
        return f"<ManagedProcess {self.name} pid={self.pid} state={self.state}>"


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific flags that keep terminal Ctrl-C away from the children."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def build_environment(spec: "LaunchSpec") -> Dict[str, str]:
    """The orchestrator's environment with the spec's overrides applied."""
    env = os.environ.copy()
    env.update({str(k): str(v) for k, v in (spec.env or {}).items()})
    return env


def launch_process(spec: "LaunchSpec") -> ManagedProcess:
    """
    Starts a LaunchSpec with stdout/stderr redirected to its raw log files.
    Raw files are created or truncated. Does not wait for the process.

    :param spec: The slot to start.
    :return: The ManagedProcess handle.
    :raises OSError: If the log files cannot be opened or the executable cannot be started.
    """
    log.info(f"Starting process: {spec.name}...")
    try:
        for path in (spec.stdout_path, spec.stderr_path):
            path.parent.mkdir(parents=True, exist_ok=True)

        cwd = str(spec.cwd) if spec.cwd else None
        with open(spec.stdout_path, "wb") as stdout, open(spec.stderr_path, "wb") as stderr:
            p = subprocess.Popen(
                command_line(spec),
                stdout=stdout,
                stderr=stderr,
                stdin=subprocess.DEVNULL,
                cwd=cwd,
                env=build_environment(spec),
                **_get_popen_creation_flags(),
            )
        managed = ManagedProcess(spec, p)
    except (OSError, subprocess.SubprocessError, psutil.Error) as e:
        log.error(f"Failed to start process '{spec.name}': {e}")
        raise

    log.info(f"{spec.name} started successfully with PID: {p.pid}")
    return managed
