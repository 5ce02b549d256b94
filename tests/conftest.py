import sys
import time

import psutil
import pytest

from orchestrator.local.supervisor import LaunchSpec, ProcessManager

SLEEPER = "import time; time.sleep(60)"


def _wait_for(predicate, timeout=10.0, interval=0.05):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def logs_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def make_spec(tmp_path, logs_dir):
    """Builds LaunchSpecs that run a Python snippet in place of a game client."""
    def _make(name="game1", code=SLEEPER, env=None, executable=None):
        return LaunchSpec(
            name=name,
            executable=executable or sys.executable,
            args=("-u", "-c", code),
            env=env or {},
            stdout_path=logs_dir / f"{name}_raw.log",
            stderr_path=logs_dir / f"{name}_error_raw.log",
            cwd=tmp_path,
            title=f"Test {name}",
        )
    return _make


@pytest.fixture
def manager():
    pm = ProcessManager(grace_period=2.0, kill_timeout=3.0)
    yield pm
    # Never leave test children behind, whatever the test did.
    for mp in pm.processes():
        if mp.is_alive():
            mp.popen.kill()
            mp.popen.wait(timeout=5)
        for proc in mp.leftovers:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
