import os
import sys
import time
import signal

import pytest

from orchestrator import settings
from orchestrator.local.console import EXIT_FATAL, EXIT_OK, CommandLoop, ConsoleKeyReader, SupervisorState
from orchestrator.local.supervisor import TerminationError, log_pairs
from orchestrator.log.pump import LogPump, filtered_path_for

GAME = (
    "import time\n"
    "print('hello')\n"
    "print('wgpu_hal::auxil::dxgi::exception: noise')\n"
    "print('ready')\n"
    "time.sleep(60)\n"
)


class ScriptedKeyReader:
    """
    Stands in for the console. Each step is either a key to return or a
    callable; a callable is polled (returning no key) until it is truthy.
    Once the script is exhausted it idles, and after `idle_timeout` seconds
    it presses Q so a broken loop cannot hang the test run.
    """

    def __init__(self, steps, idle_timeout=15.0):
        self.steps = list(steps)
        self.idle_timeout = idle_timeout
        self._idle_since = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        pass

    def poll(self):
        if self.steps:
            step = self.steps[0]
            if callable(step):
                if step():
                    self.steps.pop(0)
                return None
            self.steps.pop(0)
            return step
        if self._idle_since is None:
            self._idle_since = time.monotonic()
        if time.monotonic() - self._idle_since > self.idle_timeout:
            return "q"
        return None


@pytest.fixture
def specs(make_spec):
    return [make_spec("game1", code=GAME), make_spec("game2", code=GAME)]


@pytest.fixture
def make_loop(specs, manager):
    def _make(steps=(), pump_interval=0.05, **kwargs):
        pairs = [pair for spec in specs for pair in log_pairs(spec)]
        pump = LogPump(pairs, settings.LOG_FILTER_PATTERNS, interval=pump_interval)
        options = dict(poll_interval=0.01, restart_delay=0, discard_logs_on_restart=False, clear_screen=False)
        options.update(kwargs)
        return CommandLoop(manager, pump, specs, key_reader=ScriptedKeyReader(steps), **options)
    return _make


def _games_ready(specs):
    def check():
        return all(s.stdout_path.exists() and "ready" in s.stdout_path.read_text() for s in specs)
    return check


def test_quit_stops_games_and_writes_filtered_logs(make_loop, specs, manager):
    loop = make_loop([_games_ready(specs), "q"], pump_interval=60)

    assert loop.run() == EXIT_OK

    assert manager.processes() == []
    assert loop.status is SupervisorState.CLOSING
    assert not loop.pump.is_running
    for spec in specs:
        assert filtered_path_for(spec.stdout_path).read_text() == "hello\nready\n"
        assert filtered_path_for(spec.stderr_path).read_text() == ""


def test_commands_are_case_insensitive(make_loop, manager):
    loop = make_loop(["Q"])

    assert loop.run() == EXIT_OK
    assert manager.processes() == []


def test_restart_cycles_status_and_replaces_processes(make_loop, manager, monkeypatch):
    loop = make_loop()
    statuses = []
    monkeypatch.setattr(loop, "render", lambda: statuses.append(loop.status))
    loop.start()
    before = manager.processes()

    assert loop.execute_command("r") is False

    after = manager.processes()
    assert statuses == [SupervisorState.RUNNING, SupervisorState.RESTARTING, SupervisorState.RUNNING]
    assert [mp.name for mp in after] == ["game1", "game2"]
    assert not set(map(id, before)) & set(map(id, after))
    assert not any(mp.is_alive() for mp in before)
    assert all(mp.is_alive() for mp in after)

    assert loop.execute_command("q") is True
    assert manager.processes() == []


def test_restart_is_ignored_while_closing(make_loop, manager):
    loop = make_loop()
    loop.start()
    loop.shutdown()

    assert loop.execute_command("r") is False
    assert loop.status is SupervisorState.CLOSING
    assert manager.processes() == []


def test_restart_can_discard_stale_logs(make_loop, specs, wait_for):
    loop = make_loop(pump_interval=60, discard_logs_on_restart=True)
    loop.start()
    assert wait_for(_games_ready(specs))
    loop.execute_command("u")
    filtered = filtered_path_for(specs[0].stdout_path)
    assert filtered.exists()

    loop.execute_command("r")

    assert not filtered.exists()
    loop.shutdown()


def test_update_command_runs_a_pass_immediately(make_loop, specs, wait_for, capsys):
    loop = make_loop(pump_interval=60)
    loop.start()
    assert wait_for(_games_ready(specs))

    assert loop.execute_command("u") is False

    assert filtered_path_for(specs[0].stdout_path).read_text() == "hello\nready\n"
    assert "Logs updated." in capsys.readouterr().out
    assert all(mp.is_alive() for mp in loop.manager.processes())
    loop.shutdown()


def test_invalid_command_is_reported_and_changes_nothing(make_loop, manager, capsys):
    loop = make_loop()
    loop.start()
    before = manager.processes()

    assert loop.execute_command("x") is False

    assert "Invalid command 'x'" in capsys.readouterr().out
    assert loop.status is SupervisorState.RUNNING
    assert manager.processes() == before
    loop.shutdown()


def test_whitespace_keys_are_ignored(make_loop, capsys):
    loop = make_loop()
    assert loop.execute_command("\n") is False
    assert loop.execute_command(" ") is False
    assert "Invalid" not in capsys.readouterr().out


def test_spawn_failures_are_reported(make_spec, manager, tmp_path, capsys):
    broken = make_spec("game1", executable=str(tmp_path / "no-such-game"))
    pump = LogPump([], settings.LOG_FILTER_PATTERNS, interval=60)
    loop = CommandLoop(manager, pump, [broken], key_reader=ScriptedKeyReader(["q"]),
                       poll_interval=0.01, clear_screen=False)

    assert loop.run() == EXIT_OK
    assert "Failed to start game1" in capsys.readouterr().out


def test_banner_shows_status_and_commands(make_loop, capsys):
    loop = make_loop()
    loop.render()

    out = capsys.readouterr().out
    assert "2 Game Orchestrator" in out
    assert "Current status: Running" in out
    assert "Enter Q to quit" in out


@pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX signal delivery")
def test_termination_signal_matches_quit(make_loop, specs, manager):
    def send_sigterm():
        os.kill(os.getpid(), signal.SIGTERM)
        return True

    previous = signal.getsignal(signal.SIGTERM)
    loop = make_loop([_games_ready(specs), send_sigterm], pump_interval=60)

    assert loop.run() == EXIT_OK

    assert loop.received_signal == signal.SIGTERM
    assert loop.status is SupervisorState.CLOSING
    assert manager.processes() == []
    for spec in specs:
        assert filtered_path_for(spec.stdout_path).read_text() == "hello\nready\n"
    assert signal.getsignal(signal.SIGTERM) == previous


def test_fatal_termination_failure_sets_exit_code(capsys):
    class StuckManager:
        def start_all(self, specs):
            return []

        def stop_all(self):
            raise TerminationError([4242])

    pump = LogPump([], settings.LOG_FILTER_PATTERNS, interval=60)
    loop = CommandLoop(StuckManager(), pump, [], key_reader=ScriptedKeyReader(["q"]),
                       poll_interval=0.01, clear_screen=False)

    assert loop.run() == EXIT_FATAL
    assert "FATAL" in capsys.readouterr().out
    assert not pump.is_running


def test_fatal_failure_during_restart_closes_the_loop():
    class StuckManager:
        def __init__(self):
            self.stop_calls = 0

        def start_all(self, specs):
            return []

        def stop_all(self):
            self.stop_calls += 1
            raise TerminationError([4242])

    stuck = StuckManager()
    pump = LogPump([], settings.LOG_FILTER_PATTERNS, interval=60)
    loop = CommandLoop(stuck, pump, [], key_reader=ScriptedKeyReader(["r"]),
                       poll_interval=0.01, restart_delay=0, clear_screen=False)

    assert loop.run() == EXIT_FATAL
    assert loop.status is SupervisorState.CLOSING
    assert stuck.stop_calls == 2


@pytest.mark.skipif(sys.platform == "win32", reason="relies on SIGALRM")
def test_signal_during_restart_pause_shuts_down_instead_of_relaunching(make_loop, manager, monkeypatch):
    loop = make_loop(restart_delay=5)
    loop.start()
    start_calls = []
    real_start_all = manager.start_all
    monkeypatch.setattr(manager, "start_all", lambda specs: start_calls.append(specs) or real_start_all(specs))

    previous = signal.signal(signal.SIGALRM, loop.request_shutdown)
    try:
        signal.setitimer(signal.ITIMER_REAL, 0.3)
        began = time.monotonic()
        assert loop.execute_command("r") is True
        elapsed = time.monotonic() - began
    finally:
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, previous)

    assert elapsed < 5
    assert loop.received_signal == signal.SIGALRM
    assert start_calls == []
    assert loop.status is SupervisorState.CLOSING
    assert manager.processes() == []
    assert not loop.pump.is_running


def test_shutdown_requested_while_stopping_skips_the_relaunch(make_loop, manager, monkeypatch):
    loop = make_loop()
    loop.start()
    start_calls = []
    real_stop_all = manager.stop_all
    real_start_all = manager.start_all

    def stop_then_signal():
        real_stop_all()
        loop.request_shutdown(signal.SIGTERM)

    monkeypatch.setattr(manager, "stop_all", stop_then_signal)
    monkeypatch.setattr(manager, "start_all", lambda specs: start_calls.append(specs) or real_start_all(specs))

    assert loop.execute_command("r") is True

    assert start_calls == []
    assert loop.status is SupervisorState.CLOSING
    assert manager.processes() == []


def test_request_shutdown_only_sets_a_flag():
    pump = LogPump([], settings.LOG_FILTER_PATTERNS, interval=60)
    loop = CommandLoop(object(), pump, [], key_reader=ScriptedKeyReader([]), poll_interval=0.01, clear_screen=False)
    assert loop.shutdown_requested is False

    loop.request_shutdown(signal.SIGINT)

    assert loop.shutdown_requested is True
    assert loop.received_signal == signal.SIGINT
    began = time.monotonic()
    loop._pause(5)
    assert time.monotonic() - began < 1


@pytest.mark.skipif(sys.platform == "win32", reason="reads keys from a POSIX pipe")
def test_non_ascii_key_is_invalid_and_quit_still_works(make_loop, manager, capsys):
    r, w = os.pipe()
    stream = os.fdopen(r, "r")
    try:
        loop = make_loop()
        loop.key_reader = ConsoleKeyReader(stream)
        os.write(w, "é".encode("utf-8") + b"q")

        assert loop.run() == EXIT_OK
    finally:
        os.close(w)
        stream.close()

    assert "Invalid command 'é'" in capsys.readouterr().out
    assert manager.processes() == []
