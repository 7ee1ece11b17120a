import logging
import os
import signal
from types import SimpleNamespace

import pytest

from procwatch import settings
from procwatch.local import config
from procwatch.local.console import TerminalState
from procwatch.local.supervisor import KillRequested, RestartRequested, Supervisor
from procwatch.local.supervisor import process_utils
from procwatch.local.supervisor.process_utils import ChildExited, ChildProcess
from procwatch.local.supervisor.watcher import FsEvent


@pytest.fixture
def make_supervisor(make_options, fakes):
    def _make(*flags):
        options = make_options(*flags)
        return Supervisor(
            options,
            child=fakes.child,
            terminal=fakes.terminal,
            signals=fakes.signals,
            watcher=fakes.watcher,
        )
    return _make


def fs_event(name, kind="modified"):
    return FsEvent(os.path.abspath(name), kind)


def test_file_change_then_kill_signal(make_supervisor, fakes):
    sup = make_supervisor("-e", "go")
    sup.on_fs_event(fs_event("main.go"))
    sup.kill(signal.SIGTERM)

    assert sup.run() == signal.SIGTERM
    assert fakes.recorder.calls == [
        "restart",
        "restart",
        ("broadcast", signal.SIGTERM),
        "terminal.deinit",
        "watcher.stop",
        "signals.deinit",
        "child.deinit",
    ]


def test_rejected_paths_do_not_restart(make_supervisor, fakes):
    sup = make_supervisor("-e", "go", "-i", "vendor")
    sup.on_fs_event(fs_event("README.md"))
    sup.on_fs_event(fs_event(os.path.join("vendor", "lib.go")))
    sup.kill(signal.SIGINT)

    sup.run()

    assert fakes.recorder.calls.count("restart") == 1


def test_postpone_skips_the_first_run(make_supervisor, fakes):
    sup = make_supervisor("-p")
    sup.kill(signal.SIGTERM)

    sup.run()

    assert "restart" not in fakes.recorder.calls


def test_restart_request_restarts_the_child(make_supervisor, fakes):
    sup = make_supervisor("-p")
    sup.restart("^R")
    sup.kill(signal.SIGTERM)

    sup.run()

    assert fakes.recorder.calls[0] == "restart"


def test_lazy_mode_ignores_changes_while_running(make_supervisor, fakes):
    sup = make_supervisor("-l", "-e", "go")
    event = fs_event("main.go")

    fakes.child.running = True
    assert not sup.should_restart(event)

    fakes.child.running = False
    assert sup.should_restart(event)
    assert not sup.should_restart(None)


def test_stale_exit_is_ignored(make_supervisor, fakes, caplog):
    caplog.set_level(logging.DEBUG)
    sup = make_supervisor("-p")
    fakes.child.current = SimpleNamespace(pid=1)
    stale = SimpleNamespace(pid=2)

    sup.events.put(ChildExited(stale, 1, 0.5))
    sup.events.put(ChildExited(fakes.child.current, 2, 1.5))
    sup.kill(signal.SIGTERM)
    sup.run()

    errors = [rec.getMessage() for rec in caplog.records if rec.getMessage().startswith("error after")]
    assert errors == ["error after 1.500s: exit code 2"]
    assert fakes.child.current is None


@pytest.mark.parametrize("flags, returncode, expected", [
    ((), 1, "error after 0.250s: exit code 1"),
    ((), -signal.SIGTERM, "error after 0.250s: terminated by SIGTERM"),
    (("-q",), 1, None),
    (("-q", "-v"), 3, "error after 0.250s: exit code 3"),
    ((), 0, None),
    (("-v",), 0, "done in 0.250s"),
])
def test_exit_reporting(make_supervisor, fakes, caplog, flags, returncode, expected):
    caplog.set_level(logging.INFO)
    sup = make_supervisor("-p", *flags)
    fakes.child.current = SimpleNamespace(pid=1)

    sup._on_child_exit(ChildExited(fakes.child.current, returncode, 0.25))

    messages = [rec.getMessage() for rec in caplog.records]
    if expected is None:
        assert not any(msg.startswith(("error after", "done in")) for msg in messages)
    else:
        assert expected in messages


def test_prefix_and_suffix_markers(make_supervisor, fakes, capsys):
    sup = make_supervisor("-p", "-P", "==> restart", "-S", "<== done")
    sup.restart()
    sup.kill(signal.SIGTERM)
    sup.run()

    fakes.child.current = SimpleNamespace(pid=5)
    sup._on_child_exit(ChildExited(fakes.child.current, 0, 0.1))

    assert capsys.readouterr().err == "==> restart\n<== done\n"


def test_echo_mode_requires_active_terminal(make_supervisor, fakes):
    sup = make_supervisor("--echo", "preserve")
    assert sup.echo_mode() == settings.ECHO_NONE

    fakes.terminal.active = True
    assert sup.echo_mode() == settings.ECHO_PRESERVE


def test_init_without_raw_terminal_starts_no_reader(make_supervisor, fakes):
    sup = make_supervisor()
    sup.init()

    assert fakes.recorder.calls == ["terminal.init", "signals.init", "watcher.start"]
    assert sup.stdio is None


def test_teardown_runs_once(make_supervisor, fakes):
    sup = make_supervisor()
    sup.teardown()
    sup.teardown()

    assert fakes.recorder.calls == ["terminal.deinit", "watcher.stop", "signals.deinit", "child.deinit"]


def test_teardown_continues_after_failing_step(make_supervisor, fakes, caplog):
    def broken_stop():
        raise RuntimeError("observer is wedged")

    fakes.watcher.stop = broken_stop
    sup = make_supervisor()
    sup.teardown()

    assert fakes.recorder.calls == ["terminal.deinit", "signals.deinit", "child.deinit"]
    assert "Failed to stop file watcher: observer is wedged" in caplog.text


def test_passthrough_requests(make_supervisor, fakes):
    sup = make_supervisor()
    sup.broadcast(signal.SIGINT)
    sup.write_char(ord("x"))

    assert fakes.recorder.calls == [("broadcast", signal.SIGINT)]
    assert fakes.child.written == [ord("x")]
    assert isinstance(RestartRequested("x"), tuple)
    assert KillRequested(9).signum == 9


class FlakyFinder:
    """Fails the first listing, then reports no descendants."""

    def __init__(self):
        self.calls = 0

    def descendants(self, top_pid):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("process table unavailable")
        return []


class NoDescendants:
    def descendants(self, top_pid):
        return []


class FlakyPopen:
    attempts = 0

    def __init__(self, command, stdin=None, bufsize=-1):
        FlakyPopen.attempts += 1
        if FlakyPopen.attempts == 1:
            raise FileNotFoundError(2, "No such file or directory")
        self.pid = 5000 + FlakyPopen.attempts
        self.stdin = None
        self.returncode = None

    def wait(self):
        self.returncode = 0
        return 0


def test_failed_restart_does_not_stop_the_loop(make_options, fakes, monkeypatch, caplog):
    FlakyPopen.attempts = 0
    monkeypatch.setattr(process_utils.subprocess, "Popen", FlakyPopen)
    options = make_options("-e", "go")
    sup = Supervisor(
        options,
        child=ChildProcess(options, on_exit=lambda event: None, finder=FlakyFinder()),
        terminal=fakes.terminal,
        signals=fakes.signals,
        watcher=fakes.watcher,
    )
    sup.on_fs_event(fs_event("main.go"))
    sup.kill(signal.SIGTERM)

    assert sup.run() == signal.SIGTERM

    assert FlakyPopen.attempts == 2
    assert "unable to list subprocesses" in caplog.text
    assert "unable to start command" in caplog.text


def test_child_stdin_not_piped_when_raw_mode_is_refused(make_options, fakes, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "_stdin_is_tty", lambda: True)
    options = make_options("-r")
    assert options.RAW_MODE

    FlakyPopen.attempts = 1
    spawned = []

    class RecordingPopen(FlakyPopen):
        def __init__(self, command, stdin=None, bufsize=-1):
            spawned.append(stdin)
            super().__init__(command, stdin, bufsize)

    monkeypatch.setattr(process_utils.subprocess, "Popen", RecordingPopen)

    with open(tmp_path / "not-a-tty", "w") as f:
        sup = Supervisor(
            options,
            child=ChildProcess(options, on_exit=lambda event: None, finder=NoDescendants()),
            terminal=TerminalState(raw=True, fd=f.fileno()),
            signals=fakes.signals,
            watcher=fakes.watcher,
        )
        try:
            sup.init()
            assert not sup.terminal.is_active()
            assert sup.stdio is None
            sup.child.restart()
        finally:
            sup.teardown()

    assert spawned == [None]
