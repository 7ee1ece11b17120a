import logging
import signal
from types import SimpleNamespace

import pytest

from procwatch import settings
from procwatch.local import Options


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keeps a stray procwatch.json or PROCWATCH_* variable from leaking into tests."""
    monkeypatch.setattr(settings, "CONFIG_JSON_PATH", tmp_path / "procwatch.json")
    yield
    logger = logging.getLogger("procwatch")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def restore_signal_handlers():
    saved = {signum: signal.getsignal(signum) for signum in settings.KILL_SIGNALS + (signal.SIGUSR1,)}
    yield
    for signum, handler in saved.items():
        signal.signal(signum, handler)


@pytest.fixture
def make_options():
    def _make(*flags, command=("some_command",)):
        return Options([*flags, "--", *command])
    return _make


class Recorder:
    """Collects calls from several fakes into one ordered list."""

    def __init__(self):
        self.calls = []

    def add(self, *call):
        self.calls.append(call if len(call) > 1 else call[0])


class FakeChild:
    def __init__(self, recorder, running=False):
        self.recorder = recorder
        self.running = running
        self.current = None
        self.written = []

    def restart(self):
        self.recorder.add("restart")
        self.current = SimpleNamespace(pid=1000 + len(self.recorder.calls))
        return True

    def is_running(self):
        return self.running

    def release(self, process):
        if process is not self.current:
            return False
        self.current = None
        return True

    def broadcast(self, signum):
        self.recorder.add("broadcast", signum)

    def write_char(self, char):
        self.written.append(char)

    def deinit(self):
        self.recorder.add("child.deinit")


class FakeTerminal:
    def __init__(self, recorder, active=False):
        self.recorder = recorder
        self.active = active

    def is_active(self):
        return self.active

    def init(self):
        self.recorder.add("terminal.init")

    def deinit(self):
        self.recorder.add("terminal.deinit")


class FakeSignals:
    def __init__(self, recorder):
        self.recorder = recorder

    def init(self):
        self.recorder.add("signals.init")
        return True

    def deinit(self):
        self.recorder.add("signals.deinit")


class FakeWatcher:
    def __init__(self, recorder):
        self.recorder = recorder

    def start(self):
        self.recorder.add("watcher.start")

    def stop(self):
        self.recorder.add("watcher.stop")


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def fakes(recorder):
    return SimpleNamespace(
        recorder=recorder,
        child=FakeChild(recorder),
        terminal=FakeTerminal(recorder),
        signals=FakeSignals(recorder),
        watcher=FakeWatcher(recorder),
    )
