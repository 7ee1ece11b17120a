import os
import signal
import threading

import pytest

from procwatch.local.supervisor.signals import SignalRelay

pytestmark = pytest.mark.usefixtures("restore_signal_handlers")


def test_delivered_signal_is_forwarded():
    received = []
    relay = SignalRelay(received.append, [signal.SIGUSR1])

    assert relay.init()
    assert relay.is_active()
    os.kill(os.getpid(), signal.SIGUSR1)

    assert received == [signal.SIGUSR1]


def test_deinit_restores_default_disposition():
    relay = SignalRelay(lambda signum: None, [signal.SIGUSR1, signal.SIGHUP])
    relay.init()

    relay.deinit()
    relay.deinit()

    assert not relay.is_active()
    assert signal.getsignal(signal.SIGUSR1) is signal.SIG_DFL
    assert signal.getsignal(signal.SIGHUP) is signal.SIG_DFL


def test_init_off_main_thread_fails_softly(caplog):
    relay = SignalRelay(lambda signum: None, [signal.SIGUSR1])
    results = []

    thread = threading.Thread(target=lambda: results.append(relay.init()))
    thread.start()
    thread.join()

    assert results == [False]
    assert not relay.is_active()
    assert "unable to subscribe to kill signals" in caplog.text
