"""
Pytest configuration and fixtures for xlat464 tests.
"""

import pytest
import os
import sys
import threading

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xlat464.daemon import DaemonControl
from xlat464.links import AddressFamily, LinkProperties, StaticConnectivitySource
from xlat464.machine import Nat464xlatStateMachine
from xlat464.notify import NotificationSink


class RecordingDaemon(DaemonControl):
    """Daemon control that records calls instead of running anything."""

    def __init__(self, fail_start=False, fail_stop=False, block=None):
        self.calls = []
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.block = block  # threading.Event the calls wait on
        self._running = False

    def start(self, interface):
        self.calls.append(("start", interface))
        if self.block is not None:
            self.block.wait()
        if self.fail_start:
            raise RuntimeError("clatd exec failed")
        self._running = True

    def stop(self):
        self.calls.append(("stop",))
        if self.block is not None:
            self.block.wait()
        if self.fail_stop:
            raise RuntimeError("clatd did not exit")
        self._running = False

    def is_running(self):
        return self._running

    @property
    def starts(self):
        return [c for c in self.calls if c[0] == "start"]

    @property
    def stops(self):
        return [c for c in self.calls if c[0] == "stop"]


class RecordingNotifier(NotificationSink):
    """Notification sink that records every announcement."""

    def __init__(self):
        self.calls = []
        self.event = threading.Event()

    def notify(self, state, upstream_interface, clat_interface):
        self.calls.append((state, upstream_interface, clat_interface))
        self.event.set()


@pytest.fixture
def daemon():
    return RecordingDaemon()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def connectivity():
    """Connected IPv6-only upstream named rmnet0."""
    return StaticConnectivitySource(
        LinkProperties("rmnet0", AddressFamily.IPV6), connected=True
    )


@pytest.fixture
def machine(connectivity, daemon, notifier):
    return Nat464xlatStateMachine(connectivity, daemon, notifier, daemon_timeout=2.0)
