"""
Lifecycle state machine for the 464XLAT translation interface.

Consumes upstream (mobile data) and clat interface events, decides when the
translation daemon should run, and announces state changes.

States and transitions:

    Stopped  --UPSTREAM_UP-->    Starting
    Starting --CLAT_UP-->        Running
    Starting --UPSTREAM_DOWN-->  Stopping
    Running  --UPSTREAM_DOWN-->  Stopping
    Running  --CLAT_DOWN-->      Stopping
    Stopping --(entry action)--> Stopped

Starting falls straight back to Stopped when the upstream is missing or not
IPv6-only. Stopping never rests: its entry action stops the daemon, announces
"stopping" and moves to Stopped inside the same dispatch() call, because the
daemon offers no asynchronous stop confirmation. Every (state, event) pair
not in TRANSITIONS is a no-op.

dispatch() must only be called from one thread; Nat464xlatService provides
the single-consumer queue that guarantees this.
"""

import threading
import logging
from enum import IntEnum
from typing import Callable, Dict, Optional, Tuple

from .config import (
    CLAT_INTERFACE_NAME,
    DAEMON_TIMEOUT,
    NOTIFY_TIMEOUT,
    STATE_RUNNING,
    STATE_STOPPING,
)
from .daemon import DaemonControl, call_with_timeout
from .exceptions import NotificationTimeoutError, SignalSourceError
from .links import ConnectivitySource, LinkProperties
from .notify import NotificationSink

logger = logging.getLogger(__name__)


class LifecycleState(IntEnum):
    """Lifecycle of the translation interface."""
    STOPPED = 0
    STARTING = 1
    RUNNING = 2
    STOPPING = 3


class Event(IntEnum):
    """Inputs to the state machine. Events carry no payload."""
    CLAT_UP = 1
    CLAT_DOWN = 2
    UPSTREAM_UP = 3
    UPSTREAM_DOWN = 4


TRANSITIONS: Dict[Tuple[LifecycleState, Event], LifecycleState] = {
    (LifecycleState.STOPPED, Event.UPSTREAM_UP): LifecycleState.STARTING,
    (LifecycleState.STARTING, Event.UPSTREAM_DOWN): LifecycleState.STOPPING,
    (LifecycleState.STARTING, Event.CLAT_UP): LifecycleState.RUNNING,
    (LifecycleState.RUNNING, Event.UPSTREAM_DOWN): LifecycleState.STOPPING,
    (LifecycleState.RUNNING, Event.CLAT_DOWN): LifecycleState.STOPPING,
}

# Ignored events worth a warning; all other ignored pairs log at debug
UNEXPECTED: Dict[Tuple[LifecycleState, Event], str] = {
    (LifecycleState.STOPPED, Event.CLAT_UP): "clat interface up while stopped",
    (LifecycleState.STARTING, Event.UPSTREAM_UP): "duplicate upstream up while starting",
    (LifecycleState.RUNNING, Event.UPSTREAM_UP): "got upstream interface up while clat is running",
    (LifecycleState.STOPPING, Event.UPSTREAM_UP): "got upstream interface up while stopping clat",
}


class Nat464xlatStateMachine:
    """
    Owns the lifecycle state and the recorded upstream interface name.

    Both are private and change only inside dispatch(). The upstream name
    is set on entering STARTING and cleared on leaving STOPPING, so it is
    None exactly when the state is STOPPED.
    """

    def __init__(
        self,
        connectivity: ConnectivitySource,
        daemon: DaemonControl,
        notifier: NotificationSink,
        clat_interface: str = CLAT_INTERFACE_NAME,
        daemon_timeout: float = DAEMON_TIMEOUT,
        notify_timeout: float = NOTIFY_TIMEOUT,
        reap_stale_clat: bool = False,
    ):
        self._connectivity = connectivity
        self._daemon = daemon
        self._notifier = notifier
        self.clat_interface = clat_interface
        self.daemon_timeout = daemon_timeout
        self.notify_timeout = notify_timeout
        self.reap_stale_clat = reap_stale_clat

        self._state = LifecycleState.STOPPED
        self._upstream_interface: Optional[str] = None
        self._dispatch_lock = threading.Lock()

        self._entry_actions: Dict[LifecycleState, Callable[[], Optional[LifecycleState]]] = {
            LifecycleState.STOPPED: self._enter_stopped,
            LifecycleState.STARTING: self._enter_starting,
            LifecycleState.RUNNING: self._enter_running,
            LifecycleState.STOPPING: self._enter_stopping,
        }

        # Diagnostics
        self.events_processed = 0
        self.events_ignored = 0
        self.transitions = 0
        self.daemon_failures = 0
        self.notify_failures = 0

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def upstream_interface(self) -> Optional[str]:
        return self._upstream_interface

    def dispatch(self, event: Event) -> LifecycleState:
        """
        Process one event and return the resulting state.

        Raises:
            RuntimeError: called while another dispatch is in progress
        """
        if not self._dispatch_lock.acquire(blocking=False):
            raise RuntimeError("dispatch() called concurrently or re-entrantly")
        try:
            self.events_processed += 1
            logger.debug(f"{self._state.name}: processing {event.name}")

            target = TRANSITIONS.get((self._state, event))
            if target is None:
                self._ignore(event)
                return self._state

            self._transition_to(target)
            return self._state
        finally:
            self._dispatch_lock.release()

    def _ignore(self, event: Event) -> None:
        self.events_ignored += 1
        note = UNEXPECTED.get((self._state, event))
        if note:
            logger.warning(f"{self._state.name}: {note}, ignoring")
        else:
            logger.debug(f"{self._state.name}: ignoring {event.name}")

        if (
            self.reap_stale_clat
            and self._state == LifecycleState.STOPPED
            and event == Event.CLAT_UP
        ):
            logger.info(f"Stopping stale translation daemon for {self.clat_interface}")
            self._call_daemon("stop", self._daemon.stop)

    def _transition_to(self, target: Optional[LifecycleState]) -> None:
        # Entry actions may hand back a follow-up state; run the chain to rest
        while target is not None:
            logger.debug(f"{self._state.name} -> {target.name}")
            self._state = target
            self.transitions += 1
            target = self._entry_actions[target]()

    # ---------------- Entry actions ----------------

    def _enter_stopped(self) -> Optional[LifecycleState]:
        logger.info("transitioned to STOPPED")
        return None

    def _enter_starting(self) -> Optional[LifecycleState]:
        link = self._read_link_properties()
        if link is None:
            logger.error("STARTING: no link properties for the primary attachment")
            return LifecycleState.STOPPED

        if not link.is_ipv6_only():
            family = link.address_family.name if link.address_family is not None else None
            logger.debug(f"STARTING: link family is {family}, skipping")
            return LifecycleState.STOPPED

        iface = link.interface_name
        if not iface:
            logger.error("STARTING: primary attachment has no interface name")
            return LifecycleState.STOPPED

        logger.info(f"STARTING: starting clat, iface={iface}")
        self._upstream_interface = iface
        self._call_daemon("start", self._daemon.start, iface)
        return None

    def _enter_running(self) -> Optional[LifecycleState]:
        logger.info(f"transitioned to RUNNING (upstream={self._upstream_interface})")
        self._announce(STATE_RUNNING)
        return None

    def _enter_stopping(self) -> Optional[LifecycleState]:
        logger.debug("STOPPING: stopping clat")
        self._call_daemon("stop", self._daemon.stop)
        logger.debug("STOPPING: clat stopped")

        self._announce(STATE_STOPPING)
        self._upstream_interface = None
        return LifecycleState.STOPPED

    # ---------------- Collaborator calls ----------------

    def _read_link_properties(self) -> Optional[LinkProperties]:
        try:
            return self._connectivity.get_link_properties()
        except SignalSourceError as e:
            logger.error(f"STARTING: link properties unavailable: {e}")
            return None

    def _call_daemon(self, operation: str, func: Callable, *args) -> bool:
        try:
            call_with_timeout(operation, func, self.daemon_timeout, *args)
            return True
        except Exception as e:
            self.daemon_failures += 1
            logger.error(f"{self._state.name}: failed to {operation} clat: {e}")
            return False

    def _announce(self, state_label: str) -> None:
        try:
            call_with_timeout(
                f"announce-{state_label}",
                self._notifier.notify,
                self.notify_timeout,
                state_label,
                self._upstream_interface,
                self.clat_interface,
                timeout_error=NotificationTimeoutError,
            )
        except Exception as e:
            self.notify_failures += 1
            logger.error(f"{self._state.name}: failed to announce {state_label}: {e}")

    def get_stats(self) -> dict:
        """Get state machine statistics."""
        return {
            "state": self._state.name,
            "upstream_interface": self._upstream_interface,
            "clat_interface": self.clat_interface,
            "events_processed": self.events_processed,
            "events_ignored": self.events_ignored,
            "transitions": self.transitions,
            "daemon_failures": self.daemon_failures,
            "notify_failures": self.notify_failures,
        }
