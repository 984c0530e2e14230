"""
Coordinator for xlat464.

Wires the connectivity source, interface watcher, daemon control and
notification sink to the lifecycle state machine, and serializes all events
through one queue consumed by one worker thread.
"""

import threading
import logging
from queue import Queue, Empty
from typing import Optional

from .config import CLAT_INTERFACE_NAME, WORKER_JOIN_TIMEOUT, RuntimeConfig
from .daemon import DaemonControl
from .links import ConnectivitySource
from .machine import Event, LifecycleState, Nat464xlatStateMachine
from .netmon import InterfaceListener, InterfaceWatcher
from .notify import NotificationSink

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


class ClatInterfaceObserver(InterfaceListener):
    """Turns interface add/remove reports for the clat interface into events."""

    def __init__(self, service: "Nat464xlatService", clat_interface: str = CLAT_INTERFACE_NAME):
        self._service = service
        self.clat_interface = clat_interface

    def interface_added(self, iface: str) -> None:
        if iface == self.clat_interface:
            self._service.post(Event.CLAT_UP)

    def interface_removed(self, iface: str) -> None:
        if iface == self.clat_interface:
            self._service.post(Event.CLAT_DOWN)


class Nat464xlatService:
    """
    Hosts the 464XLAT state machine.

    Connectivity changes are converted to UPSTREAM_UP / UPSTREAM_DOWN by
    asking the source whether the primary attachment is connected; clat
    interface changes become CLAT_UP / CLAT_DOWN. Both are posted to the
    event queue, and the worker thread is the only caller of dispatch().
    """

    def __init__(
        self,
        connectivity: ConnectivitySource,
        daemon: DaemonControl,
        notifier: NotificationSink,
        interfaces: Optional[InterfaceWatcher] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self.config = config or RuntimeConfig()
        self.connectivity = connectivity
        self.interfaces = interfaces
        self.daemon = daemon

        self.machine = Nat464xlatStateMachine(
            connectivity,
            daemon,
            notifier,
            clat_interface=self.config.clat_iface,
            daemon_timeout=self.config.daemon_timeout,
            notify_timeout=self.config.notify_timeout,
            reap_stale_clat=self.config.reap_stale_clat,
        )
        self.observer = ClatInterfaceObserver(self, self.config.clat_iface)

        self._queue: "Queue[object]" = Queue()
        self._worker: Optional[threading.Thread] = None
        self._running = False
        self._stopping = False
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0
        self.events_posted = 0

    @property
    def state(self) -> LifecycleState:
        return self.machine.state

    @property
    def running(self) -> bool:
        return self._running

    def post(self, event: Event) -> None:
        """Queue an event for the worker. Safe to call from any thread."""
        with self._idle:
            self.events_posted += 1
            self._pending += 1
        self._queue.put(event)

    def on_connectivity_changed(self) -> None:
        """Connectivity listener: post UPSTREAM_UP or UPSTREAM_DOWN."""
        try:
            connected = self.connectivity.is_connected()
        except Exception as e:
            logger.error(f"Could not query connectivity: {e}")
            connected = False
        self.post(Event.UPSTREAM_UP if connected else Event.UPSTREAM_DOWN)

    def start(self) -> None:
        """Register with the signal sources and start the worker."""
        if self._running:
            return
        self._running = True

        self._worker = threading.Thread(
            target=self._run, name="xlat-464xlat", daemon=True
        )
        self._worker.start()

        self.connectivity.add_listener(self.on_connectivity_changed)
        if self.interfaces is not None:
            try:
                self.interfaces.register_observer(self.observer)
                self.interfaces.start()
            except Exception as e:
                logger.error(f"Could not register interface observer: {e}")

        try:
            self.connectivity.start()
        except Exception as e:
            logger.error(f"Could not start connectivity source: {e}")

        # Report the attachment state that existed before we registered
        self.on_connectivity_changed()

        logger.info(f"464xlat service started (clat interface {self.config.clat_iface})")

    def stop(self, teardown: bool = True) -> None:
        """
        Unregister from the sources, drain the queue and stop the worker.

        With teardown, a final UPSTREAM_DOWN is processed first so a running
        daemon is stopped and "stopping" is announced.
        """
        if not self._running:
            return

        if not self._stopping:
            self._stopping = True
            self.connectivity.remove_listener(self.on_connectivity_changed)
            self.connectivity.stop()
            if self.interfaces is not None:
                self.interfaces.unregister_observer(self.observer)
                self.interfaces.stop()

            if teardown:
                self.post(Event.UPSTREAM_DOWN)
            self._queue.put(_SHUTDOWN)

        # The worker stays the only consumer until it has actually exited
        if self._worker:
            self._worker.join(
                timeout=WORKER_JOIN_TIMEOUT
                + self.config.daemon_timeout
                + self.config.notify_timeout
            )
            if self._worker.is_alive():
                logger.warning("464xlat worker did not exit in time, call stop() again")
                return
            self._worker = None
        self._stopping = False
        self._running = False
        logger.info("464xlat service stopped")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every queued event has been processed.

        Returns False if the timeout expired first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def _run(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=1.0)
            except Empty:
                continue

            if item is _SHUTDOWN:
                return
            try:
                self.machine.dispatch(item)
            except Exception as e:
                logger.exception(f"Error processing {item!r}: {e}")
            finally:
                with self._idle:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.notify_all()

    def get_stats(self) -> dict:
        """Get service statistics."""
        stats = self.machine.get_stats()
        stats.update({
            "running": self._running,
            "events_posted": self.events_posted,
            "queue_depth": self._queue.qsize(),
            "daemon_running": self.daemon.is_running(),
        })
        return stats
