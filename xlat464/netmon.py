"""
Interface signal source for xlat464.

Reports network interfaces appearing and disappearing at the OS level by
polling the kernel's interface list.
"""

import os
import threading
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Set

from .config import POLL_INTERVAL, SYS_CLASS_NET, WORKER_JOIN_TIMEOUT

logger = logging.getLogger(__name__)


class InterfaceListener(ABC):
    """Receives interface created / removed notifications."""

    @abstractmethod
    def interface_added(self, iface: str) -> None:
        pass

    @abstractmethod
    def interface_removed(self, iface: str) -> None:
        pass


def list_interfaces(net_path: str = SYS_CLASS_NET) -> Set[str]:
    """List interface names currently known to the kernel."""
    return set(os.listdir(net_path))


class InterfaceWatcher:
    """
    Polls the interface list and reports differences to listeners.

    The first poll reports every interface already present as added, so a
    listener registered before start() also learns about interfaces that
    existed before the watcher ran.
    """

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL,
        lister: Callable[[], Set[str]] = list_interfaces,
    ):
        self.poll_interval = poll_interval
        self._lister = lister
        self._known: Optional[Set[str]] = None
        self._listeners: List[InterfaceListener] = []
        self._lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register_observer(self, listener: InterfaceListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unregister_observer(self, listener: InterfaceListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def poll_once(self) -> None:
        """Compare the interface list with the previous poll and notify."""
        # Listing and diffing happen under one lock so concurrent polls
        # cannot diff against a stale snapshot
        with self._lock:
            try:
                current = set(self._lister())
            except OSError as e:
                logger.warning(f"Could not list interfaces: {e}")
                return
            previous = self._known if self._known is not None else set()
            self._known = current
            listeners = list(self._listeners)

        added = sorted(current - previous)
        removed = sorted(previous - current)

        for iface in added:
            logger.debug(f"Interface {iface} added")
            for listener in listeners:
                self._deliver(listener.interface_added, iface)
        for iface in removed:
            logger.debug(f"Interface {iface} removed")
            for listener in listeners:
                self._deliver(listener.interface_removed, iface)

    def _deliver(self, callback: Callable[[str], None], iface: str) -> None:
        try:
            callback(iface)
        except Exception as e:
            logger.error(f"Interface listener failed for {iface}: {e}")

    def start(self) -> None:
        """Start the polling thread."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="xlat-ifwatch", daemon=True
        )
        self._thread.start()
        logger.info(f"Interface watcher started (every {self.poll_interval}s)")

    def stop(self) -> None:
        """Stop the polling thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=WORKER_JOIN_TIMEOUT)
            self._thread = None

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self.poll_interval)
