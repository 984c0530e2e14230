"""
Connectivity signal sources for xlat464.

This module implements:
- Link property snapshots (interface name + address family)
- An in-memory source driven by the caller
- A polling monitor that watches one upstream interface on the host
"""

import os
import time
import threading
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional, Tuple, Union

from .config import POLL_INTERVAL, SYS_CLASS_NET, WORKER_JOIN_TIMEOUT
from .exceptions import LinkPropertiesUnavailableError, SignalSourceError

logger = logging.getLogger(__name__)


# Scope value scapy reports for global unicast IPv6 addresses
IPV6_SCOPE_GLOBAL = 0x00


class AddressFamily(IntEnum):
    """Address family of a mobile data call."""
    IPV4 = 4
    IPV6 = 6
    IPV4V6 = 10

    @classmethod
    def from_protocol(cls, protocol: Optional[str]) -> Optional["AddressFamily"]:
        """
        Parse a data-call protocol string.

        Accepts "IP", "IPV6" and "IPV4V6" (case-insensitive); anything else
        returns None.
        """
        if protocol is None:
            return None
        return _PROTOCOLS.get(protocol.strip().upper())

    @classmethod
    def from_addresses(cls, has_ipv4: bool, has_ipv6: bool) -> Optional["AddressFamily"]:
        """Derive the family from which address kinds an interface carries."""
        if has_ipv4 and has_ipv6:
            return cls.IPV4V6
        if has_ipv6:
            return cls.IPV6
        if has_ipv4:
            return cls.IPV4
        return None


_PROTOCOLS = {
    "IP": AddressFamily.IPV4,
    "IPV4": AddressFamily.IPV4,
    "IPV6": AddressFamily.IPV6,
    "IPV4V6": AddressFamily.IPV4V6,
}


@dataclass(frozen=True)
class LinkProperties:
    """Snapshot of the primary mobile attachment."""
    interface_name: str
    address_family: Optional[AddressFamily]
    observed_at: float = field(default_factory=time.time, compare=False)

    def is_ipv6_only(self) -> bool:
        return self.address_family == AddressFamily.IPV6


ConnectivityListener = Callable[[], None]


class ConnectivitySource(ABC):
    """
    Reports whether the primary mobile attachment is connected.

    Listeners are called with no arguments on every change; they query
    is_connected() and get_link_properties() for the current facts.
    """

    def __init__(self):
        self._listeners: List[ConnectivityListener] = []
        self._listeners_lock = threading.Lock()

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True if the primary attachment is connected."""
        pass

    @abstractmethod
    def get_link_properties(self) -> Optional[LinkProperties]:
        """Return the current link properties, or None if there is no attachment."""
        pass

    def start(self) -> None:
        """Begin producing change notifications."""

    def stop(self) -> None:
        """Stop producing change notifications."""

    def add_listener(self, listener: ConnectivityListener) -> None:
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify_listeners(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")


class StaticConnectivitySource(ConnectivitySource):
    """
    Connectivity source whose state is set by the caller.

    Used when another component already knows the attachment state and
    only needs to hand it over.
    """

    def __init__(self, link: Optional[LinkProperties] = None, connected: bool = False):
        super().__init__()
        self._lock = threading.Lock()
        self._link = link
        self._connected = connected

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def get_link_properties(self) -> Optional[LinkProperties]:
        with self._lock:
            return self._link

    def set_link(
        self,
        interface_name: str,
        address_family: Union[AddressFamily, str, None],
    ) -> None:
        """
        Mark the attachment connected with the given properties.

        The family may also be given as a data-call protocol string such
        as "IPV6" or "IPV4V6".
        """
        if isinstance(address_family, str):
            address_family = AddressFamily.from_protocol(address_family)
        with self._lock:
            self._link = LinkProperties(interface_name, address_family)
            self._connected = True
        self._notify_listeners()

    def set_disconnected(self) -> None:
        """Mark the attachment disconnected and drop its properties."""
        with self._lock:
            self._link = None
            self._connected = False
        self._notify_listeners()


# =============================================================================
# Host readers
# =============================================================================

def read_operstate(iface: str, net_path: str = SYS_CLASS_NET) -> Optional[str]:
    """Read /sys/class/net/<iface>/operstate, or None if the interface is absent."""
    try:
        with open(os.path.join(net_path, iface, "operstate"), "r") as f:
            return f.read().strip().lower()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise LinkPropertiesUnavailableError(iface, str(e)) from e


def read_addresses(iface: str) -> Tuple[bool, bool]:
    """
    Report (has_ipv4, has_global_ipv6) for an interface using scapy.

    Raises:
        LinkPropertiesUnavailableError: scapy could not query the interface
    """
    try:
        from scapy.all import get_if_addr, in6_getifaddr
    except ImportError as e:
        raise LinkPropertiesUnavailableError(iface, f"scapy not available: {e}") from e

    try:
        ipv4 = get_if_addr(iface)
        has_ipv4 = bool(ipv4) and ipv4 != "0.0.0.0"
        has_ipv6 = any(
            name == iface and scope == IPV6_SCOPE_GLOBAL
            for _addr, scope, name in in6_getifaddr()
        )
    except Exception as e:
        raise LinkPropertiesUnavailableError(iface, str(e)) from e
    return has_ipv4, has_ipv6


class PollingConnectivityMonitor(ConnectivitySource):
    """
    Watches one upstream interface on the host.

    The attachment counts as connected while the interface exists, its
    operstate is up (or unknown, as with many point-to-point modems) and it
    carries at least one usable address. Listeners fire when either the
    connected flag or the address family changes.
    """

    def __init__(
        self,
        iface: str,
        poll_interval: float = POLL_INTERVAL,
        operstate_reader: Callable[[str], Optional[str]] = read_operstate,
        address_reader: Callable[[str], Tuple[bool, bool]] = read_addresses,
    ):
        super().__init__()
        self.iface = iface
        self.poll_interval = poll_interval
        self._read_operstate = operstate_reader
        self._read_addresses = address_reader

        self._lock = threading.Lock()
        self._last: Optional[Tuple[bool, Optional[AddressFamily]]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _probe(self) -> Tuple[bool, Optional[AddressFamily]]:
        """Return (connected, family) as observed right now."""
        operstate = self._read_operstate(self.iface)
        if operstate not in ("up", "unknown"):
            return False, None
        has_ipv4, has_ipv6 = self._read_addresses(self.iface)
        family = AddressFamily.from_addresses(has_ipv4, has_ipv6)
        return family is not None, family

    def is_connected(self) -> bool:
        try:
            connected, _ = self._probe()
        except SignalSourceError as e:
            logger.warning(f"Connectivity query for {self.iface} failed: {e}")
            return False
        return connected

    def get_link_properties(self) -> Optional[LinkProperties]:
        """
        Read the link properties fresh from the host.

        Raises:
            LinkPropertiesUnavailableError: the interface could not be queried
        """
        connected, family = self._probe()
        if not connected:
            return None
        return LinkProperties(self.iface, family)

    def poll_once(self) -> bool:
        """
        Probe the interface and notify listeners if anything changed.

        Returns True if a change was reported.
        """
        with self._lock:
            try:
                current = self._probe()
            except SignalSourceError as e:
                logger.debug(f"Poll of {self.iface} failed: {e}")
                current = (False, None)
            changed = current != self._last
            self._last = current

        if changed:
            connected, family = current
            logger.info(
                f"Upstream {self.iface} "
                f"{'connected' if connected else 'disconnected'}"
                + (f" family={family.name}" if family is not None else "")
            )
            self._notify_listeners()
        return changed

    def start(self) -> None:
        """Start the polling thread."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name=f"xlat-link-{self.iface}", daemon=True
        )
        self._thread.start()
        logger.info(f"Watching upstream {self.iface} every {self.poll_interval}s")

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
