"""
State change announcements for xlat464.

Other components learn about the translation interface through a
NotificationSink. Two sinks are provided: an in-process broadcaster with
subscribers, and a JSON status file for out-of-process observers.
"""

import os
import json
import time
import threading
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import (
    ACTION_NAT_464XLAT_STATE_CHANGED,
    DATA_STATE,
    DATA_UPSTREAM_INTERFACE,
    DATA_CLAT_INTERFACE,
    NOTIFY_HISTORY_SIZE,
)

logger = logging.getLogger(__name__)


@dataclass
class StateChange:
    """One lifecycle announcement."""
    state: str
    upstream_interface: Optional[str]
    clat_interface: str
    timestamp: float = field(default_factory=time.time)
    action: str = ACTION_NAT_464XLAT_STATE_CHANGED

    def to_extras(self) -> Dict[str, Optional[str]]:
        """Payload keyed the way the state-changed broadcast carries it."""
        return {
            DATA_STATE: self.state,
            DATA_UPSTREAM_INTERFACE: self.upstream_interface,
            DATA_CLAT_INTERFACE: self.clat_interface,
        }


class NotificationSink(ABC):
    """Receives lifecycle state-changed announcements."""

    @abstractmethod
    def notify(self, state: str, upstream_interface: Optional[str], clat_interface: str) -> None:
        pass


Subscriber = Callable[[StateChange], None]


class BroadcastNotifier(NotificationSink):
    """
    Fans announcements out to in-process subscribers.

    A failing subscriber is logged and skipped; the others still receive
    the announcement.
    """

    def __init__(self, history_size: int = NOTIFY_HISTORY_SIZE):
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []
        self._history: deque = deque(maxlen=history_size)

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def notify(self, state: str, upstream_interface: Optional[str], clat_interface: str) -> None:
        change = StateChange(state, upstream_interface, clat_interface)
        with self._lock:
            self._history.append(change)
            subscribers = list(self._subscribers)

        logger.info(
            f"Broadcast {change.action}: state={state} "
            f"upstream={upstream_interface} clat={clat_interface}"
        )
        for callback in subscribers:
            try:
                callback(change)
            except Exception as e:
                logger.error(f"Subscriber {callback!r} failed: {e}")

    def history(self) -> List[StateChange]:
        """Recent announcements, oldest first."""
        with self._lock:
            return list(self._history)

    def last(self) -> Optional[StateChange]:
        with self._lock:
            return self._history[-1] if self._history else None


class StateFileNotifier(NotificationSink):
    """
    Writes the latest announcement to a JSON file.

    The file is replaced atomically so readers never see a partial write.
    """

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def notify(self, state: str, upstream_interface: Optional[str], clat_interface: str) -> None:
        change = StateChange(state, upstream_interface, clat_interface)
        record = asdict(change)
        record["extras"] = change.to_extras()

        with self._lock:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path + ".tmp"
            with open(tmp, "w") as f:
                json.dump(record, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)

    def read(self) -> Optional[dict]:
        """Load the last written announcement, or None if there is none."""
        try:
            with open(self._path, "r") as f:
                return json.load(f)
        except FileNotFoundError:
            return None


class CompositeNotifier(NotificationSink):
    """Forwards each announcement to several sinks in order."""

    def __init__(self, *sinks: NotificationSink):
        self._sinks = list(sinks)

    def notify(self, state: str, upstream_interface: Optional[str], clat_interface: str) -> None:
        for sink in self._sinks:
            try:
                sink.notify(state, upstream_interface, clat_interface)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed: {e}")
