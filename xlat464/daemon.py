"""
Translation daemon control for xlat464.

Starts and stops the clat daemon that creates the translation interface.
"""

import os
import shutil
import signal
import subprocess
import threading
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Type

from .config import CLATD_PATH, STOP_GRACE
from .exceptions import DaemonStartError, DaemonStopError, DaemonTimeoutError

logger = logging.getLogger(__name__)


class DaemonControl(ABC):
    """Control surface of the translation daemon."""

    @abstractmethod
    def start(self, interface: str) -> None:
        """Start translating on top of the given upstream interface."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the daemon. Stopping an idle daemon is not an error."""
        pass

    @abstractmethod
    def is_running(self) -> bool:
        pass


class ClatdControl(DaemonControl):
    """
    Runs the clat daemon as a child process.

    Command line: <clatd_path> -i <upstream interface> [extra args...]
    """

    def __init__(
        self,
        clatd_path: str = CLATD_PATH,
        extra_args: Optional[List[str]] = None,
        stop_grace: float = STOP_GRACE,
    ):
        self.clatd_path = clatd_path
        self.extra_args = list(extra_args or [])
        self.stop_grace = stop_grace
        self._proc: Optional[subprocess.Popen] = None
        self._interface: Optional[str] = None
        self._lock = threading.Lock()

    def _resolve_binary(self) -> str:
        if os.path.sep in self.clatd_path:
            if os.access(self.clatd_path, os.X_OK):
                return self.clatd_path
            raise DaemonStartError(f"clatd binary not executable: {self.clatd_path}")
        found = shutil.which(self.clatd_path)
        if not found:
            raise DaemonStartError(f"clatd binary not found: {self.clatd_path}")
        return found

    def build_command(self, interface: str) -> List[str]:
        return [self._resolve_binary(), "-i", interface, *self.extra_args]

    def start(self, interface: str) -> None:
        with self._lock:
            if self._proc is not None and self._proc.poll() is None:
                raise DaemonStartError(
                    f"clatd already running on {self._interface} (pid {self._proc.pid})"
                )

            cmd = self.build_command(interface)
            try:
                self._proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as e:
                raise DaemonStartError(f"Failed to exec {cmd[0]}: {e}") from e

            self._interface = interface
            logger.info(f"Started clatd on {interface} (pid {self._proc.pid})")

    def stop(self) -> None:
        with self._lock:
            proc = self._proc
            if proc is None:
                logger.debug("clatd not running, nothing to stop")
                return

            try:
                if proc.poll() is None:
                    proc.send_signal(signal.SIGTERM)
                    try:
                        proc.wait(timeout=self.stop_grace)
                    except subprocess.TimeoutExpired:
                        logger.warning(f"clatd (pid {proc.pid}) ignored SIGTERM, killing")
                        proc.kill()
                        proc.wait(timeout=self.stop_grace)
            except (OSError, subprocess.TimeoutExpired) as e:
                raise DaemonStopError(f"Failed to stop clatd (pid {proc.pid}): {e}") from e
            finally:
                if proc.poll() is not None:
                    self._proc = None
                    self._interface = None

            logger.info(f"Stopped clatd (exit code {proc.returncode})")

    def is_running(self) -> bool:
        with self._lock:
            return self._proc is not None and self._proc.poll() is None

    @property
    def interface(self) -> Optional[str]:
        return self._interface


def call_with_timeout(
    operation: str,
    func: Callable[..., Any],
    timeout: float,
    *args,
    timeout_error: Type[Exception] = DaemonTimeoutError,
) -> Any:
    """
    Run a blocking collaborator call, giving up after `timeout` seconds.

    The call runs on a daemon thread; if it overruns it is left to finish
    in the background and `timeout_error(operation, timeout)` is raised.
    Exceptions raised by the call are re-raised in the caller.
    """
    result: dict = {}

    def _runner() -> None:
        try:
            result["value"] = func(*args)
        except BaseException as e:
            result["error"] = e

    worker = threading.Thread(target=_runner, name=f"xlat-call-{operation}", daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        raise timeout_error(operation, timeout)
    if "error" in result:
        raise result["error"]
    return result.get("value")
