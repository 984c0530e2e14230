"""
Configuration constants for xlat464.

All interface names, broadcast keys, paths, and tunable parameters are
centralized here.
"""

from __future__ import annotations

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigError, InvalidInterfaceNameError


# ---------------- Interface Names ----------------

CLAT_INTERFACE_NAME = "clat"  # Interface created by the translation daemon
IFNAMSIZ = 16  # Kernel limit, including the trailing NUL


# ---------------- State Broadcast ----------------

ACTION_NAT_464XLAT_STATE_CHANGED = "com.android.server.connectivity.nat464xlatservice"
DATA_STATE = "DATA_STATE"
DATA_UPSTREAM_INTERFACE = "DATA_UPSTREAM_INTERFACE"
DATA_CLAT_INTERFACE = "DATA_CLAT_INTERFACE"

STATE_RUNNING = "running"
STATE_STOPPING = "stopping"

NOTIFY_HISTORY_SIZE = 64  # Recent state changes kept for diagnostics
NOTIFY_TIMEOUT = 5.0  # Seconds before a state announcement is abandoned


# ---------------- Daemon Control ----------------

CLATD_PATH = "/system/bin/clatd"
DAEMON_TIMEOUT = 10.0  # Seconds before a start/stop call is abandoned
STOP_GRACE = 3.0  # Seconds between SIGTERM and SIGKILL


# ---------------- Monitoring ----------------

SYS_CLASS_NET = "/sys/class/net"
POLL_INTERVAL = 1.0  # Seconds between link/interface polls
WORKER_JOIN_TIMEOUT = 2.0


# ---------------- File Paths ----------------

STATE_DIR = os.path.join(os.path.expanduser("~"), ".xlat464")
LOG_DIR = os.path.join(STATE_DIR, "logs")
CONFIG_FILE = os.path.join(STATE_DIR, "config.yaml")
STATUS_FILE = os.path.join(STATE_DIR, "status.json")


# ---------------- Logging Configuration ----------------

LOG_FILE = os.path.join(LOG_DIR, "xlat464.log")
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per log file
LOG_BACKUP_COUNT = 5  # Keep 5 rotated log files


def validate_interface_name(name: str) -> str:
    """
    Check that a name is usable as a network interface name.

    Raises:
        InvalidInterfaceNameError: empty, too long, or contains '/' or whitespace
    """
    if not name or len(name) >= IFNAMSIZ:
        raise InvalidInterfaceNameError(name)
    if "/" in name or any(ch.isspace() for ch in name):
        raise InvalidInterfaceNameError(name)
    return name


@dataclass
class RuntimeConfig:
    """Runtime configuration that can be modified at startup."""

    upstream_iface: str = ""
    clat_iface: str = CLAT_INTERFACE_NAME
    clatd_path: str = CLATD_PATH
    poll_interval: float = POLL_INTERVAL
    daemon_timeout: float = DAEMON_TIMEOUT
    stop_grace: float = STOP_GRACE
    notify_timeout: float = NOTIFY_TIMEOUT
    status_file: Optional[str] = None
    reap_stale_clat: bool = False
    log_to_file: bool = True
    log_level: str = "INFO"

    def validate(self) -> None:
        """Raise ConfigError if any setting is out of range."""
        if self.upstream_iface:
            validate_interface_name(self.upstream_iface)
        validate_interface_name(self.clat_iface)
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.daemon_timeout <= 0:
            raise ConfigError(f"daemon_timeout must be positive, got {self.daemon_timeout}")
        if self.stop_grace < 0:
            raise ConfigError(f"stop_grace must not be negative, got {self.stop_grace}")
        if self.notify_timeout <= 0:
            raise ConfigError(f"notify_timeout must be positive, got {self.notify_timeout}")


def load_config_file(path: Optional[str] = None) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        Configuration dict (empty if file doesn't exist)

    Raises:
        ConfigError: file exists but is not valid YAML
    """
    config_path = path or CONFIG_FILE

    if not os.path.exists(config_path):
        return {}

    import yaml

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e
    return data if isinstance(data, dict) else {}


DEFAULT_CONFIG = """\
# xlat464 Configuration

# Primary mobile interface to watch (e.g. rmnet0, wwan0)
# upstream_iface: rmnet0

# Name of the interface created by the translation daemon
clat_iface: clat

daemon:
  # Path to the translation daemon binary
  path: /system/bin/clatd
  # Seconds before a start/stop call is abandoned
  timeout: 10.0
  # Seconds between SIGTERM and SIGKILL on stop
  stop_grace: 3.0
  # Stop the daemon if a clat interface appears while nothing was started
  reap_stale_clat: false

monitor:
  # Seconds between link and interface polls
  poll_interval: 1.0

notify:
  # Seconds before a state announcement is abandoned
  timeout: 5.0

# JSON file updated on every state change (optional)
# status_file: ~/.xlat464/status.json

# Logging settings
logging:
  # Enable file logging
  to_file: true
  # Log level: DEBUG, INFO, WARNING, ERROR
  level: INFO
"""


def save_default_config(path: Optional[str] = None) -> bool:
    """
    Save default configuration file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        True if saved successfully
    """
    config_path = path or CONFIG_FILE

    try:
        Path(config_path).parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(DEFAULT_CONFIG)
        return True
    except OSError:
        return False


def apply_config_file(runtime_config: RuntimeConfig, file_config: dict) -> None:
    """
    Apply file configuration to runtime config.

    File config values are used as defaults, CLI args take precedence.
    Only fields still holding their built-in default are overwritten.
    """
    defaults = RuntimeConfig()

    def _take(attr: str, value) -> None:
        if getattr(runtime_config, attr) == getattr(defaults, attr):
            setattr(runtime_config, attr, value)

    if "upstream_iface" in file_config:
        _take("upstream_iface", str(file_config["upstream_iface"]))
    if "clat_iface" in file_config:
        _take("clat_iface", str(file_config["clat_iface"]))
    if file_config.get("status_file"):
        _take("status_file", os.path.expanduser(file_config["status_file"]))

    daemon_config = file_config.get("daemon") or {}
    try:
        if "path" in daemon_config:
            _take("clatd_path", str(daemon_config["path"]))
        if "timeout" in daemon_config:
            _take("daemon_timeout", float(daemon_config["timeout"]))
        if "stop_grace" in daemon_config:
            _take("stop_grace", float(daemon_config["stop_grace"]))
        if "reap_stale_clat" in daemon_config:
            _take("reap_stale_clat", bool(daemon_config["reap_stale_clat"]))

        monitor_config = file_config.get("monitor") or {}
        if "poll_interval" in monitor_config:
            _take("poll_interval", float(monitor_config["poll_interval"]))

        notify_config = file_config.get("notify") or {}
        if "timeout" in notify_config:
            _take("notify_timeout", float(notify_config["timeout"]))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric setting in config file: {e}") from e

    # Logging settings
    logging_config = file_config.get("logging") or {}
    if "to_file" in logging_config:
        _take("log_to_file", bool(logging_config["to_file"]))
    if "level" in logging_config:
        _take("log_level", str(logging_config["level"]))
