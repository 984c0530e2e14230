"""
Custom exceptions for xlat464.

Provides specific exception types for better error handling and debugging.
"""


class Xlat464Error(Exception):
    """Base exception for all xlat464 errors."""
    pass


# ---------------- Daemon Control Errors ----------------

class DaemonControlError(Xlat464Error):
    """Base class for translation daemon control errors."""
    pass


class DaemonStartError(DaemonControlError):
    """Failed to start the translation daemon."""
    pass


class DaemonStopError(DaemonControlError):
    """Failed to stop the translation daemon."""
    pass


class DaemonTimeoutError(DaemonControlError):
    """A daemon control call did not finish in time."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"Daemon {operation} did not complete within {timeout:.1f}s")
        self.operation = operation
        self.timeout = timeout


# ---------------- Notification Errors ----------------

class NotificationTimeoutError(Xlat464Error):
    """A state-change announcement did not finish in time."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"Notification {operation} did not complete within {timeout:.1f}s")
        self.operation = operation
        self.timeout = timeout


# ---------------- Signal Source Errors ----------------

class SignalSourceError(Xlat464Error):
    """Base class for connectivity / interface signal source errors."""
    pass


class LinkPropertiesUnavailableError(SignalSourceError):
    """Link properties of the upstream could not be read."""

    def __init__(self, iface: str, reason: str = "unknown"):
        super().__init__(f"Link properties for '{iface}' unavailable: {reason}")
        self.iface = iface
        self.reason = reason


# ---------------- Network Errors ----------------

class InterfaceError(Xlat464Error):
    """Network interface error."""
    pass


# ---------------- Configuration Errors ----------------

class ConfigError(Xlat464Error):
    """Configuration file or setting is invalid."""
    pass


# ---------------- Input Validation Errors ----------------

class ValidationError(ConfigError):
    """Input validation failed."""
    pass


class InvalidInterfaceNameError(ValidationError):
    """Invalid network interface name."""

    def __init__(self, value: str):
        super().__init__(f"Invalid interface name: '{value}'")
        self.value = value
