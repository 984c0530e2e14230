"""
Pre-flight checks for xlat464.

Validates system requirements before the service starts watching the
upstream and controlling the translation daemon.
"""

from __future__ import annotations

import os
import shutil
import platform
from typing import Callable, List, Tuple

from .config import SYS_CLASS_NET
from .exceptions import InterfaceError


def check_interface_exists(iface: str) -> Tuple[bool, str]:
    """
    Check if the upstream interface is known to the host.

    A missing upstream is reported but is not fatal: mobile interfaces
    come and go, and the monitor picks the interface up when it appears.

    Returns:
        Tuple of (success, message)
    """
    try:
        from scapy.all import get_if_list
        interfaces = get_if_list()
        if iface in interfaces:
            return True, f"Interface '{iface}' found"
        return False, f"Interface '{iface}' not present yet. Available: {', '.join(interfaces)}"
    except Exception as e:
        return False, f"Failed to check interfaces: {e}"


def check_sysfs_available(net_path: str = SYS_CLASS_NET) -> Tuple[bool, str]:
    """Check that the kernel interface list can be read."""
    if os.path.isdir(net_path) and os.access(net_path, os.R_OK):
        return True, f"{net_path} readable"
    return False, f"{net_path} not available (Linux sysfs required)"


def check_clatd_binary(clatd_path: str) -> Tuple[bool, str]:
    """Check that the translation daemon binary can be executed."""
    if os.path.sep in clatd_path:
        if os.path.isfile(clatd_path) and os.access(clatd_path, os.X_OK):
            return True, f"clatd at {clatd_path}"
        return False, f"clatd not executable at {clatd_path}"
    found = shutil.which(clatd_path)
    if found:
        return True, f"clatd at {found}"
    return False, f"clatd '{clatd_path}' not found on PATH"


def check_root_privileges() -> Tuple[bool, str]:
    """
    Check for privileges to start the translation daemon.

    Returns:
        Tuple of (success, message)
    """
    system = platform.system()

    if system != "Linux":
        return False, f"Unsupported platform '{system}' (Linux required)"

    if os.geteuid() == 0:
        return True, "Running as root"

    return False, "Starting clatd requires root or CAP_NET_ADMIN; try running with sudo"


def run_preflight_checks(
    iface: str, clatd_path: str, verbose: bool = True
) -> List[Tuple[str, bool, str]]:
    """
    Run all pre-flight checks.

    Args:
        iface: Upstream interface to check
        clatd_path: Translation daemon binary
        verbose: Whether to print results

    Returns:
        List of (check_name, success, message) tuples
    """
    checks: List[Tuple[str, Callable[[], Tuple[bool, str]]]] = [
        ("Privileges", check_root_privileges),
        ("Interface list", check_sysfs_available),
        ("Translation daemon", lambda: check_clatd_binary(clatd_path)),
        ("Upstream interface", lambda: check_interface_exists(iface)),
    ]

    results = []

    for name, check_fn in checks:
        success, message = check_fn()
        results.append((name, success, message))

        if verbose:
            status = "[OK]" if success else "[FAIL]"
            print(f"  {status} {name}: {message}")

    return results


# Checks whose failure is reported but does not block startup
NON_CRITICAL_CHECKS = {"Upstream interface"}


def validate_startup(iface: str, clatd_path: str) -> List[str]:
    """
    Validate the system is ready to run xlat464.

    Returns warnings from non-critical checks.

    Raises:
        InterfaceError: a critical check failed
    """
    results = run_preflight_checks(iface, clatd_path, verbose=False)
    failures = [
        (name, msg) for name, success, msg in results
        if not success and name not in NON_CRITICAL_CHECKS
    ]
    warnings = [
        f"{name}: {msg}" for name, success, msg in results
        if not success and name in NON_CRITICAL_CHECKS
    ]

    if failures:
        error_lines = ["Pre-flight checks failed:"]
        for name, msg in failures:
            error_lines.append(f"  - {name}: {msg}")
        raise InterfaceError("\n".join(error_lines))
    return warnings
