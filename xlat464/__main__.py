"""
Entry point for xlat464.

Run with: python -m xlat464 --iface <upstream interface>
"""

from __future__ import annotations

import argparse
import signal
import sys
import atexit
import threading

from .config import (
    CONFIG_FILE,
    STATUS_FILE,
    RuntimeConfig,
    load_config_file,
    apply_config_file,
    save_default_config,
)
from .daemon import ClatdControl
from .exceptions import ConfigError, InterfaceError
from .links import PollingConnectivityMonitor
from .logging_setup import setup_logging, log, format_block
from .netmon import InterfaceWatcher
from .notify import BroadcastNotifier, CompositeNotifier, StateFileNotifier
from .preflight import validate_startup
from .service import Nat464xlatService


_stop_flag = threading.Event()


def _setup_signal_handlers() -> None:
    """Configure signal handlers for graceful shutdown."""

    def _shutdown_handler(signum: int, frame) -> None:
        log(f"[SHUTDOWN] Received {signal.Signals(signum).name}, stopping...")
        _stop_flag.set()

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)
    signal.signal(signal.SIGHUP, _shutdown_handler)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="xlat464 - manage the 464XLAT translation interface"
    )
    ap.add_argument(
        "--iface",
        help="Primary mobile upstream interface (e.g., rmnet0, wwan0)",
    )
    ap.add_argument(
        "--clat-iface",
        help="Translation interface name (default: clat)",
    )
    ap.add_argument(
        "--clatd",
        help="Path to the translation daemon binary",
    )
    ap.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between link and interface polls",
    )
    ap.add_argument(
        "--daemon-timeout",
        type=float,
        help="Seconds before a daemon start/stop call is abandoned",
    )
    ap.add_argument(
        "--status-file",
        nargs="?",
        const=STATUS_FILE,
        help=f"Write the latest state change to this JSON file (default path: {STATUS_FILE})",
    )
    ap.add_argument(
        "--reap-stale-clat",
        action="store_true",
        help="Stop the daemon if a clat interface appears while stopped",
    )
    ap.add_argument(
        "--skip-preflight",
        action="store_true",
        help="Do not run pre-flight checks",
    )
    ap.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable file logging",
    )
    ap.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    ap.add_argument(
        "--config",
        help=f"Path to config file (default: {CONFIG_FILE})",
    )
    ap.add_argument(
        "--init-config",
        action="store_true",
        help="Generate default configuration file and exit",
    )
    return ap


def config_from_args(args: argparse.Namespace) -> RuntimeConfig:
    """Build the runtime config; CLI args take precedence over the file."""
    config = RuntimeConfig(
        upstream_iface=args.iface or "",
        reap_stale_clat=args.reap_stale_clat,
        log_to_file=not args.no_log_file,
        log_level=args.log_level,
    )
    if args.clat_iface:
        config.clat_iface = args.clat_iface
    if args.clatd:
        config.clatd_path = args.clatd
    if args.poll_interval is not None:
        config.poll_interval = args.poll_interval
    if args.daemon_timeout is not None:
        config.daemon_timeout = args.daemon_timeout
    if args.status_file:
        config.status_file = args.status_file

    apply_config_file(config, load_config_file(args.config))
    return config


def build_service(config: RuntimeConfig) -> Nat464xlatService:
    """Assemble the service from the host-backed collaborators."""
    broadcaster = BroadcastNotifier()
    notifier = broadcaster
    if config.status_file:
        notifier = CompositeNotifier(broadcaster, StateFileNotifier(config.status_file))

    return Nat464xlatService(
        connectivity=PollingConnectivityMonitor(
            config.upstream_iface, poll_interval=config.poll_interval
        ),
        daemon=ClatdControl(config.clatd_path, stop_grace=config.stop_grace),
        notifier=notifier,
        interfaces=InterfaceWatcher(poll_interval=config.poll_interval),
        config=config,
    )


def main(argv=None):
    """Main entry point for xlat464."""
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.init_config:
        config_path = args.config or CONFIG_FILE
        if save_default_config(config_path):
            print(f"Default configuration saved to: {config_path}")
            sys.exit(0)
        print(f"Failed to save configuration to: {config_path}")
        sys.exit(1)

    try:
        config = config_from_args(args)
        if not config.upstream_iface:
            ap.error("--iface is required (or set 'upstream_iface' in config file)")
        config.validate()
    except ConfigError as e:
        ap.error(str(e))

    if not args.skip_preflight:
        print("Running pre-flight checks...")
        try:
            for warning in validate_startup(config.upstream_iface, config.clatd_path):
                print(f"  [WARN] {warning}")
            print("Pre-flight checks passed.\n")
        except InterfaceError as e:
            print(f"\nError: {e}")
            sys.exit(1)

    setup_logging(log_to_file=config.log_to_file, log_level=config.log_level)

    _setup_signal_handlers()

    service = build_service(config)
    atexit.register(service.stop)

    log(format_block("CONFIG", [
        f"upstream     : {config.upstream_iface}",
        f"clat iface   : {config.clat_iface}",
        f"clatd        : {config.clatd_path}",
        f"poll interval: {config.poll_interval}s",
        f"daemon limit : {config.daemon_timeout}s",
        f"notify limit : {config.notify_timeout}s",
        f"status file  : {config.status_file or '-'}",
    ]))

    service.start()
    try:
        while not _stop_flag.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
        log("[CLEANUP] xlat464 shut down")


if __name__ == "__main__":
    main()
