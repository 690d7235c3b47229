"""
Daemon bookkeeping.

The pid and port files are how the CLI finds a running daemon. They must
not outlive it, so every fatal path goes through ``daemon_die``.
"""

import logging
import os
import sys

from config import PID_FILE, PORT_FILE, TMP_DIR

logger = logging.getLogger(__name__)


def write_pid() -> None:
    TMP_DIR.mkdir(parents=True, exist_ok=True)
    PID_FILE.write_text(str(os.getpid()))


def write_port(port: int) -> None:
    TMP_DIR.mkdir(parents=True, exist_ok=True)
    PORT_FILE.write_text(str(port))


def read_pid() -> int | None:
    try:
        return int(PID_FILE.read_text().strip())
    except (OSError, ValueError):
        return None


def read_port() -> int | None:
    try:
        return int(PORT_FILE.read_text().strip())
    except (OSError, ValueError):
        return None


def is_running() -> bool:
    return read_pid() is not None


def cleanup() -> None:
    """Remove the pid and port files if present."""
    for path in (PID_FILE, PORT_FILE):
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def daemon_die(exc: BaseException | None = None) -> None:
    """Clean up after an unrecoverable error and exit."""
    if exc is not None:
        logger.error(f"Daemon failed: {exc}")
    cleanup()
    sys.exit(1)
