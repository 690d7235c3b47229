"""Application-wide configuration constants."""

import getpass
import os
import socket
import tempfile
from pathlib import Path

# --- Identity ---
APP_NAME = "lannet"
VERSION = "0.1.0"

# --- Networking ---
API_HOST = os.environ.get("LANNET_API_HOST", "0.0.0.0")
API_PREFIX = "/.api"
DISCOVERY_PORT = int(os.environ.get("LANNET_DISCOVERY_PORT", "9998"))  # UDP
PING_INTERVAL = 1.0  # seconds between announcements
PEER_TIMEOUT = 5 * PING_INTERVAL  # a peer must miss 5 announcements

# --- Peer services ---
SWEEP_INTERVAL = 5.0  # seconds
REFRESH_INTERVAL = 5.0  # seconds
NAME_MAX_BYTES = 64
RESOLVE_WORKERS = 8
RESOLVE_QUEUE_SIZE = 256
RESOLVE_TIMEOUT = float(os.environ.get("LANNET_RESOLVE_TIMEOUT", "3"))

# --- Storage ---
TMP_DIR = Path(os.environ.get("LANNET_TMP_DIR", Path(tempfile.gettempdir()) / APP_NAME))
PID_FILE = TMP_DIR / "pid"
PORT_FILE = TMP_DIR / "port"
DEFAULT_ROOT = Path(os.environ.get("LANNET_ROOT", Path.home() / APP_NAME))


def default_name() -> str:
    """Name shown to other peers: ``user@host``, or just the hostname."""
    user = ""
    try:
        import pwd

        entry = pwd.getpwuid(os.getuid())
        user = entry.pw_gecos.split(",")[0] or entry.pw_name
    except (ImportError, KeyError):
        try:
            user = getpass.getuser()
        except OSError:
            user = ""

    hostname = socket.gethostname()
    if not user:
        return hostname
    return f"{user}@{hostname}"
