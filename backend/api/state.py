"""
Local daemon state owned by the control surface.

The display name and the served root are guarded independently: a root
swap never waits on a name change and neither ever touches the peer
registry's lock.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from fastapi.staticfiles import StaticFiles

from config import NAME_MAX_BYTES
from discovery.models import sanitize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServedRoot:
    """An immutable root directory together with the app that serves it."""
    path: str
    files: StaticFiles = field(repr=False, compare=False)

    @classmethod
    def for_path(cls, path: str | Path) -> "ServedRoot":
        path = str(path)
        return cls(path=path, files=StaticFiles(directory=path, html=True, check_dir=False))


class LocalState:
    """Holds ``name`` and ``root``, each behind its own lock."""

    def __init__(self, name: str, root: str | Path) -> None:
        self._name_lock = threading.Lock()
        self._root_lock = threading.Lock()
        # Trim on a character boundary
        self._name = name.encode("utf-8")[:NAME_MAX_BYTES].decode("utf-8", errors="ignore")
        self._root = ServedRoot.for_path(root)

    @property
    def name(self) -> str:
        with self._name_lock:
            return self._name

    def set_name(self, raw: bytes) -> str:
        """Store a raw name. Callers enforce the length limit."""
        name = sanitize_name(raw)
        with self._name_lock:
            self._name = name
        logger.info(f"Local name set to {name!r}")
        return name

    @property
    def root(self) -> ServedRoot:
        """The current root; hold on to it for the whole request."""
        with self._root_lock:
            return self._root

    def set_root(self, path: str) -> ServedRoot:
        new_root = ServedRoot.for_path(path)
        with self._root_lock:
            self._root = new_root
        logger.info(f"Served root changed to {path}")
        return new_root
