"""
Peer registry.

Single source of truth for every peer currently believed to be alive.
One instance is created by the daemon and handed to the discovery
service, the resolver, the background tasks and the API.
"""

import time
from typing import Callable

from discovery.locks import RWLock
from discovery.models import Peer


class PeerRegistry:
    """Concurrent mapping of peer key to Peer, guarded by one RWLock."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._peers: dict[str, Peer] = {}
        self._lock = RWLock()
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def upsert_seen(self, key: str, address: str, now: float | None = None) -> bool:
        """
        Create the peer if absent, otherwise bump its last_seen.

        Returns True when a new record was inserted. last_seen never moves
        backward, so a late announcement cannot make a peer look older.
        """
        if now is None:
            now = self._clock()

        with self._lock.write():
            peer = self._peers.get(key)
            if peer is None:
                self._peers[key] = Peer(
                    key=key,
                    address=address,
                    name=address,
                    last_seen=now,
                )
                return True
            if now > peer.last_seen:
                peer.last_seen = now
            return False

    def set_name(self, key: str, name: str) -> bool:
        """Set a peer's name. No-op (returns False) if the peer has expired."""
        with self._lock.write():
            peer = self._peers.get(key)
            if peer is None:
                return False
            peer.name = name
            return True

    def reset_name(self, key: str) -> bool:
        """Put a peer's name back to its bare address."""
        with self._lock.write():
            peer = self._peers.get(key)
            if peer is None:
                return False
            peer.name = peer.address
            return True

    def get(self, key: str) -> Peer | None:
        with self._lock.read():
            peer = self._peers.get(key)
            return peer.model_copy() if peer is not None else None

    def keys(self) -> list[str]:
        with self._lock.read():
            return list(self._peers)

    def snapshot(self) -> list[Peer]:
        """Return copies of all peers, ordered by name then key."""
        with self._lock.read():
            peers = [p.model_copy() for p in self._peers.values()]
        return sorted(peers, key=lambda p: (p.name.lower(), p.key))

    def evict_older_than(self, threshold: float, now: float | None = None) -> list[Peer]:
        """Remove every peer whose last_seen predates ``now - threshold``."""
        if now is None:
            now = self._clock()
        cutoff = now - threshold

        with self._lock.write():
            stale = [p for p in self._peers.values() if p.last_seen < cutoff]
            for peer in stale:
                del self._peers[peer.key]
        return stale

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._peers)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._peers
