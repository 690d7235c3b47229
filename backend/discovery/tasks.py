"""Periodic peer maintenance: expiry sweep and name refresh."""

import asyncio
import logging

from config import PEER_TIMEOUT, REFRESH_INTERVAL, SWEEP_INTERVAL
from discovery.models import Peer
from discovery.registry import PeerRegistry
from discovery.resolver import ResolverPool

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``run_once`` every ``interval`` seconds until stopped."""

    name = "periodic"

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def run_once(self):
        raise NotImplementedError

    def start(self) -> None:
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        self._stopping.set()
        if self._task:
            await self._task
            self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"{self.name} failed: {e}", exc_info=True)


class ExpirySweeper(PeriodicTask):
    """Drops peers that have not announced themselves for ``timeout`` seconds."""

    name = "expiry-sweeper"

    def __init__(
        self,
        registry: PeerRegistry,
        interval: float = SWEEP_INTERVAL,
        timeout: float = PEER_TIMEOUT,
    ) -> None:
        super().__init__(interval)
        self._registry = registry
        self.timeout = timeout

    async def run_once(self) -> list[Peer]:
        stale = self._registry.evict_older_than(self.timeout)
        for peer in stale:
            logger.info(f"Peer lost: {peer.name} ({peer.key})")
        return stale


class NameRefreshScheduler(PeriodicTask):
    """Re-resolves every known peer's name through the resolver pool."""

    name = "name-refresh"

    def __init__(
        self,
        registry: PeerRegistry,
        pool: ResolverPool,
        interval: float = REFRESH_INTERVAL,
    ) -> None:
        super().__init__(interval)
        self._registry = registry
        self._pool = pool

    async def run_once(self) -> int:
        keys = self._registry.keys()
        for key in keys:
            # Blocks while the queue is full
            await self._pool.submit(key)
        return len(keys)
