"""
Peer name resolution.

Asks each peer for its self-reported name over a short HTTP request.
Resolution is best effort: failures never propagate, they are reported
as a ResolveOutcome so callers (and tests) can tell what happened.
"""

import asyncio
import logging
from enum import Enum

import httpx

from config import API_PREFIX, NAME_MAX_BYTES, RESOLVE_QUEUE_SIZE, RESOLVE_TIMEOUT, RESOLVE_WORKERS
from discovery.models import sanitize_name
from discovery.registry import PeerRegistry

logger = logging.getLogger(__name__)


class ResolveOutcome(str, Enum):
    """Result of one name resolution attempt."""
    UPDATED = "updated"  # new name stored
    RESET = "reset"  # peer declined, name set back to its address
    RETAINED = "retained"  # failure or oversized reply, previous name kept
    GONE = "gone"  # peer expired before the result could be written


class NameResolver:
    """Fetches peer names and writes them into the registry."""

    def __init__(
        self,
        registry: PeerRegistry,
        client: httpx.AsyncClient | None = None,
        timeout: float = RESOLVE_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        # Wall-clock bound on a whole resolution, body included
        self._deadline = 2 * timeout

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_name(self, key: str) -> ResolveOutcome:
        """Resolve one peer. Never raises for network problems."""
        try:
            return await asyncio.wait_for(self._fetch(key), timeout=self._deadline)
        except asyncio.TimeoutError:
            logger.debug(f"Name request to {key} timed out")
            return ResolveOutcome.RETAINED

    async def _fetch(self, key: str) -> ResolveOutcome:
        url = f"http://{key}{API_PREFIX}/getName"
        try:
            async with self._client.stream("GET", url) as resp:
                if resp.status_code != httpx.codes.OK:
                    logger.debug(f"{key} declined name request ({resp.status_code})")
                    if self._registry.reset_name(key):
                        return ResolveOutcome.RESET
                    return ResolveOutcome.GONE

                # Only read up to one byte past the limit
                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > NAME_MAX_BYTES:
                        logger.debug(f"{key} sent a name longer than {NAME_MAX_BYTES} bytes")
                        return ResolveOutcome.RETAINED
        except httpx.HTTPError as e:
            logger.debug(f"Name request to {key} failed: {e}")
            return ResolveOutcome.RETAINED

        if not body:
            # Empty name means "use my address"
            changed = self._registry.reset_name(key)
        else:
            changed = self._registry.set_name(key, sanitize_name(bytes(body)))
        return ResolveOutcome.UPDATED if changed else ResolveOutcome.GONE


class ResolverPool:
    """
    Fixed set of workers draining a bounded queue of peer keys.

    At most ``workers`` resolutions run at once across the daemon.
    A key already waiting in the queue is not queued twice.
    """

    def __init__(
        self,
        resolver: NameResolver,
        workers: int = RESOLVE_WORKERS,
        queue_size: int = RESOLVE_QUEUE_SIZE,
    ) -> None:
        self._resolver = resolver
        self._worker_count = workers
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._pending: set[str] = set()
        self._workers: list[asyncio.Task] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"resolver-{i}")
            for i in range(self._worker_count)
        ]
        logger.info(f"Name resolver started with {self._worker_count} workers")

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        await self._resolver.aclose()
        logger.info("Name resolver stopped")

    async def submit(self, key: str) -> None:
        """Queue a resolution, waiting for room when the queue is full."""
        if key in self._pending:
            return
        self._pending.add(key)
        try:
            await self._queue.put(key)
        except asyncio.CancelledError:
            self._pending.discard(key)
            raise

    def submit_nowait(self, key: str) -> bool:
        """Queue a resolution without waiting. Returns False if dropped."""
        if key in self._pending:
            return True
        try:
            self._queue.put_nowait(key)
        except asyncio.QueueFull:
            logger.warning(f"Resolver queue full, dropping name request for {key}")
            return False
        self._pending.add(key)
        return True

    async def join(self) -> None:
        """Wait until every queued resolution has finished."""
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._pending.discard(key)
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                outcome = await self._resolver.fetch_name(key)
                logger.debug(f"Resolved {key}: {outcome.value}")
            except Exception as e:
                logger.error(f"Unexpected error resolving {key}: {e}", exc_info=True)
            finally:
                self.in_flight -= 1
                self._queue.task_done()
