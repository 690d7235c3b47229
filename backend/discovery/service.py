"""
UDP-based LAN discovery service.

Broadcasts this daemon's control port once per PING_INTERVAL and listens
for the same announcement from other lannet daemons on the LAN.
"""

import asyncio
import logging
import socket

from config import DISCOVERY_PORT, PING_INTERVAL
from discovery.models import peer_key
from discovery.registry import PeerRegistry
from discovery.resolver import ResolverPool

logger = logging.getLogger(__name__)


def local_addresses() -> set[str]:
    """Best-effort set of this machine's IPv4 addresses."""
    addrs = {"127.0.0.1"}
    try:
        _, _, ips = socket.gethostbyname_ex(socket.gethostname())
        addrs.update(ips)
    except OSError as e:
        logger.debug(f"Error resolving local IPs: {e}")
    return addrs


def broadcast_addresses(local_ips: set[str]) -> set[str]:
    bcast_ips = {"<broadcast>", "255.255.255.255"}
    for ip in local_ips:
        if ip.startswith("127."):
            continue
        # Simple heuristic for /24 subnets
        parts = ip.split(".")
        if len(parts) == 4:
            parts[3] = "255"
            bcast_ips.add(".".join(parts))
    return bcast_ips


def parse_port(payload: bytes) -> int | None:
    """Announcement payload is the decimal control port, nothing else."""
    try:
        text = payload.decode("ascii").strip()
    except UnicodeDecodeError:
        return None
    if not text.isdigit():
        return None
    port = int(text)
    if not 0 < port < 65536:
        return None
    return port


class DiscoveryProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol for receiving announcements."""

    def __init__(self, service: "DiscoveryService"):
        self.service = service

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.service.handle_announcement(addr[0], data)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")


class DiscoveryService:
    """Announces this daemon and records announcements from peers."""

    def __init__(
        self,
        registry: PeerRegistry,
        pool: ResolverPool,
        port: int = DISCOVERY_PORT,
        interval: float = PING_INTERVAL,
    ) -> None:
        self._registry = registry
        self._pool = pool
        self._port = port
        self._interval = interval
        self._api_port = 0
        self._local_ips: set[str] = set()
        self._transport: asyncio.DatagramTransport | None = None
        self._broadcast_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    async def start(self, api_port: int) -> None:
        """Bind the discovery socket and start announcing ``api_port``."""
        self._api_port = api_port
        self._local_ips = local_addresses()
        logger.info(f"Starting discovery on UDP port {self._port}")

        loop = asyncio.get_running_loop()

        # SO_REUSEADDR must be set before binding so several daemons
        # on one machine can share the port
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.setblocking(False)
        sock.bind(("0.0.0.0", self._port))

        transport, _ = await loop.create_datagram_endpoint(
            lambda: DiscoveryProtocol(self),
            sock=sock,
        )
        self._transport = transport
        self._stopping.clear()
        self._broadcast_task = asyncio.create_task(self._broadcast_loop())
        logger.info("Discovery service started")

    async def stop(self) -> None:
        self._stopping.set()
        if self._broadcast_task:
            await self._broadcast_task
            self._broadcast_task = None
        if self._transport:
            self._transport.close()
            self._transport = None
        logger.info("Discovery service stopped")

    def is_self(self, address: str, port: int) -> bool:
        return port == self._api_port and address in self._local_ips

    def handle_announcement(self, address: str, payload: bytes, now: float | None = None) -> bool:
        """
        Record an announcement from ``address``.

        The registry write happens first; name resolution for a new peer is
        only queued, never awaited here. Returns True for a new peer.
        """
        port = parse_port(payload)
        if port is None:
            logger.debug(f"Ignoring invalid announcement from {address}: {payload[:32]!r}")
            return False
        if self.is_self(address, port):
            return False

        key = peer_key(address, port)
        is_new = self._registry.upsert_seen(key, address, now=now)
        if is_new:
            logger.info(f"Discovered peer {key}")
            self._pool.submit_nowait(key)
        return is_new

    async def _broadcast_loop(self) -> None:
        """Send an announcement every interval until stopped."""
        data = str(self._api_port).encode("ascii")
        targets = broadcast_addresses(self._local_ips)

        while not self._stopping.is_set():
            if self._transport:
                for bcast_ip in targets:
                    try:
                        self._transport.sendto(data, (bcast_ip, self._port))
                    except OSError as e:
                        # Some interfaces don't support broadcast
                        logger.debug(f"Announcement to {bcast_ip} failed: {e}")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
