"""Pydantic models for peer discovery."""

from pydantic import BaseModel


class Peer(BaseModel):
    """Represents a discovered daemon on the LAN."""
    key: str  # "<address>:<announced port>", never changes
    address: str
    name: str
    last_seen: float  # Unix timestamp


def peer_key(address: str, port: int | str) -> str:
    return f"{address}:{port}"


def sanitize_name(raw: bytes) -> str:
    """Decode a name, replacing invalid UTF-8 with U+FFFD."""
    return raw.decode("utf-8", errors="replace")
