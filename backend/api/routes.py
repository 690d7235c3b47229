"""Control surface routes for lannet."""

import ipaddress
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response

from api.state import LocalState
from config import API_PREFIX, NAME_MAX_BYTES
from discovery.registry import PeerRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_PREFIX)

ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


# --- Dependencies ---

def get_local_state(request: Request) -> LocalState:
    return request.app.state.local


def get_registry(request: Request) -> PeerRegistry:
    return request.app.state.registry


def is_loopback(host: str | None) -> bool:
    """True if ``host`` is a loopback IP. Hostnames are never trusted."""
    if not host:
        return False
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return ip.is_loopback


def loopback_only(request: Request) -> None:
    """Reject callers on other machines before anything else happens."""
    host = request.client.host if request.client else None
    if not is_loopback(host):
        logger.warning(f"Rejected {request.method} {request.url.path} from {host}")
        raise HTTPException(status_code=403, detail="Forbidden")


def post_only(request: Request) -> None:
    if request.method != "POST":
        raise HTTPException(status_code=403, detail="Method Not Allowed\nUse POST")


async def read_limited(request: Request, limit: int) -> bytes:
    """Read at most ``limit + 1`` bytes of the request body."""
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            break
    return bytes(body[: limit + 1])


# --- Local name ---

@router.get("/getName", response_class=PlainTextResponse)
async def get_name(local: LocalState = Depends(get_local_state)):
    """Return the local name. Empty means "use my address"."""
    return PlainTextResponse(local.name)


@router.api_route(
    "/setName",
    methods=ANY_METHOD,
    dependencies=[Depends(loopback_only), Depends(post_only)],
)
async def set_name(request: Request, local: LocalState = Depends(get_local_state)):
    raw = await read_limited(request, NAME_MAX_BYTES)
    if len(raw) > NAME_MAX_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"Name was longer than {NAME_MAX_BYTES} bytes, rejected",
        )
    local.set_name(raw)
    return Response(status_code=200)


# --- Served root ---

@router.api_route(
    "/setRoot",
    methods=ANY_METHOD,
    dependencies=[Depends(loopback_only), Depends(post_only)],
)
async def set_root(request: Request, local: LocalState = Depends(get_local_state)):
    new_root = (await request.body()).decode("utf-8", errors="replace")
    if not os.path.isabs(new_root):
        raise HTTPException(
            status_code=400,
            detail="Provided root path is not an absolute path",
        )
    local.set_root(new_root)
    return Response(status_code=200)


# --- Peers ---

@router.get("/peers")
async def list_peers(registry: PeerRegistry = Depends(get_registry)):
    """Return a snapshot of the currently known peers."""
    return {"peers": [p.model_dump() for p in registry.snapshot()]}


@router.api_route("/{path:path}", methods=ANY_METHOD, include_in_schema=False)
async def unknown(path: str):
    raise HTTPException(status_code=404, detail="Not Found")
