"""
File serving and the peer homepage.

Serves whatever the current root is. The root is looked up once per
request, so a request that started before a swap finishes against the
old directory. Directories without an index.html get a generated listing.
"""

import html
import os
from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse

from api.routes import get_registry
from api.state import LocalState
from discovery.registry import PeerRegistry

pages_router = APIRouter()


def contains_dot_file(path: str) -> bool:
    """True if any path element starts with a period."""
    return any(part.startswith(".") for part in path.split("/"))


def format_bytes(b):
    """Format bytes: 1500000 -> 1.4 MB"""
    if b >= 1_000_000_000:
        return f"{b/1_000_000_000:.1f} GB"
    if b >= 1_000_000:
        return f"{b/1_000_000:.1f} MB"
    if b >= 1_000:
        return f"{b/1_000:.1f} KB"
    return f"{b} B"


def render_listing(directory: str, url_path: str) -> str | None:
    """
    HTML listing of ``directory``, or None when it should not be listed
    (missing, unreadable, or it has an index.html to serve instead).
    Dot entries are skipped.
    """
    if os.path.isfile(os.path.join(directory, "index.html")):
        return None
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name.lower())
    except OSError:
        return None

    dirs, files = [], []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            st = entry.stat()
            modified = datetime.fromtimestamp(st.st_mtime).strftime("%Y-%m-%d %H:%M")
            size = format_bytes(st.st_size)
            is_dir = entry.is_dir()
        except OSError:
            modified, size, is_dir = "", "", False
        name = html.escape(entry.name)
        href = html.escape(quote(entry.name))
        if is_dir:
            dirs.append(f'<li><a href="{href}/">{name}/</a> <small>{modified}</small></li>')
        else:
            files.append(f'<li><a href="{href}">{name}</a> <small>{size} {modified}</small></li>')

    title = html.escape(url_path)
    items = "\n".join(dirs + files) or "<li><em>Empty directory</em></li>"
    return (
        "<!DOCTYPE html>\n<html><head><meta charset=\"utf-8\">"
        f"<title>{title}</title></head>"
        f"<body><h1>{title}</h1><ul>\n{items}\n</ul></body></html>"
    )


class RootFiles:
    """ASGI app delegating to the StaticFiles of the current root."""

    def __init__(self, local: LocalState) -> None:
        self._local = local

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] == "http" and contains_dot_file(scope["path"]):
            response = PlainTextResponse("403 Forbidden\n", status_code=403)
            await response(scope, receive, send)
            return

        root = self._local.root
        path = scope.get("path", "/")
        if scope["type"] == "http" and scope["method"] in ("GET", "HEAD") and path.endswith("/"):
            directory = os.path.join(root.path, path.lstrip("/"))
            listing = await run_in_threadpool(render_listing, directory, path)
            if listing is not None:
                await HTMLResponse(listing)(scope, receive, send)
                return

        await root.files(scope, receive, send)


@pages_router.get("/.homepage", response_class=HTMLResponse)
async def homepage(registry: PeerRegistry = Depends(get_registry)):
    """List the peers currently on the LAN."""
    items = []
    for peer in registry.snapshot():
        items.append(
            f'<li><a href="http://{html.escape(peer.key)}/">{html.escape(peer.name)}</a>'
            f" <small>{html.escape(peer.key)}</small></li>"
        )
    body = "\n".join(items) or "<li><em>No peers found yet</em></li>"
    return HTMLResponse(
        "<!DOCTYPE html>\n<html><head><meta charset=\"utf-8\"><title>lannet</title></head>"
        f"<body><h1>lannet</h1><ul>\n{body}\n</ul></body></html>"
    )
