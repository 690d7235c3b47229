"""
lannet daemon: FastAPI application entry point.

Starts peer discovery, name resolution and the periodic peer tasks on
startup and serves the control surface plus the shared files.
"""

import logging
import socket
from contextlib import asynccontextmanager
from http import HTTPStatus
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.files import RootFiles, pages_router
from api.routes import router
from api.state import LocalState
from config import API_HOST, DEFAULT_ROOT, VERSION, default_name
from daemon import cleanup, daemon_die, write_pid, write_port
from discovery.registry import PeerRegistry
from discovery.resolver import NameResolver, ResolverPool
from discovery.service import DiscoveryService
from discovery.tasks import ExpirySweeper, NameRefreshScheduler

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop the peer services."""
    api_port = app.state.api_port
    if not api_port:
        # No listener of our own, nothing to announce
        yield
        return

    logger.info("Starting lannet peer services...")
    registry = app.state.registry
    pool = ResolverPool(NameResolver(registry))
    discovery = DiscoveryService(registry, pool)
    sweeper = ExpirySweeper(registry)
    refresher = NameRefreshScheduler(registry, pool)

    try:
        pool.start()
        await discovery.start(api_port)
        sweeper.start()
        refresher.start()
        write_port(api_port)

        logger.info(f"lannet ready on port {api_port}, serving {app.state.local.root.path}")

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down lannet peer services...")
        await refresher.stop()
        await sweeper.stop()
        await discovery.stop()
        await pool.stop()


async def http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    """Render errors as plain text so the CLI can print them as-is."""
    phrase = HTTPStatus(exc.status_code).phrase
    text = f"{exc.status_code} {phrase}\n"
    if exc.detail and exc.detail != phrase:
        text += f"{exc.detail}\n"
    return PlainTextResponse(text, status_code=exc.status_code)


def create_app(
    registry: PeerRegistry | None = None,
    local: LocalState | None = None,
    api_port: int = 0,
) -> FastAPI:
    """Build the app. Peer services only run when ``api_port`` is set."""
    if registry is None:
        registry = PeerRegistry()
    if local is None:
        local = LocalState(default_name(), DEFAULT_ROOT)

    app = FastAPI(
        title="lannet",
        version=VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.registry = registry
    app.state.local = local
    app.state.api_port = api_port

    app.add_exception_handler(StarletteHTTPException, http_error)
    app.include_router(router)
    app.include_router(pages_router)
    app.mount("/", RootFiles(local), name="files")
    return app


def bind_listener(host: str = API_HOST) -> socket.socket:
    """Bind the control surface to a random free TCP port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, 0))
    return sock


def serve(root: Path = DEFAULT_ROOT) -> None:
    """Run the daemon in this process until it is killed."""
    try:
        write_pid()
    except OSError as e:
        # Nothing works without the pid file
        logger.error(f"Could not write pid file: {e}")
        raise SystemExit(1)

    root.mkdir(parents=True, exist_ok=True)

    try:
        sock = bind_listener()
    except OSError as e:
        daemon_die(e)
    port = sock.getsockname()[1]

    app = create_app(local=LocalState(default_name(), root), api_port=port)
    server = uvicorn.Server(uvicorn.Config(app, log_level="info"))
    try:
        server.run(sockets=[sock])
    finally:
        cleanup()
    if not server.started:
        daemon_die()


if __name__ == "__main__":
    serve()
