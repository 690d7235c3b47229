import pytest
from fastapi.testclient import TestClient

from api.state import LocalState
from discovery.registry import PeerRegistry
from main import create_app

LOCAL = "127.0.0.1"
REMOTE = "192.168.1.20"


def from_host(app, host):
    """Make every request to ``app`` look like it came from ``host``."""
    async def asgi(scope, receive, send):
        if scope["type"] == "http":
            scope = dict(scope, client=(host, 50000))
        await app(scope, receive, send)
    return asgi


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return PeerRegistry(clock=clock)


@pytest.fixture
def root_dir(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    (root / "hello.txt").write_text("old root")
    return root


@pytest.fixture
def local(root_dir):
    return LocalState("alice@laptop", root_dir)


@pytest.fixture
def app(registry, local):
    return create_app(registry=registry, local=local)


@pytest.fixture
def local_client(app):
    return TestClient(from_host(app, LOCAL))


@pytest.fixture
def remote_client(app):
    return TestClient(from_host(app, REMOTE))
