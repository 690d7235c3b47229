import itertools
import threading

from discovery.locks import RWLock
from discovery.models import peer_key, sanitize_name
from discovery.registry import PeerRegistry


def test_first_sighting_uses_address_as_name(registry, clock):
    assert registry.upsert_seen("10.0.0.5:4000", "10.0.0.5") is True

    peer = registry.get("10.0.0.5:4000")
    assert peer.name == "10.0.0.5"
    assert peer.address == "10.0.0.5"
    assert peer.last_seen == clock.now


def test_repeat_announcement_only_touches_last_seen(registry, clock):
    registry.upsert_seen("10.0.0.5:4000", "10.0.0.5")
    registry.set_name("10.0.0.5:4000", "bob")
    clock.advance(3)

    assert registry.upsert_seen("10.0.0.5:4000", "10.0.0.5") is False

    peer = registry.get("10.0.0.5:4000")
    assert peer.name == "bob"
    assert peer.last_seen == clock.now
    assert len(registry) == 1


def test_last_seen_is_max_regardless_of_order():
    stamps = [5.0, 1.0, 9.0, 3.0]
    for order in itertools.permutations(stamps):
        registry = PeerRegistry()
        for ts in order:
            registry.upsert_seen("a:1", "a", now=ts)
        assert registry.get("a:1").last_seen == 9.0


def test_set_name_on_missing_peer_is_noop(registry):
    assert registry.set_name("10.0.0.9:1", "ghost") is False
    assert registry.reset_name("10.0.0.9:1") is False
    assert "10.0.0.9:1" not in registry


def test_reset_name_goes_back_to_address(registry):
    registry.upsert_seen("10.0.0.5:4000", "10.0.0.5")
    registry.set_name("10.0.0.5:4000", "bob")

    assert registry.reset_name("10.0.0.5:4000") is True
    assert registry.get("10.0.0.5:4000").name == "10.0.0.5"


def test_snapshot_returns_copies(registry):
    registry.upsert_seen("10.0.0.5:4000", "10.0.0.5")
    snap = registry.snapshot()
    snap[0].name = "mutated"

    assert registry.get("10.0.0.5:4000").name == "10.0.0.5"


def test_snapshot_sorted_by_name(registry):
    registry.upsert_seen("10.0.0.1:1", "10.0.0.1")
    registry.upsert_seen("10.0.0.2:1", "10.0.0.2")
    registry.set_name("10.0.0.1:1", "zed")
    registry.set_name("10.0.0.2:1", "Amy")

    assert [p.name for p in registry.snapshot()] == ["Amy", "zed"]


def test_evict_older_than(registry, clock):
    registry.upsert_seen("old:1", "old")
    clock.advance(4)
    registry.upsert_seen("new:1", "new")
    clock.advance(2)

    evicted = registry.evict_older_than(5)

    assert [p.key for p in evicted] == ["old:1"]
    assert registry.keys() == ["new:1"]


def test_peer_within_window_survives(registry, clock):
    registry.upsert_seen("a:1", "a")
    clock.advance(5)

    assert registry.evict_older_than(5) == []
    assert "a:1" in registry


def test_concurrent_writers_keep_one_record_per_key():
    registry = PeerRegistry()

    def announce(n):
        for i in range(200):
            registry.upsert_seen(f"10.0.0.{i % 10}:1", f"10.0.0.{i % 10}", now=float(n * 1000 + i))

    threads = [threading.Thread(target=announce, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry) == 10
    assert max(p.last_seen for p in registry.snapshot()) == 3199.0


def test_rwlock_allows_concurrent_readers():
    lock = RWLock()
    inside = threading.Barrier(2, timeout=2)

    def reader():
        with lock.read():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not inside.broken


def test_rwlock_writer_excludes_readers():
    lock = RWLock()
    events = []

    lock.acquire_write()
    t = threading.Thread(target=lambda: (lock.acquire_read(), events.append("read"), lock.release_read()))
    t.start()
    t.join(0.1)
    assert events == []

    lock.release_write()
    t.join(2)
    assert events == ["read"]


def test_peer_key():
    assert peer_key("10.0.0.5", 4000) == "10.0.0.5:4000"


def test_sanitize_name_replaces_invalid_utf8():
    assert sanitize_name("héllo".encode()) == "héllo"
    assert sanitize_name(b"ok\xffok") == "ok�ok"
