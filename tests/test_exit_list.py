import threading
from types import SimpleNamespace

import requests

from onionify.core.keys import K_EXIT_LIST_BLOB
from onionify.workflows import exit_list
from onionify.workflows.exit_list import ExitListChecker, fetch_exit_list
from onionify.workflows.storage import MemoryCache


BLOB = "ExitNode 0011\nPublished 2024-01-01 00:00:00\nExitAddress 185.220.101.4 2024-01-01 00:10:00\n"


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeStreamResponse:
    encoding = "utf-8"

    def __init__(self, chunks, on_chunk=None):
        self._chunks = chunks
        self._on_chunk = on_chunk
        self.yielded = 0
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            if self._on_chunk is not None:
                self._on_chunk()
            self.yielded += 1
            yield chunk


def test_fetch_uses_requests_with_tls_and_timeout(monkeypatch):
    seen = {}
    response = FakeStreamResponse([BLOB[:20].encode(), BLOB[20:].encode()])

    def fake_get(url, **kwargs):
        seen["url"] = url
        seen.update(kwargs)
        return response

    monkeypatch.setattr(exit_list.requests, "get", fake_get)
    assert fetch_exit_list(timeout=30) == BLOB
    assert seen["url"] == "https://check.torproject.org/exit-addresses"
    assert seen["verify"] is True
    assert seen["timeout"] == 5.0
    assert seen["allow_redirects"] is False
    assert seen["stream"] is True
    assert response.closed is True


def test_slow_stream_is_cut_off_at_deadline(monkeypatch):
    now = [1000.0]

    def tick():
        # Each chunk arrives just inside the per-read timeout
        now[0] += 2.0

    response = FakeStreamResponse([b"ExitAddress 1.2.3.4 x\n"] * 10, on_chunk=tick)
    monkeypatch.setattr(exit_list, "time", SimpleNamespace(monotonic=lambda: now[0]))
    monkeypatch.setattr(exit_list.requests, "get", lambda url, **kwargs: response)

    assert fetch_exit_list(timeout=5) is None
    assert response.yielded == 3
    assert now[0] - 1000.0 <= 6.0


def test_oversized_body_is_rejected(monkeypatch):
    monkeypatch.setattr(exit_list, "EXIT_LIST_MAX_BYTES", 64)
    response = FakeStreamResponse([b"ExitAddress 1.2.3.4 x\n" * 2] * 3)
    monkeypatch.setattr(exit_list.requests, "get", lambda url, **kwargs: response)
    assert fetch_exit_list() is None
    assert response.yielded == 2


def test_fetch_swallows_network_errors(monkeypatch):
    def fake_get(url, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(exit_list.requests, "get", fake_get)
    assert fetch_exit_list() is None


def test_fetch_rejects_bodies_without_exit_addresses():
    assert fetch_exit_list(fetch=lambda url, timeout: "<html>captive portal</html>") is None
    assert fetch_exit_list(fetch=lambda url, timeout: "") is None


def test_checker_caches_blob_for_ttl():
    calls = {"count": 0}

    def fake_fetch(url, timeout):
        calls["count"] += 1
        return BLOB

    cache_clock = FakeClock()
    cache = MemoryCache(clock=cache_clock)
    checker = ExitListChecker(cache, fetch=fake_fetch)

    assert checker.is_exit_node("185.220.101.4") is True
    assert checker.is_exit_node("185.220.101.5") is False
    assert calls["count"] == 1
    assert cache.get(K_EXIT_LIST_BLOB) == BLOB

    cache_clock.now += 24 * 60 * 60 + 1
    assert checker.is_exit_node("185.220.101.4") is True
    assert calls["count"] == 2


def test_failure_starts_cooldown():
    calls = {"count": 0}

    def failing(url, timeout):
        calls["count"] += 1
        raise OSError("unreachable")

    clock = FakeClock()
    checker = ExitListChecker(MemoryCache(), fetch=failing, clock=clock, cooldown_seconds=300)

    assert checker.is_exit_node("185.220.101.4") is False
    assert checker.is_exit_node("185.220.101.4") is False
    assert calls["count"] == 1

    clock.now += 301
    assert checker.is_exit_node("185.220.101.4") is False
    assert calls["count"] == 2


def test_concurrent_lookup_skips_while_refresh_in_flight():
    started = threading.Event()
    release = threading.Event()
    calls = {"count": 0}

    def slow_fetch(url, timeout):
        calls["count"] += 1
        started.set()
        release.wait(5)
        return BLOB

    checker = ExitListChecker(MemoryCache(), fetch=slow_fetch)
    results = {}

    def first():
        results["first"] = checker.is_exit_node("185.220.101.4")

    worker = threading.Thread(target=first)
    worker.start()
    assert started.wait(5)
    # Second request does not wait for the in-flight refresh
    results["second"] = checker.is_exit_node("185.220.101.4")
    release.set()
    worker.join(5)

    assert results == {"first": True, "second": False}
    assert calls["count"] == 1
