"""Tests for throttle middleware and the in-memory counter store."""

import threading
import time

import pytest

from waypoint.app import App
from waypoint.http.request import Request
from waypoint.middleware.throttle import MESSAGE, ThrottleMiddleware, client_identity
from waypoint.security.audit import SecurityEvent, set_security_event_sink
from waypoint.security.rate_limit import Hit, MemoryCounterStore, seconds_left
from waypoint.testing import TestClient, assert_error_envelope


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class WallClockStore:
    """A store keyed on wall-clock time, like a shared cache with TTLs."""

    def __init__(self) -> None:
        self._windows: dict[str, tuple[int, float]] = {}

    def increment(self, key: str, window_seconds: float) -> Hit:
        now = time.time()
        count, window_end = self._windows.get(key, (0, 0.0))
        if window_end <= now:
            count, window_end = 0, now + window_seconds
        self._windows[key] = (count + 1, window_end)
        return Hit(count=count + 1, retry_after=seconds_left(window_end, now))

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class _User:
    def __init__(self, id: int) -> None:
        self.id = id


def _request(headers: dict[str, str] | None = None, client=("10.0.0.1", 5000)) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request.from_asgi(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": raw,
            "query_string": b"",
            "client": client,
        },
        None,
    )


def _throttled_app(clock: FakeClock, identifier: str = "throttle:3,1") -> App:
    app = App(counter_store=MemoryCounterStore(clock=clock))

    @app.get("/api/items", middleware=identifier)
    def items():
        return {"items": []}

    @app.get("/page", middleware=identifier)
    def page():
        return "<p>page</p>"

    @app.get("/apiary", middleware=identifier)
    def apiary():
        return "<p>bees</p>"

    return app


class TestMemoryCounterStore:
    def test_counts_within_window(self) -> None:
        clock = FakeClock()
        store = MemoryCounterStore(clock=clock)
        assert store.increment("k", 60).count == 1
        assert store.increment("k", 60).count == 2
        clock.advance(19.8)
        hit = store.increment("k", 60)
        assert hit == Hit(count=3, retry_after=41)

    def test_window_starts_at_first_hit(self) -> None:
        clock = FakeClock()
        store = MemoryCounterStore(clock=clock)
        store.increment("k", 60)
        clock.advance(59)
        assert store.increment("k", 60).count == 2
        clock.advance(1)
        fresh = store.increment("k", 60)
        assert fresh.count == 1
        assert fresh.retry_after == 60

    def test_keys_are_independent(self) -> None:
        store = MemoryCounterStore(clock=FakeClock())
        store.increment("a", 60)
        assert store.increment("b", 60).count == 1

    def test_reset(self) -> None:
        store = MemoryCounterStore(clock=FakeClock())
        store.increment("k", 60)
        store.reset("k")
        assert store.increment("k", 60).count == 1

    def test_retry_after_is_at_least_one_second(self) -> None:
        clock = FakeClock()
        store = MemoryCounterStore(clock=clock)
        store.increment("k", 60)
        clock.advance(59.9)
        assert store.increment("k", 60).retry_after == 1

    def test_concurrent_increments_never_share_a_count(self) -> None:
        store = MemoryCounterStore()
        counts: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            seen = [store.increment("shared", 3600).count for _ in range(2000)]
            with lock:
                counts.extend(seen)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert sorted(counts) == list(range(1, 16001))


class TestClientIdentity:
    def test_user_id_wins(self) -> None:
        request = _request({"X-Forwarded-For": "1.2.3.4"}).with_attribute("user", _User(7))
        assert client_identity(request) == "user:7"

    def test_forwarded_first_hop(self) -> None:
        request = _request({"X-Forwarded-For": "1.2.3.4, 5.6.7.8", "X-Real-IP": "9.9.9.9"})
        assert client_identity(request) == "ip:1.2.3.4"

    def test_real_ip(self) -> None:
        assert client_identity(_request({"X-Real-IP": "9.9.9.9"})) == "ip:9.9.9.9"

    def test_client_address(self) -> None:
        assert client_identity(_request()) == "ip:10.0.0.1"

    def test_untrusted_proxy_headers_ignored(self) -> None:
        request = _request({"X-Forwarded-For": "1.2.3.4"})
        assert client_identity(request, trust_proxy_headers=False) == "ip:10.0.0.1"


class TestThrottleMiddleware:
    def test_rejects_non_positive_limits(self) -> None:
        with pytest.raises(ValueError):
            ThrottleMiddleware(0, 1)
        with pytest.raises(ValueError):
            ThrottleMiddleware(5, 0)

    async def test_limit_headers_on_passing_responses(self) -> None:
        app = _throttled_app(FakeClock())
        async with TestClient(app) as client:
            first = await client.get("/api/items")
            second = await client.get("/api/items")
        assert first.status == 200
        assert first.header("X-RateLimit-Limit") == "3"
        assert first.header("X-RateLimit-Remaining") == "2"
        assert second.header("X-RateLimit-Remaining") == "1"

    async def test_request_over_limit_is_rejected(self) -> None:
        app = _throttled_app(FakeClock())
        async with TestClient(app) as client:
            for _ in range(3):
                assert (await client.get("/api/items")).status == 200
            response = await client.get("/api/items")
        assert_error_envelope(response, status=429, message=MESSAGE)
        assert response.header("Retry-After") == "60"
        assert response.header("X-RateLimit-Remaining") == "0"
        assert response.header("X-RateLimit-Reset") is not None

    async def test_window_expiry_allows_again(self) -> None:
        clock = FakeClock()
        app = _throttled_app(clock)
        async with TestClient(app) as client:
            for _ in range(4):
                await client.get("/api/items")
            clock.advance(30)
            blocked = await client.get("/api/items")
            clock.advance(30)
            allowed = await client.get("/api/items")
        assert blocked.status == 429
        assert blocked.header("Retry-After") == "30"
        assert allowed.status == 200
        assert allowed.header("X-RateLimit-Remaining") == "2"

    async def test_plain_text_rejection_outside_api(self) -> None:
        app = _throttled_app(FakeClock(), "throttle:1,1")
        async with TestClient(app) as client:
            await client.get("/page")
            response = await client.get("/page")
        assert response.status == 429
        assert response.text == MESSAGE
        assert "json" not in response.content_type

    async def test_json_rejection_when_client_expects_json(self) -> None:
        app = _throttled_app(FakeClock(), "throttle:1,1")
        async with TestClient(app) as client:
            await client.get("/page")
            response = await client.get("/page", headers={"Accept": "application/json"})
        assert_error_envelope(response, status=429)

    async def test_clients_counted_separately(self) -> None:
        app = _throttled_app(FakeClock(), "throttle:1,1")
        async with TestClient(app) as client:
            await client.get("/api/items", headers={"X-Forwarded-For": "1.1.1.1"})
            other = await client.get("/api/items", headers={"X-Forwarded-For": "2.2.2.2"})
            again = await client.get("/api/items", headers={"X-Forwarded-For": "1.1.1.1"})
        assert other.status == 200
        assert again.status == 429

    async def test_rejection_emits_security_event(self) -> None:
        events: list[SecurityEvent] = []
        set_security_event_sink(events.append)
        try:
            app = _throttled_app(FakeClock(), "throttle:1,1")
            async with TestClient(app) as client:
                await client.get("/api/items")
                await client.get("/api/items")
        finally:
            set_security_event_sink(None)
        assert [e.name for e in events] == ["throttle.rejected"]
        assert events[0].path == "/api/items"
        assert events[0].details["limit"] == 1

    async def test_api_prefix_needs_a_segment_boundary(self) -> None:
        app = _throttled_app(FakeClock(), "throttle:1,1")
        async with TestClient(app) as client:
            await client.get("/apiary")
            response = await client.get("/apiary")
        assert response.status == 429
        assert "json" not in response.content_type

    async def test_custom_store_drives_retry_after(self) -> None:
        app = App(counter_store=WallClockStore())

        @app.get("/api/items", middleware="throttle:1,1")
        def items():
            return {"items": []}

        async with TestClient(app) as client:
            await client.get("/api/items")
            response = await client.get("/api/items")
        assert response.status == 429
        assert 1 <= int(response.header("Retry-After")) <= 60
        reset = int(response.header("X-RateLimit-Reset"))
        assert 0 < reset - time.time() <= 61
