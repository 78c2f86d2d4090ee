import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from helpers import bearer, make_dataapi_store, signup
from src.tasks_api import main
from src.tasks_api.errors import BackendUnavailable
from src.tasks_api.health import BackendMonitor, HealthState, backoff_delay
from src.tasks_api.repositories import TodoRepository, get_repository
from src.tasks_api.stores import InMemoryStore


class FlakyStore(InMemoryStore):
    """Fails the first ``failures`` pings, then answers."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.pings = 0

    def ping(self):
        self.pings += 1
        if self.pings <= self.failures:
            raise BackendUnavailable("connection refused")


class BrokenStore(InMemoryStore):
    def ping(self):
        raise RuntimeError("driver bug")


class DownStore(InMemoryStore):
    def ping(self):
        raise BackendUnavailable("connection refused")

    def find_all(self, username):
        raise BackendUnavailable("connection refused")


async def wait_until(predicate, interval: float = 0.005) -> None:
    while not predicate():
        await asyncio.sleep(interval)


@pytest.fixture
def state(monkeypatch) -> HealthState:
    fresh = HealthState()
    monkeypatch.setattr(main, "health_state", fresh)
    return fresh


class TestHealthState:
    def test_starts_unknown(self):
        snapshot = HealthState().snapshot()
        assert snapshot.database == "unknown"
        assert snapshot.status == "OK"

    def test_failures_accumulate_until_reachable(self):
        state = HealthState()
        assert state.mark_unreachable("refused") == 1
        assert state.mark_unreachable("refused") == 2
        snapshot = state.snapshot()
        assert snapshot.database == "unreachable"
        assert snapshot.status == "DEGRADED"
        assert snapshot.last_error == "refused"

        state.mark_reachable()
        snapshot = state.snapshot()
        assert snapshot.database == "reachable"
        assert snapshot.attempts == 0
        assert snapshot.last_error is None

    def test_request_failures_do_not_count_as_attempts(self):
        state = HealthState()
        assert state.mark_unreachable("timeout", count_attempt=False) == 0
        assert state.snapshot().database == "unreachable"


@pytest.mark.parametrize(
    "attempt,expected",
    [(1, 0.5), (2, 1.0), (3, 2.0), (4, 4.0), (8, 30.0), (20, 30.0)],
)
def test_backoff_delay_doubles_up_to_cap(attempt, expected):
    assert backoff_delay(attempt, base_delay=0.5, max_delay=30.0) == expected


class TestBackendMonitor:
    def test_backs_off_then_falls_back_to_check_interval(self):
        monitor = BackendMonitor(
            FlakyStore(0), HealthState(), max_attempts=3, base_delay=0.5, max_delay=30.0, check_interval=60.0
        )
        assert monitor.next_delay(0) == 60.0
        assert monitor.next_delay(1) == 0.5
        assert monitor.next_delay(2) == 1.0
        assert monitor.next_delay(3) == 60.0
        assert monitor.next_delay(7) == 60.0

    def test_keeps_checking_after_giving_up(self):
        store = FlakyStore(failures=4)
        state = HealthState()
        monitor = BackendMonitor(store, state, max_attempts=2, base_delay=0.001, max_delay=0.01, check_interval=0.01)

        async def scenario():
            monitor.start()
            await wait_until(lambda: state.snapshot().reachable is True)
            await monitor.stop()

        asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        assert store.pings >= 5
        assert state.snapshot().database == "reachable"
        assert state.snapshot().attempts == 0

    def test_recovers_after_transient_failures(self):
        store = FlakyStore(failures=2)
        state = HealthState()
        monitor = BackendMonitor(store, state, max_attempts=5, base_delay=0.001, max_delay=0.01)

        async def probe_three_times():
            return [await monitor.probe() for _ in range(3)]

        assert asyncio.run(probe_three_times()) == [False, False, True]
        assert state.snapshot().database == "reachable"
        assert state.snapshot().attempts == 0

    def test_unexpected_ping_error_counts_as_failure(self):
        state = HealthState()
        monitor = BackendMonitor(BrokenStore(), state)

        assert asyncio.run(monitor.probe()) is False
        snapshot = state.snapshot()
        assert snapshot.database == "unreachable"
        assert snapshot.attempts == 1
        assert snapshot.last_error == "RuntimeError"

    def test_unreadable_gateway_answer_does_not_kill_monitor(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>bad gateway</html>"))
        store = make_dataapi_store(transport=transport)
        state = HealthState()
        monitor = BackendMonitor(store, state, max_attempts=3, base_delay=0.001, max_delay=0.01, check_interval=0.01)

        async def scenario():
            task = monitor.start()
            await wait_until(lambda: state.snapshot().attempts >= 4)
            assert not task.done()
            await monitor.stop()

        asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        store.close()
        assert state.snapshot().database == "unreachable"
        assert state.snapshot().last_error == "invalid JSON response"

    def test_start_and_stop(self):
        store = FlakyStore(failures=0)
        state = HealthState()
        monitor = BackendMonitor(store, state, check_interval=60)

        async def scenario():
            task = monitor.start()
            while store.pings == 0:
                await asyncio.sleep(0.01)
            await monitor.stop()
            return task

        task = asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        assert task.cancelled()
        assert state.snapshot().database == "reachable"


class TestHealthEndpoint:
    def test_backend_failure_on_request_degrades_health(self, client, state):
        token = signup(client, "alice")
        main.app.dependency_overrides[get_repository] = lambda: TodoRepository(DownStore())

        res = client.get("/api/users/alice/todos", headers=bearer(token))
        assert res.status_code == 503
        assert res.json() == {"error": "BackendUnavailable", "message": "Storage backend unavailable"}

        health = client.get("/health")
        assert health.status_code == 200
        assert health.json()["status"] == "DEGRADED"
        assert health.json()["dependencies"] == {"database": "unreachable"}

    def test_lifespan_monitor_marks_backend_reachable(self, state):
        with TestClient(main.app) as client:
            body = client.get("/health").json()
            deadline = time.monotonic() + 5
            while body["dependencies"]["database"] == "unknown" and time.monotonic() < deadline:
                time.sleep(0.02)
                body = client.get("/health").json()
        assert body == {"status": "OK", "backend": "memory", "dependencies": {"database": "reachable"}}

    def test_health_recovers_after_monitor_gave_up(self, client, state):
        store = FlakyStore(failures=3)
        monitor = BackendMonitor(store, state, max_attempts=2, base_delay=0.001, max_delay=0.01, check_interval=0.01)

        async def scenario():
            monitor.start()
            await wait_until(lambda: state.snapshot().attempts >= 2)
            assert client.get("/health").json()["status"] == "DEGRADED"
            await wait_until(lambda: state.snapshot().reachable is True)
            await monitor.stop()

        asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        body = client.get("/health").json()
        assert body["status"] == "OK"
        assert body["dependencies"] == {"database": "reachable"}
