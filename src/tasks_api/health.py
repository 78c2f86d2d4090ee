"""
Backend reachability tracking.

HealthState is the only state shared across requests. It is advisory: the
/health endpoint reports it, nothing else reads it, and request handling
never waits on it. BackendMonitor keeps it current from a background task,
retrying with bounded exponential backoff and then at the regular check
interval.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from .errors import TodoServiceError
from .logging_config import get_logger
from .stores import TodoStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class HealthSnapshot:
    reachable: Optional[bool]
    last_error: Optional[str]
    attempts: int

    @property
    def database(self) -> str:
        if self.reachable is None:
            return "unknown"
        return "reachable" if self.reachable else "unreachable"

    @property
    def status(self) -> str:
        return "DEGRADED" if self.reachable is False else "OK"


class HealthState:
    """Lock-guarded backend reachability flag."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._reachable: Optional[bool] = None
        self._last_error: Optional[str] = None
        self._attempts = 0

    def mark_reachable(self) -> None:
        with self._lock:
            self._reachable = True
            self._last_error = None
            self._attempts = 0

    def mark_unreachable(self, reason: Optional[str] = None, count_attempt: bool = True) -> int:
        """Record a failure and return the number of consecutive probe failures."""
        with self._lock:
            self._reachable = False
            self._last_error = reason
            if count_attempt:
                self._attempts += 1
            return self._attempts

    def snapshot(self) -> HealthSnapshot:
        with self._lock:
            return HealthSnapshot(self._reachable, self._last_error, self._attempts)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2**(attempt-1), capped."""
    return min(base_delay * (2 ** max(attempt - 1, 0)), max_delay)


class BackendMonitor:
    """
    Supervised probe loop for the storage backend.

    While the backend answers, it is re-checked every ``check_interval``
    seconds. After a failure the probe is retried with exponential backoff;
    after ``max_attempts`` consecutive failures the monitor stops backing off
    and falls back to re-checking every ``check_interval`` seconds, so the
    state returns to reachable once the backend recovers. Requests keep being
    served either way and fail individually with BackendUnavailable.
    """

    def __init__(
        self,
        store: TodoStore,
        state: HealthState,
        max_attempts: int = 5,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
        check_interval: float = 30.0,
    ) -> None:
        self.store = store
        self.state = state
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.check_interval = check_interval
        self._task: Optional[asyncio.Task] = None

    async def probe(self) -> bool:
        """Ping the backend once from a worker thread and record the outcome."""
        try:
            await asyncio.to_thread(self.store.ping)
        except TodoServiceError as e:
            failures = self.state.mark_unreachable(str(e.details.get("reason") or e.message))
            logger.warning(f"Backend {self.store.name} unreachable (attempt {failures}/{self.max_attempts})")
            return False
        except Exception as e:
            failures = self.state.mark_unreachable(type(e).__name__)
            logger.exception(
                f"Backend {self.store.name} ping failed unexpectedly (attempt {failures}/{self.max_attempts})"
            )
            return False
        was = self.state.snapshot().reachable
        self.state.mark_reachable()
        if was is not True:
            logger.info(f"Backend {self.store.name} reachable")
        return True

    def next_delay(self, failures: int) -> float:
        """Seconds to wait before the next probe after ``failures`` consecutive failures."""
        if failures == 0 or failures >= self.max_attempts:
            return self.check_interval
        return backoff_delay(failures, self.base_delay, self.max_delay)

    async def run(self) -> None:
        while True:
            if await self.probe():
                failures = 0
            else:
                failures = self.state.snapshot().attempts
                if failures == self.max_attempts:
                    logger.error(
                        f"Backend {self.store.name} still unreachable after {failures} attempts; "
                        f"re-checking every {self.check_interval:.1f}s, requests fail with 503 until it recovers"
                    )
            delay = self.next_delay(failures)
            if 0 < failures < self.max_attempts:
                logger.info(f"Retrying backend probe in {delay:.1f}s")
            await asyncio.sleep(delay)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(), name="backend-monitor")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Backend monitor exited with an error")
        self._task = None


health_state = HealthState()
