import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

logger = logging.getLogger("pipedrive_mcp.rate_limits")


@dataclass
class RateWindow:
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: float
    limit: int

    @property
    def reset_iso(self) -> str:
        return datetime.fromtimestamp(self.reset_time, tz=timezone.utc).isoformat().replace("+00:00", "Z")

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_iso,
        }


class UserRateLimiter:
    """
    Fixed-window admission check keyed by principal id.

    Never blocks or queues: a denied request must wait until `reset_time`.
    Expired windows are dropped by a background sweep task owned by this
    object (start_sweeper / stop_sweeper).
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        sweep_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self.sweep_interval_seconds = float(sweep_interval_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, RateWindow] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def check_limit(self, user_id: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            window = self._windows.get(user_id)
            if window is None or now >= window.reset_time:
                # First request or window expired
                window = RateWindow(count=1, reset_time=now + self.window_seconds)
                self._windows[user_id] = window
                return RateLimitDecision(True, self.max_requests - 1, window.reset_time, self.max_requests)

            if window.count >= self.max_requests:
                return RateLimitDecision(False, 0, window.reset_time, self.max_requests)

            window.count += 1
            return RateLimitDecision(True, self.max_requests - window.count, window.reset_time, self.max_requests)

    def sweep_expired(self) -> int:
        """Drop windows whose reset time has passed. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if now >= window.reset_time]
            for key in expired:
                del self._windows[key]
        return len(expired)

    async def _sweep_loop(self) -> None:
        assert self._shutdown_event is not None
        logger.info(f"Rate window sweep started (interval: {self.sweep_interval_seconds}s)")
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.sweep_interval_seconds)
            except asyncio.TimeoutError:
                removed = self.sweep_expired()
                if removed:
                    logger.debug(f"Swept {removed} expired rate windows")
        logger.info("Rate window sweep stopped")

    @property
    def sweeper_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start_sweeper(self) -> None:
        if self.sweeper_running:
            return
        self._shutdown_event = asyncio.Event()
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        if self._shutdown_event:
            self._shutdown_event.set()
        if self._sweep_task:
            try:
                await asyncio.wait_for(self._sweep_task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Rate window sweep did not stop gracefully, cancelling")
                self._sweep_task.cancel()
                try:
                    await self._sweep_task
                except asyncio.CancelledError:
                    pass
        self._sweep_task = None
        self._shutdown_event = None
