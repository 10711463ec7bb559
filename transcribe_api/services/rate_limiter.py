"""
Per-client fixed-window admission gate

Counters live in process memory. Each client key has its own asyncio.Lock so
check-and-increment and refund are atomic against concurrent requests from
the same client.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger
from starlette.requests import Request


@dataclass
class RateWindow:
    """Request counter for one client identifier"""

    count: int
    expires_at: float


@dataclass(frozen=True)
class AdmissionResult:
    allowed: bool
    remaining: int
    # Identifies the window a charge was taken against, so a refund can never
    # leak into a newer window.
    window_expires_at: Optional[float] = None


class RateLimiter:
    """Fixed-window counter keyed by client identifier"""

    def __init__(
        self,
        limit: int = 5,
        window_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, client_id: str) -> asyncio.Lock:
        # No await between lookup and insert, so this is race-free on one loop
        lock = self._locks.get(client_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[client_id] = lock
        return lock

    def _current_window(self, client_id: str) -> RateWindow:
        now = self._clock()
        window = self._windows.get(client_id)
        if window is None or window.expires_at < now:
            window = RateWindow(count=0, expires_at=now + self.window_seconds)
            self._windows[client_id] = window
        return window

    async def check(self, client_id: str) -> AdmissionResult:
        """Report the quota state without charging it."""
        async with self._lock_for(client_id):
            window = self._current_window(client_id)
            remaining = max(self.limit - window.count, 0)
            return AdmissionResult(
                allowed=window.count < self.limit,
                remaining=remaining,
                window_expires_at=window.expires_at,
            )

    async def admit(self, client_id: str) -> AdmissionResult:
        """Charge one request against the client's window if quota remains."""
        async with self._lock_for(client_id):
            window = self._current_window(client_id)
            if window.count >= self.limit:
                logger.warning(f"Admission denied: client={client_id}, count={window.count}")
                return AdmissionResult(
                    allowed=False, remaining=0, window_expires_at=window.expires_at
                )

            window.count += 1
            remaining = self.limit - window.count
            logger.info(f"Admitted: client={client_id}, count={window.count}, remaining={remaining}")
            return AdmissionResult(
                allowed=True, remaining=remaining, window_expires_at=window.expires_at
            )

    async def refund(self, client_id: str, admission: Optional[AdmissionResult] = None) -> None:
        """Give back a charge taken by admit() after a local validation failure."""
        async with self._lock_for(client_id):
            window = self._windows.get(client_id)
            if window is None or window.count <= 0:
                return
            if admission is not None and admission.window_expires_at != window.expires_at:
                logger.debug(f"Refund skipped, window rolled over: client={client_id}")
                return
            window.count -= 1
            logger.info(f"Refunded: client={client_id}, count={window.count}")

    def count_for(self, client_id: str) -> int:
        window = self._windows.get(client_id)
        return window.count if window else 0


def resolve_client_id(request: Request) -> str:
    """
    Client identifier used for throttling

    Trusts the address supplied by the fronting proxy first, then the
    directly observed peer address.
    """
    fly_ip = request.headers.get("fly-client-ip")
    if fly_ip:
        return fly_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host
    return "unknown"
