"""
In-memory store for pending authorization flows (CSRF state -> return URL, origin).
Written by GET /auth, popped by GET /callback, otherwise evicted by a periodic sweep.
Process-local: a restart drops every pending flow.
"""
import asyncio
import logging
import secrets
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from oauth_relay.config import STATE_SWEEP_INTERVAL_SECONDS, STATE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingAuthState:
    return_url: str
    origin_address: str | None
    created_at: float

    def expired(self, now: float, ttl: float) -> bool:
        return (now - self.created_at) > ttl


def generate_state() -> str:
    """Opaque value for CSRF protection; returned by Google in the callback."""
    return secrets.token_urlsafe(32)


def sweep_expired(
    pending: Mapping[str, PendingAuthState],
    now: float,
    ttl: float,
) -> dict[str, PendingAuthState]:
    """Return the entries of `pending` that are still live at `now`."""
    return {token: s for token, s in pending.items() if not s.expired(now, ttl)}


class PendingStateCache:
    """
    Tokens for in-flight authorization attempts. Each token is consumed at most once.
    All access goes through one lock, so two callbacks racing on the same state
    cannot both succeed.
    """

    def __init__(
        self,
        ttl_seconds: float = STATE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingAuthState] = {}
        self._lock = threading.Lock()

    def begin(self, return_url: str, origin_address: str | None = None) -> str:
        """Record a new pending flow and return its state token."""
        with self._lock:
            token = generate_state()
            while token in self._pending:
                token = generate_state()
            self._pending[token] = PendingAuthState(
                return_url=return_url,
                origin_address=origin_address,
                created_at=self._clock(),
            )
        return token

    def consume(self, token: str) -> PendingAuthState | None:
        """
        Pop the flow for `token`. None when it was never issued, was already used,
        or has expired; callers get no hint which.
        """
        with self._lock:
            state = self._pending.pop(token, None)
            if state is None or state.expired(self._clock(), self.ttl_seconds):
                return None
            return state

    def sweep(self, now: float | None = None) -> int:
        """Drop expired flows. Returns how many were removed."""
        with self._lock:
            if now is None:
                now = self._clock()
            live = sweep_expired(self._pending, now, self.ttl_seconds)
            removed = len(self._pending) - len(live)
            self._pending = live
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._pending


class StateSweeper:
    """Background task that sweeps a PendingStateCache on a fixed interval."""

    def __init__(self, cache: PendingStateCache, interval_seconds: float = STATE_SWEEP_INTERVAL_SECONDS):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="state-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            removed = self.cache.sweep()
            if removed:
                logger.debug("Swept %d expired pending state(s); %d remain", removed, len(self.cache))
