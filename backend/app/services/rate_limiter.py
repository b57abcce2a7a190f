"""
Per-client admission control in front of the scheduler.

Fixed-window counters keyed by client (`user:<id>` or `ip:<address>`), with a block
period once a client exceeds its quota. State lives in one process-wide instance
guarded by a lock; a sweeper thread reclaims expired entries.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from ..config import RATE_LIMIT_CLEANUP_INTERVAL_S

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_s: float
    block_duration_s: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds when the current window closes
    retry_after: int | None = None  # whole seconds, only set on denial

    def headers(self, limit: RateLimitConfig) -> dict[str, str]:
        out = {
            "X-RateLimit-Limit": str(limit.max_requests),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_time))),
        }
        if self.retry_after is not None:
            out["Retry-After"] = str(self.retry_after)
        return out


# Limit classes selected per operation kind.
RATE_LIMITS: dict[str, RateLimitConfig] = {
    "auth": RateLimitConfig(max_requests=5, window_s=60, block_duration_s=300),
    "queue": RateLimitConfig(max_requests=20, window_s=60, block_duration_s=120),
    "general": RateLimitConfig(max_requests=100, window_s=60, block_duration_s=60),
    "registration": RateLimitConfig(max_requests=3, window_s=300, block_duration_s=900),
}


def get_client_key(user_id: int | str | None = None, address: str | None = None) -> str:
    if user_id is not None and str(user_id).strip():
        return f"user:{user_id}"
    return f"ip:{(address or '').strip() or 'unknown'}"


class RateLimiter:
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        cleanup_interval_s: float = RATE_LIMIT_CLEANUP_INTERVAL_S,
    ):
        self._clock = clock
        self._cleanup_interval_s = cleanup_interval_s
        self._lock = threading.Lock()
        # key -> {"count": int, "reset_time": float, "blocked_until": float | None}
        self._entries: dict[str, dict] = {}
        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None

    # -------------------- lifecycle --------------------

    def start(self) -> None:
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop_event.clear()
            self._sweeper = threading.Thread(target=self._sweep_loop, name="rate-limiter-sweeper", daemon=True)
            self._sweeper.start()
        logger.info("Rate limiter sweeper started (interval=%ss)", self._cleanup_interval_s)

    def stop(self) -> None:
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None:
            sweeper.join(timeout=max(1.0, self._cleanup_interval_s))
        with self._lock:
            self._sweeper = None
            self._entries.clear()
        logger.info("Rate limiter stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval_s):
            try:
                removed = self.cleanup()
                if removed:
                    logger.debug("Rate limiter reclaimed %d entries", removed)
            except Exception:
                logger.exception("Rate limiter sweep failed")

    # -------------------- core --------------------

    def cleanup(self) -> int:
        """Drop entries whose window and block period have both expired."""
        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now > entry["reset_time"] and (not entry["blocked_until"] or now > entry["blocked_until"])
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def check_limit(
        self,
        key: str,
        max_requests: int = 10,
        window_s: float = 60,
        block_duration_s: float = 300,
    ) -> RateLimitResult:
        """Count one request for `key` and decide whether it is admitted."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)

            if entry is not None and entry["blocked_until"]:
                if now < entry["blocked_until"]:
                    return RateLimitResult(
                        allowed=False,
                        remaining=0,
                        reset_time=entry["reset_time"],
                        retry_after=int(math.ceil(entry["blocked_until"] - now)),
                    )
                # Block served; the next request opens a fresh window.
                entry = None

            if entry is None or now >= entry["reset_time"]:
                reset_time = now + window_s
                self._entries[key] = {"count": 1, "reset_time": reset_time, "blocked_until": None}
                return RateLimitResult(allowed=True, remaining=max_requests - 1, reset_time=reset_time)

            entry["count"] += 1
            if entry["count"] > max_requests:
                entry["blocked_until"] = now + block_duration_s
                logger.warning("Rate limit exceeded for %s; blocked for %ss", key, block_duration_s)
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=entry["reset_time"],
                    retry_after=int(math.ceil(block_duration_s)),
                )

            return RateLimitResult(
                allowed=True,
                remaining=max_requests - entry["count"],
                reset_time=entry["reset_time"],
            )

    def check(self, key: str, limit: RateLimitConfig) -> RateLimitResult:
        return self.check_limit(key, limit.max_requests, limit.window_s, limit.block_duration_s)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Global instance; main.py owns its start/stop.
rate_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    return rate_limiter
