"""
Fixed-window rate limiting for remote tool calls.

One counter exists per ``(tool, action, mode, principal)`` key. The first hit
creates the counter with a TTL equal to the decay window; every hit
increments it atomically; the window resets when the key expires. This is
an approximate limiter (bursts of up to twice the limit are possible across
a window boundary) traded for a single atomic store operation per call.

Counter storage sits behind ``CounterStore`` so a shared key-value store can
replace the in-process default.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

from cms_mcp.core.observability import get_audit_logger

logger = logging.getLogger(__name__)

KEY_PREFIX = "mcp_rate_limit"


@runtime_checkable
class CounterStore(Protocol):
    """Key-value store offering an atomic increment-with-expiry primitive."""

    def increment(self, key: str, ttl_seconds: float) -> Tuple[int, float]:
        """Increment ``key`` and return ``(count, seconds_until_reset)``.

        A missing or expired key starts at 1 with a fresh TTL.
        """
        ...

    def peek(self, key: str) -> Tuple[int, float]:
        """Return the current ``(count, seconds_until_reset)`` without incrementing."""
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryCounterStore:
    """Thread-safe in-process ``CounterStore``.

    Expired counters are swept during ``increment`` at most once every
    ``sweep_interval`` seconds, so idle keys do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: Dict[str, Tuple[int, float]] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    def increment(self, key: str, ttl_seconds: float) -> Tuple[int, float]:
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            count, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + ttl_seconds
            count += 1
            self._counters[key] = (count, expires_at)
            return count, expires_at - now

    def peek(self, key: str) -> Tuple[int, float]:
        with self._lock:
            now = self._clock()
            count, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                return 0, 0.0
            return count, expires_at - now

    def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (_, expires_at) in self._counters.items() if expires_at <= now]
        for key in expired:
            del self._counters[key]
        if expired:
            logger.debug("Swept %d expired rate limit counters", len(expired))
        self._next_sweep = now + self._sweep_interval


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Configuration for a rate limit.
    """

    max_attempts: int = 60
    decay_seconds: float = 60.0
    enabled: bool = True


@dataclass
class RateLimitResult:
    """
    Result of a rate limit check.
    """

    allowed: bool
    limit: int = 0
    remaining: int = 0
    reset_in: float = 0.0
    key: str = ""


def rate_limit_key(tool: str, action: Optional[str], mode: str, principal_id: Optional[str]) -> str:
    return f"{KEY_PREFIX}:{tool}:{action or 'default'}:{mode}:{principal_id or 'anonymous'}"


class FixedWindowRateLimiter:
    """
    Enforces per-key call budgets over fixed time windows.

    Throttled calls are audit-logged.
    """

    def __init__(self, store: Optional[CounterStore] = None):
        self.store: CounterStore = store if store is not None else InMemoryCounterStore()

    def hit(
        self,
        tool: str,
        action: Optional[str],
        mode: str,
        principal_id: Optional[str],
        config: RateLimitConfig,
    ) -> RateLimitResult:
        """Count one call and report whether it fits in the current window."""
        key = rate_limit_key(tool, action, mode, principal_id)
        if not config.enabled:
            return RateLimitResult(allowed=True, limit=config.max_attempts, remaining=-1, key=key)

        count, reset_in = self.store.increment(key, config.decay_seconds)
        result = RateLimitResult(
            allowed=count <= config.max_attempts,
            limit=config.max_attempts,
            remaining=max(config.max_attempts - count, 0),
            reset_in=reset_in,
            key=key,
        )

        if not result.allowed:
            self._log_throttle(tool, action, principal_id, result)
        return result

    def remaining(
        self,
        tool: str,
        action: Optional[str],
        mode: str,
        principal_id: Optional[str],
        config: RateLimitConfig,
    ) -> RateLimitResult:
        """Report the remaining budget without consuming it."""
        key = rate_limit_key(tool, action, mode, principal_id)
        count, reset_in = self.store.peek(key)
        return RateLimitResult(
            allowed=count < config.max_attempts,
            limit=config.max_attempts,
            remaining=max(config.max_attempts - count, 0),
            reset_in=reset_in,
            key=key,
        )

    def clear(self, tool: str, action: Optional[str], mode: str, principal_id: Optional[str]) -> None:
        self.store.delete(rate_limit_key(tool, action, mode, principal_id))

    def _log_throttle(
        self,
        tool: str,
        action: Optional[str],
        principal_id: Optional[str],
        result: RateLimitResult,
    ) -> None:
        get_audit_logger().rate_limit(
            limit=result.limit,
            tool=tool,
            action=action,
            principal=principal_id or "anonymous",
            reset_in=round(result.reset_in, 2),
        )
        logger.warning(
            "Rate limit exceeded for %s.%s (principal: %s)",
            tool,
            action or "default",
            principal_id or "anonymous",
        )
