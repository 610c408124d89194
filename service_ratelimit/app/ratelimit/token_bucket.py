"""
Distributed token bucket backed by a shared counter store.

Each bucket is one store key holding
``"<tokens>:<last_refill_at>:<rate>:<burst>"``. Rate and burst travel with
the state, so every write refreshes them together and a bucket can never
outlive the record of the limits it was created with.

Every state change goes through compare-and-set against the value read at
the start of the attempt, so concurrent callers in different processes never
lose an update or spend the same token twice. Engines hold no bucket state
and are cheap to build per call.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from shared.config import BaseConfig, get_config
from shared.errors import Contended, InvalidConfiguration, RateLimitExceeded, StoreUnavailable
from shared.logging import get_logger
from shared.metrics import RateLimitMetrics, get_metrics
from shared.retry import RetryConfig, calculate_delay
from ..store import CounterStore, get_default_store


DEFAULT_PREFIX = "rate_limit"

# Tolerance when comparing refilled tokens against a cost
TOKEN_EPSILON = 1e-9


class Decision(str, Enum):
    """Outcome of an acquire."""
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class BucketState:
    """Stored bucket tuple."""

    tokens: float
    last_refill_at: float
    rate: float
    burst: int

    def encode(self) -> str:
        # repr() round-trips floats exactly, so encoded values compare byte for byte
        return f"{float(self.tokens)!r}:{float(self.last_refill_at)!r}:{float(self.rate)!r}:{int(self.burst)}"

    @classmethod
    def decode(cls, raw: str) -> "BucketState":
        tokens, last_refill_at, rate, burst = raw.split(":")
        return cls(float(tokens), float(last_refill_at), float(rate), int(burst))


class AcquireResult(BaseModel):
    """Result of a token bucket acquire."""

    bucket: str
    decision: Decision
    cost: float
    remaining: float
    retry_after: float = 0.0
    attempts: int = 1

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOWED


class TokenBucket:
    """Token bucket whose state lives in a shared counter store."""

    def __init__(self,
                 name: str,
                 rate: float = 5,
                 burst: int = 10,
                 namespace_prefix: str = DEFAULT_PREFIX,
                 store: Optional[CounterStore] = None,
                 ttl: Optional[int] = None,
                 max_attempts: Optional[int] = None,
                 deadline: Optional[float] = None,
                 backoff: Optional[RetryConfig] = None,
                 clock: Callable[[], float] = time.time,
                 metrics: Optional[RateLimitMetrics] = None,
                 config: Optional[BaseConfig] = None):
        config = config or get_config()
        self._validate(name, rate, burst)

        self.name = name
        self.rate = float(rate)
        self.burst = int(burst)
        self.namespace_prefix = namespace_prefix
        self.store = store if store is not None else get_default_store()
        self.clock = clock
        self.metrics = metrics or get_metrics()
        self.logger = get_logger("ratelimit.token_bucket")

        self.max_attempts = max_attempts if max_attempts is not None else config.max_attempts
        if self.max_attempts < 1:
            raise InvalidConfiguration("max_attempts must be at least 1", details={"max_attempts": self.max_attempts})
        self.deadline = deadline
        self.backoff = backoff or RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=config.backoff_base,
            max_delay=config.backoff_max
        )

        # Time to refill from empty; the key must outlive it
        refill_seconds = math.ceil(self.burst / self.rate)
        if ttl is None:
            ttl = max(config.min_ttl_seconds, math.ceil(self.burst / self.rate * config.ttl_multiplier))
        elif ttl < refill_seconds:
            raise InvalidConfiguration(
                "ttl must be at least the full refill time",
                details={"ttl": ttl, "refill_seconds": refill_seconds}
            )
        self.ttl = int(ttl)

    @staticmethod
    def _validate(name: str, rate: float, burst: int):
        if not name:
            raise InvalidConfiguration("Bucket name must not be empty")
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            raise InvalidConfiguration("rate must be a positive number", details={"rate": rate})
        if isinstance(burst, bool) or not isinstance(burst, int) or burst < 1:
            raise InvalidConfiguration("burst must be a positive integer", details={"burst": burst})

    @property
    def key(self) -> str:
        """Store key holding the bucket state."""
        return f"{self.namespace_prefix}:bucket:{self.name}"

    def check_cost(self, cost: float):
        if isinstance(cost, bool) or not isinstance(cost, (int, float)) or not math.isfinite(cost) or cost <= 0:
            raise InvalidConfiguration("cost must be a positive number", details={"cost": cost})
        if cost > self.burst:
            raise InvalidConfiguration(
                "cost exceeds burst and can never be satisfied",
                details={"cost": cost, "burst": self.burst}
            )

    def _state(self, tokens: float, last_refill_at: float) -> BucketState:
        return BucketState(tokens, last_refill_at, self.rate, self.burst)

    def _decode(self, raw: str) -> BucketState:
        try:
            return BucketState.decode(raw)
        except ValueError as e:
            self.logger.error("Corrupt bucket state", bucket=self.name, key=self.key, value=raw)
            raise StoreUnavailable(
                "Stored bucket state is unreadable",
                details={"key": self.key, "value": raw}
            ) from e

    def _check_limits(self, state: BucketState):
        """Rate and burst are fixed for the life of a stored bucket."""
        if state.rate != self.rate or state.burst != self.burst:
            raise InvalidConfiguration(
                "Bucket exists with a different rate or burst",
                details={
                    "bucket": self.name,
                    "stored": {"rate": state.rate, "burst": state.burst},
                    "requested": {"rate": self.rate, "burst": self.burst}
                }
            )

    def _load(self, raw: Optional[str], now: float) -> BucketState:
        """Decode a stored value; a missing key is a full bucket."""
        if raw is None:
            return self._state(float(self.burst), now)
        state = self._decode(raw)
        self._check_limits(state)
        return self._state(min(float(self.burst), max(0.0, state.tokens)), state.last_refill_at)

    def _refill(self, state: BucketState, now: float) -> float:
        # Hosts disagree on time; never refill backwards
        elapsed = max(0.0, now - state.last_refill_at)
        return min(float(self.burst), state.tokens + elapsed * self.rate)

    async def initialize_namespace(self) -> None:
        """Create the bucket at full capacity unless it already exists.

        Safe to call from many processes at once; an existing bucket keeps its
        token count. Raises InvalidConfiguration if the live bucket was created
        with a different rate or burst.
        """
        initial = self._state(float(self.burst), self.clock())
        created = await self.store.initialize_if_absent(self.key, initial.encode(), self.ttl)
        if created:
            self.logger.info("Bucket namespace initialized", bucket=self.name, key=self.key,
                             rate=self.rate, burst=self.burst, ttl=self.ttl)
            return

        stored = await self.store.get(self.key)
        if stored is not None:
            self._check_limits(self._decode(stored))
        self.logger.debug("Bucket namespace already present", bucket=self.name, key=self.key)

    async def acquire(self, cost: float = 1) -> AcquireResult:
        """Take ``cost`` tokens if available.

        A denied acquire consumes nothing. Raises StoreUnavailable when the
        store cannot be reached, Contended when every compare-and-set
        attempt lost to a concurrent writer, and InvalidConfiguration when
        the stored bucket carries other limits.

        The written refill time is the later of ``now`` and the stored one,
        not ``now`` alone: a caller whose clock lags must not move the
        bucket back in time and hand the next caller refill it never earned.
        """
        self.check_cost(cost)
        started = time.monotonic()
        attempt = 0

        try:
            while True:
                attempt += 1
                observed = await self.store.get(self.key)
                now = self.clock()
                state = self._load(observed, now)
                refilled = self._refill(state, now)

                if refilled + TOKEN_EPSILON >= cost:
                    decision = Decision.ALLOWED
                    new_tokens = max(0.0, refilled - cost)
                    retry_after = 0.0
                else:
                    decision = Decision.DENIED
                    new_tokens = refilled
                    retry_after = (cost - refilled) / self.rate

                new_state = self._state(new_tokens, max(now, state.last_refill_at))
                if await self.store.compare_and_set(self.key, observed, new_state.encode(), self.ttl):
                    self.metrics.record_decision(self.name, decision.value, time.monotonic() - started)
                    return AcquireResult(
                        bucket=self.name,
                        decision=decision,
                        cost=cost,
                        remaining=new_tokens,
                        retry_after=retry_after,
                        attempts=attempt
                    )

                self.metrics.record_conflict(self.name)
                self.logger.debug("Compare-and-set conflict", bucket=self.name, attempt=attempt)

                if attempt >= self.max_attempts:
                    break
                if self.deadline is not None and time.monotonic() - started >= self.deadline:
                    break
                await asyncio.sleep(calculate_delay(attempt, self.backoff))
        except StoreUnavailable:
            self.metrics.record_error(self.name, "store_unavailable")
            raise
        except InvalidConfiguration:
            self.metrics.record_error(self.name, "invalid_configuration")
            raise

        self.metrics.record_error(self.name, "contended")
        self.logger.warning("Bucket contended, giving up", bucket=self.name, attempts=attempt)
        raise Contended(self.name, attempt)

    async def acquire_or_raise(self, cost: float = 1) -> AcquireResult:
        """Like acquire, but raise RateLimitExceeded instead of returning a denial."""
        result = await self.acquire(cost)
        if not result.allowed:
            raise RateLimitExceeded(self.name, result.retry_after, details={"remaining": result.remaining})
        return result

    async def remaining(self) -> float:
        """Projected token count right now. Read-only."""
        observed = await self.store.get(self.key)
        now = self.clock()
        return self._refill(self._load(observed, now), now)

    async def reset(self) -> None:
        """Drop stored state so the bucket can be recreated, possibly with new limits."""
        await self.store.delete(self.key)
        self.logger.info("Bucket reset", bucket=self.name, key=self.key)
