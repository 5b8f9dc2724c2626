"""
Bounded retry with linear backoff, shared by the outline and image paths.

The policy itself is pure data: how many attempts, and how long to wait after
a failed attempt of a given kind. `run_with_retry` applies it to any awaitable
factory, so the same rules can be tested without touching the network.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from shared.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureKind(str, Enum):
    BUSY = "busy"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    OTHER = "other"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    # Base delay in seconds per failure kind. Kinds not listed are not retried.
    base_delays: Dict[FailureKind, float] = field(default_factory=dict)

    def delay_for(self, attempt: int, kind: FailureKind) -> float:
        """Delay after failed attempt number `attempt` (1-indexed)."""
        return self.base_delays.get(kind, 0.0) * attempt

    def should_retry(self, attempt: int, kind: Optional[FailureKind]) -> bool:
        return kind is not None and kind in self.base_delays and attempt < self.max_attempts


# 503 -> 1s, 2s; network -> 0.5s, 1s
OUTLINE_POLICY = RetryPolicy(
    max_attempts=3,
    base_delays={FailureKind.BUSY: 1.0, FailureKind.NETWORK: 0.5},
)

# Quota errors wait longer than any other failure and retry the same request.
IMAGE_SERVER_POLICY = RetryPolicy(
    max_attempts=5,
    base_delays={
        FailureKind.RATE_LIMITED: 3.0,
        FailureKind.BUSY: 2.0,
        FailureKind.NETWORK: 2.0,
        FailureKind.OTHER: 2.0,
    },
)

IMAGE_CLIENT_POLICY = RetryPolicy(
    max_attempts=3,
    base_delays={
        FailureKind.RATE_LIMITED: 5.0,
        FailureKind.BUSY: 2.0,
        FailureKind.NETWORK: 2.0,
        FailureKind.OTHER: 2.0,
    },
)


async def run_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    classify: Callable[[BaseException], Optional[FailureKind]],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "request",
) -> T:
    """
    Awaits `call()` until it succeeds or the policy gives up.

    Exceptions that `classify` maps to None propagate immediately. Otherwise
    the last failure is wrapped in RetryExhaustedError once attempts run out.
    """
    last_error: Optional[BaseException] = None
    last_kind: Optional[FailureKind] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await call()
        except Exception as e:
            kind = classify(e)
            if kind is None:
                raise
            last_error, last_kind = e, kind
            if not policy.should_retry(attempt, kind):
                break
            wait = policy.delay_for(attempt, kind)
            logger.warning(f"{label}: attempt {attempt} failed ({kind.value}), retrying in {wait:.1f}s. Error: {e}")
            await sleep(wait)

    raise RetryExhaustedError(label, attempt, last_kind, last_error) from last_error
