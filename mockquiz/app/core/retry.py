"""Conflict retry for document store transactions.

Optimistic transactions abort with ``WriteConflict`` when a document they read
changed before commit. ``with_retry`` re-runs the whole transaction body with
exponential backoff between attempts. The wait is drawn uniformly below the
backoff ceiling ("full jitter") so that transactions that lost the same round
do not wake up and collide again together.
"""

import asyncio
import functools
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class WriteConflict(Exception):
    """A transaction observed a document that changed after it was read."""

    def __init__(self, key: str = ""):
        self.key = key
        super().__init__(f"Write conflict on {key}" if key else "Write conflict")


@dataclass
class RetryPolicy:
    """Backoff settings for re-running a conflicted transaction.

    Attributes:
        max_retries: Attempts after the first one (default: 10)
        base_delay: Backoff ceiling before the first retry, in seconds (default: 0.05)
        max_delay: Upper bound for any single wait (default: 1.0)
        exponential_base: Growth factor of the ceiling per attempt (default: 2.0)
        retryable_exceptions: Exceptions that trigger another attempt
        jitter: Wait a random time below the ceiling instead of the ceiling itself
        rng: Random source for the jitter. Pass a seeded ``random.Random``
            for reproducible waits.

    Example:
        >>> RetryPolicy(base_delay=0.1).calculate_delay(attempt=2)
        0.4
    """

    max_retries: int = 10
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    retryable_exceptions: Tuple[Type[Exception], ...] = (WriteConflict,)
    jitter: bool = True
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    @classmethod
    def from_settings(cls, rng: Optional[random.Random] = None) -> "RetryPolicy":
        return cls(
            max_retries=settings.commit_max_retries,
            base_delay=settings.commit_retry_base_delay,
            max_delay=settings.commit_retry_max_delay,
            rng=rng or random.Random(),
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """Backoff ceiling after failed ``attempt`` (0-indexed), capped at ``max_delay``."""
        return min(self.base_delay * (self.exponential_base**attempt), self.max_delay)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to actually wait after failed ``attempt``."""
        ceiling = self.calculate_delay(attempt)
        if not self.jitter:
            return ceiling
        return self.rng.uniform(0, ceiling)

    def is_retryable(self, exception: Exception) -> bool:
        return isinstance(exception, self.retryable_exceptions)


def with_retry(policy: Optional[RetryPolicy] = None) -> Callable[[F], F]:
    """Decorate an async callable so retryable failures are re-attempted.

    Non-retryable exceptions propagate immediately; the last retryable one
    propagates once ``policy.max_retries`` is used up.
    """
    retry_policy = policy or RetryPolicy()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not retry_policy.is_retryable(e):
                        raise
                    if attempt >= retry_policy.max_retries:
                        logger.warning(
                            f"Max retries ({retry_policy.max_retries}) exceeded for "
                            f"{func.__name__}: {e}"
                        )
                        raise

                    delay = retry_policy.backoff_delay(attempt)
                    attempt += 1
                    logger.debug(
                        f"Retry {attempt}/{retry_policy.max_retries} for {func.__name__} "
                        f"after {e}; waiting {delay:.3f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper  # type: ignore

    return decorator
