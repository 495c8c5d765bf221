"""Core utilities for the mock quiz service."""

from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_logger, setup_logging
from mockquiz.app.core.periods import LIFETIME_PERIOD_KEY, get_period_key, utc_now
from mockquiz.app.core.retry import RetryPolicy, WriteConflict, with_retry

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "LIFETIME_PERIOD_KEY",
    "get_period_key",
    "utc_now",
    "RetryPolicy",
    "WriteConflict",
    "with_retry",
]
