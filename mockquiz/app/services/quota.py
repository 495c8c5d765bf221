"""Best-effort quota estimates.

Reads the user's quiz counter outside of any transaction so a request that
is clearly over quota fails before question selection. The quiz commit
transaction re-checks the quota authoritatively.
"""

from datetime import datetime

from mockquiz.app.core.periods import get_period_key
from mockquiz.app.db.document_store import DocumentStore
from mockquiz.app.exceptions import QuotaExceededError
from mockquiz.app.services.models import (
    USERS_COLLECTION,
    QuizUsage,
    QuotaEstimate,
    QuotaLimit,
)


async def estimate_quota(
    store: DocumentStore, user_id: str, limit: QuotaLimit, now: datetime
) -> QuotaEstimate:
    """Best-effort read of the user's quota consumption.

    The value may already be stale when it is returned; only the commit
    transaction decides whether a quiz can be created.
    """
    period_key = get_period_key(limit.limit_frequency, now)
    user = await store.get(USERS_COLLECTION, user_id)
    usage = QuizUsage.from_user_snapshot(user)
    return QuotaEstimate(
        limit_count=limit.limit_count,
        limit_frequency=limit.limit_frequency,
        period_key=period_key,
        used=usage.current_count(period_key),
    )


def check_quota_estimate(estimate: QuotaEstimate) -> QuotaEstimate:
    """Fail fast when the estimate already shows the quota used up.

    Raises:
        QuotaExceededError: If the estimated usage reached the limit.
    """
    if estimate.exhausted:
        raise QuotaExceededError(
            limit_count=estimate.limit_count,
            limit_frequency=estimate.limit_frequency,
            period_key=estimate.period_key,
        )
    return estimate
