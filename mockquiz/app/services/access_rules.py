"""Access rule resolution.

Determines how many mock quizzes a user may create per period from the
administrator-configured access rules and the user's enrollments.
"""

from typing import Optional

from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_log_context, get_logger
from mockquiz.app.db.document_store import DocumentStore, FieldFilter
from mockquiz.app.exceptions import EnrollmentRequiredError
from mockquiz.app.services.models import (
    ACCESS_RULES_COLLECTION,
    ENROLLMENTS_COLLECTION,
    AccessRule,
    Enrollment,
    QuotaLimit,
)

logger = get_logger(__name__)


class AccessRuleResolver:
    """Resolves the effective quiz quota for a user.

    - No active rule at all: the configured default quota applies to everyone.
    - Otherwise the user needs an eligible enrollment in at least one rule's
      series; the most generous matching rule wins.
    """

    def __init__(
        self,
        store: DocumentStore,
        default_limit: Optional[QuotaLimit] = None,
        eligible_statuses: Optional[list[str]] = None,
    ) -> None:
        self._store = store
        self._default_limit = default_limit or QuotaLimit(
            limit_count=settings.default_limit_count,
            limit_frequency=settings.default_limit_frequency,
        )
        self._eligible_statuses = [
            s.lower() for s in (eligible_statuses or settings.eligible_enrollment_statuses)
        ]

    async def get_active_rules(self) -> list[AccessRule]:
        snapshots = await self._store.query(
            ACCESS_RULES_COLLECTION, [FieldFilter("isActive", "==", True)]
        )
        return [AccessRule.from_snapshot(s) for s in snapshots]

    async def get_enrollments(self, user_id: str) -> list[Enrollment]:
        snapshots = await self._store.query(
            ENROLLMENTS_COLLECTION, [FieldFilter("studentId", "==", user_id)]
        )
        enrollments = [Enrollment.from_snapshot(s) for s in snapshots]
        return [e for e in enrollments if e.status.lower() in self._eligible_statuses]

    async def resolve_limit(self, user_id: str) -> QuotaLimit:
        """Resolve the quota for ``user_id``.

        Raises:
            EnrollmentRequiredError: If rules exist but none covers the user's enrollments.
            ConfigurationError: If the document store is unavailable.
        """
        rules = await self.get_active_rules()
        if not rules:
            return self._default_limit

        enrolled_series = {e.series_id for e in await self.get_enrollments(user_id)}
        matching = [r for r in rules if r.series_id in enrolled_series]
        if not matching:
            logger.info(
                "No access rule matches user enrollments",
                extra=get_log_context(user_id=user_id, rules=len(rules)),
            )
            raise EnrollmentRequiredError(user_id=user_id)

        best = max(matching, key=lambda r: r.limit_count)
        return QuotaLimit(limit_count=best.limit_count, limit_frequency=best.limit_frequency)
