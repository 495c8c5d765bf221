"""Mock quiz creation workflow.

resolve quota -> best-effort pre-check -> select questions (read-only) ->
transactional commit that re-checks the quota.
"""

import random
from datetime import datetime
from typing import Callable, Optional

from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_log_context, get_logger
from mockquiz.app.core.periods import utc_now
from mockquiz.app.core.retry import RetryPolicy
from mockquiz.app.db.document_store import DocumentStore
from mockquiz.app.exceptions import MockQuizError, ValidationError
from mockquiz.app.services.access_rules import AccessRuleResolver
from mockquiz.app.services.models import (
    CreateMockQuizRequest,
    CreateMockQuizResponse,
    QuizMeta,
    QuotaEstimate,
)
from mockquiz.app.services.question_selector import QuestionSelector
from mockquiz.app.services.quiz_commit import QuizCommitTransaction
from mockquiz.app.services.quota import check_quota_estimate, estimate_quota

logger = get_logger(__name__)


def validate_request(
    request: CreateMockQuizRequest,
    max_questions: Optional[int] = None,
    max_duration: Optional[int] = None,
) -> None:
    """Reject malformed requests before touching the store.

    Raises:
        ValidationError: On missing fields or out-of-range counts and durations.
    """
    max_questions = max_questions or settings.max_questions_per_quiz
    max_duration = max_duration or settings.max_duration_minutes

    if not (request.user_id or "").strip() or not request.subjects or not request.chapters:
        raise ValidationError("Missing required fields")

    for subject, count in request.questions_per_subject.items():
        if count < 0:
            raise ValidationError(
                f"Question count for {subject} cannot be negative",
                field="questionsPerSubject",
            )
    if request.total_requested > max_questions:
        raise ValidationError(
            f"Total questions cannot exceed {max_questions}", field="questionsPerSubject"
        )
    if request.duration <= 0 or request.duration > max_duration:
        raise ValidationError(
            f"Duration must be between 1 and {max_duration} minutes", field="duration"
        )
    if request.questions_per_page < 1:
        raise ValidationError("Questions per page must be at least 1", field="questionsPerPage")


def default_title(subjects: list[str], now: datetime) -> str:
    """E.g. ``"Bio, Che Mock - 1/2/2024"``."""
    prefix = ", ".join(s[:3] for s in subjects)
    return f"{prefix} Mock - {now.month}/{now.day}/{now.year}"


class MockQuizService:
    """Entry point for creating mock quizzes.

    Args:
        store: Document store shared by all components.
        clock: Wall-clock source used for period keys and timestamps.
        rng: Random source for question shuffling.
        retry_policy: Conflict retry policy for the commit transaction.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self.resolver = AccessRuleResolver(store)
        self.selector = QuestionSelector(store, rng=rng)
        self.committer = QuizCommitTransaction(store, clock=clock, retry_policy=retry_policy)

    async def get_quota(self, user_id: str) -> QuotaEstimate:
        """Best-effort view of the user's quota for the current period."""
        limit = await self.resolver.resolve_limit(user_id)
        return await estimate_quota(self._store, user_id, limit, self._clock())

    async def create_quiz(self, request: CreateMockQuizRequest) -> str:
        """Create a quiz and return its id.

        Raises:
            MockQuizError: Any of the workflow errors.
        """
        validate_request(request)
        now = self._clock()
        user_id = request.user_id.strip()

        limit = await self.resolver.resolve_limit(user_id)
        estimate = check_quota_estimate(
            await estimate_quota(self._store, user_id, limit, now)
        )

        selection = await self.selector.select_questions(
            subjects=request.subjects,
            chapters=request.chapters,
            questions_per_subject=request.questions_per_subject,
            user_id=user_id,
        )

        meta = QuizMeta(
            title=(request.title or "").strip() or default_title(request.subjects, now),
            subjects=list(request.subjects),
            chapters=list(request.chapters),
            duration=request.duration,
            questions_per_page=request.questions_per_page,
            idempotency_key=request.idempotency_key or None,
        )
        return await self.committer.commit(
            user_id=user_id,
            quiz_meta=meta,
            selected=selection.selected,
            limit=limit,
            period_key=estimate.period_key,
        )

    async def create_mock_quiz(self, request: CreateMockQuizRequest) -> CreateMockQuizResponse:
        """Create a quiz, converting every failure to an unsuccessful response."""
        try:
            quiz_id = await self.create_quiz(request)
        except MockQuizError as e:
            logger.warning(
                f"Mock quiz creation rejected: {e.error_code}: {e.message}",
                extra=get_log_context(user_id=request.user_id),
            )
            return CreateMockQuizResponse.failed(
                e.message, error_code=e.error_code, status_code=e.status_code
            )
        except Exception:
            logger.exception(
                "Mock quiz creation failed", extra=get_log_context(user_id=request.user_id)
            )
            return CreateMockQuizResponse.failed("Failed to create mock test")
        return CreateMockQuizResponse.ok(quiz_id)
