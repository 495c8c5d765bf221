"""Atomic quiz commit with authoritative quota enforcement.

Everything that mutates quota or usage state happens inside one document
store transaction. Each helper takes the transaction handle explicitly and
only stages writes on it, so the store can replay the body on conflict.
"""

from datetime import datetime
from typing import Callable, Optional

from mockquiz.app.core.logging import get_log_context, get_logger
from mockquiz.app.core.periods import utc_now
from mockquiz.app.core.retry import RetryPolicy
from mockquiz.app.db.document_store import DocumentSnapshot, DocumentStore, Transaction
from mockquiz.app.exceptions import DuplicateRequestError, QuotaExceededError
from mockquiz.app.services.models import (
    QUESTIONS_COLLECTION,
    QUIZZES_COLLECTION,
    USERS_COLLECTION,
    Question,
    QuestionUsage,
    QuizMeta,
    QuizUsage,
    QuotaLimit,
    question_usage_collection,
    quiz_receipts_collection,
)

logger = get_logger(__name__)


def group_by_subject(questions: list[Question]) -> dict[str, list[Question]]:
    grouped: dict[str, list[Question]] = {}
    for question in questions:
        grouped.setdefault(question.subject, []).append(question)
    return grouped


def check_quota_in_transaction(
    user: DocumentSnapshot, limit: QuotaLimit, period_key: str
) -> int:
    """Return the user's current usage, failing if the quota is used up.

    Raises:
        QuotaExceededError: If ``current usage >= limit.limit_count``.
    """
    current = QuizUsage.from_user_snapshot(user).current_count(period_key)
    if current >= limit.limit_count:
        raise QuotaExceededError(
            limit_count=limit.limit_count,
            limit_frequency=limit.limit_frequency,
            period_key=period_key,
        )
    return current


def stage_quota_usage(
    tx: Transaction, user_id: str, period_key: str, count: int, now: datetime
) -> None:
    usage = QuizUsage(period_key=period_key, count=count, last_updated=now)
    tx.set(USERS_COLLECTION, user_id, {"quizUsage": usage.to_document()}, merge=True)


def stage_quiz(
    tx: Transaction,
    quiz_id: str,
    user_id: str,
    meta: QuizMeta,
    selected: list[Question],
    now: datetime,
) -> None:
    document = {
        "id": quiz_id,
        "title": meta.title,
        "createdBy": user_id,
        "subjects": list(meta.subjects),
        "chapters": list(meta.chapters),
        "duration": meta.duration,
        "questionCount": len(selected),
        "questionsPerPage": meta.questions_per_page,
        "selectedQuestions": [q.to_snapshot() for q in selected],
        "createdAt": now.isoformat(),
    }
    if meta.idempotency_key:
        document["idempotencyKey"] = meta.idempotency_key
    tx.set(QUIZZES_COLLECTION, quiz_id, document)


def stage_question_usage(
    tx: Transaction,
    user_id: str,
    usage_docs: dict[str, DocumentSnapshot],
    by_subject: dict[str, list[Question]],
    now: datetime,
) -> None:
    collection = question_usage_collection(user_id)
    for subject, questions in by_subject.items():
        usage = QuestionUsage.from_snapshot(usage_docs[subject]).record(questions)
        tx.set(
            collection,
            subject,
            {
                "usedQuestions": usage.used_questions,
                "chapterStats": usage.chapter_stats,
                "updatedAt": now.isoformat(),
            },
            merge=True,
        )


def stage_global_usage(tx: Transaction, selected: list[Question]) -> None:
    for question in selected:
        tx.increment(QUESTIONS_COLLECTION, question.id, "usedInQuizzes", 1)


class QuizCommitTransaction:
    """Commits a quiz and its bookkeeping as one atomic unit.

    Args:
        store: Document store providing the transaction primitive.
        clock: Returns the commit timestamp. Injectable for tests.
        retry_policy: Conflict retry policy. Defaults to the settings-based policy.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._retry_policy = retry_policy

    async def commit(
        self,
        user_id: str,
        quiz_meta: QuizMeta,
        selected: list[Question],
        limit: QuotaLimit,
        period_key: str,
    ) -> str:
        """Re-check the quota and persist the quiz with all usage updates.

        Returns:
            The id of the created quiz.

        Raises:
            QuotaExceededError: If the user reached ``limit.limit_count`` for ``period_key``.
            DuplicateRequestError: If the idempotency key was already used.
            TransactionConflictError: If conflicts persisted through every retry.
        """
        quiz_id = self._store.new_id()
        by_subject = group_by_subject(selected)
        receipts = quiz_receipts_collection(user_id)

        async def body(tx: Transaction) -> str:
            now = self._clock()

            user = await tx.get(USERS_COLLECTION, user_id)
            usage_docs = {
                subject: await tx.get(question_usage_collection(user_id), subject)
                for subject in by_subject
            }
            if quiz_meta.idempotency_key:
                receipt = await tx.get(receipts, quiz_meta.idempotency_key)
                if receipt.exists:
                    raise DuplicateRequestError(
                        quiz_meta.idempotency_key, quiz_id=receipt.get("quizId")
                    )

            current = check_quota_in_transaction(user, limit, period_key)

            stage_quota_usage(tx, user_id, period_key, current + 1, now)
            stage_quiz(tx, quiz_id, user_id, quiz_meta, selected, now)
            stage_question_usage(tx, user_id, usage_docs, by_subject, now)
            stage_global_usage(tx, selected)
            if quiz_meta.idempotency_key:
                tx.set(
                    receipts,
                    quiz_meta.idempotency_key,
                    {"quizId": quiz_id, "createdAt": now.isoformat()},
                )
            return quiz_id

        committed_id = await self._store.run_transaction(body, self._retry_policy)
        logger.info(
            f"Committed quiz with {len(selected)} questions",
            extra=get_log_context(user_id=user_id, quiz_id=committed_id, period_key=period_key),
        )
        return committed_id
