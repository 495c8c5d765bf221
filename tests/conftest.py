import random
from datetime import datetime, timezone

import pytest

from mockquiz.app.core.retry import RetryPolicy
from mockquiz.app.db.memory_store import InMemoryDocumentStore
from mockquiz.app.services.models import (
    ACCESS_RULES_COLLECTION,
    ENROLLMENTS_COLLECTION,
    QUESTIONS_COLLECTION,
)

FIXED_NOW = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_retries=10, base_delay=0.001, max_delay=0.01)


@pytest.fixture
def add_questions(store):
    """Seed ``count`` questions for a subject/chapter and return their ids."""

    async def _add(subject: str, chapter: str, count: int, start: int = 0) -> list[str]:
        ids = []
        for i in range(start, start + count):
            question_id = f"{subject.lower()}-{chapter.lower()}-{i}"
            await store.set(
                QUESTIONS_COLLECTION,
                question_id,
                {
                    "subject": subject,
                    "chapter": chapter,
                    "questionText": f"{subject} {chapter} question {i}",
                    "options": ["A", "B", "C", "D"],
                    "correctAnswer": "A",
                    "explanation": "Because A.",
                    "enableExplanation": True,
                    "usedInQuizzes": 0,
                },
            )
            ids.append(question_id)
        return ids

    return _add


@pytest.fixture
def add_rule(store):
    async def _add(
        rule_id: str,
        series_id: str,
        limit_count: int,
        limit_frequency: str,
        is_active: bool = True,
    ) -> None:
        await store.set(
            ACCESS_RULES_COLLECTION,
            rule_id,
            {
                "seriesId": series_id,
                "limitCount": limit_count,
                "limitFrequency": limit_frequency,
                "isActive": is_active,
            },
        )

    return _add


@pytest.fixture
def enroll(store):
    async def _enroll(user_id: str, series_id: str, status: str = "active") -> None:
        await store.set(
            ENROLLMENTS_COLLECTION,
            f"{user_id}-{series_id}",
            {"studentId": user_id, "seriesId": series_id, "status": status},
        )

    return _enroll
