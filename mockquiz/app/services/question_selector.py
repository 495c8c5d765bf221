"""Usage-balanced question selection.

For every requested subject the selector builds a candidate pool, splits it
into questions the user has never been served and questions they have, shuffles
both halves and fills the request from the unseen half first.
"""

import asyncio
import random
from typing import Optional

from mockquiz.app.core.logging import get_log_context, get_logger
from mockquiz.app.db.document_store import DocumentStore, FieldFilter
from mockquiz.app.exceptions import NoQuestionsFoundError
from mockquiz.app.services.models import (
    QUESTIONS_COLLECTION,
    Question,
    QuestionUsage,
    SelectionResult,
    question_usage_collection,
)

logger = get_logger(__name__)


def chunked(values: list[str], size: int) -> list[list[str]]:
    return [values[i:i + size] for i in range(0, len(values), size)]


class QuestionSelector:
    """Selects quiz questions across subjects, preferring unseen ones.

    Args:
        store: Document store holding questions and usage documents.
        rng: Random source used for shuffling. Pass a seeded
            ``random.Random`` for reproducible selections.
    """

    def __init__(self, store: DocumentStore, rng: Optional[random.Random] = None) -> None:
        self._store = store
        self._rng = rng or random.Random()

    async def get_used_question_ids(self, user_id: str, subject: str) -> set[str]:
        snapshot = await self._store.get(question_usage_collection(user_id), subject)
        if not snapshot.exists:
            return set()
        return QuestionUsage.from_snapshot(snapshot).used_ids

    async def build_pool(self, subject: str, chapters: list[str]) -> list[Question]:
        """Load every question of ``subject`` in one of ``chapters``.

        The chapter list is split into chunks the store accepts in a single
        "in" filter and the chunk queries run concurrently. Chapters that
        belong to other subjects simply match nothing. An empty chapter list
        loads the whole subject.
        """
        subject_filter = FieldFilter("subject", "==", subject)
        if not chapters:
            snapshots = await self._store.query(QUESTIONS_COLLECTION, [subject_filter])
        else:
            batches = await asyncio.gather(*[
                self._store.query(
                    QUESTIONS_COLLECTION,
                    [subject_filter, FieldFilter("chapter", "in", chunk)],
                )
                for chunk in chunked(list(dict.fromkeys(chapters)), self._store.in_limit)
            ])
            snapshots = [s for batch in batches for s in batch]

        pool: dict[str, Question] = {}
        for snapshot in snapshots:
            if snapshot.exists and snapshot.id not in pool:
                pool[snapshot.id] = Question.from_snapshot(snapshot)
        return list(pool.values())

    def pick(self, pool: list[Question], used_ids: set[str], num_needed: int) -> list[Question]:
        """Pick ``num_needed`` questions, exhausting unseen ones before repeats."""
        unused = [q for q in pool if q.id not in used_ids]
        used = [q for q in pool if q.id in used_ids]
        self._rng.shuffle(unused)
        self._rng.shuffle(used)

        selected = unused[:num_needed]
        if len(selected) < num_needed:
            selected.extend(used[:num_needed - len(selected)])
        return selected

    async def select_questions(
        self,
        subjects: list[str],
        chapters: list[str],
        questions_per_subject: dict[str, int],
        user_id: str,
    ) -> SelectionResult:
        """Select questions for every subject with a positive count.

        Subjects with an empty pool are skipped; an undersized pool yields
        fewer questions than requested.

        Raises:
            NoQuestionsFoundError: If no subject produced any question.
        """
        selected: list[Question] = []
        processed: list[str] = []

        for subject in dict.fromkeys(subjects):
            num_needed = questions_per_subject.get(subject, 0)
            if num_needed <= 0:
                continue

            used_ids = await self.get_used_question_ids(user_id, subject)
            pool = await self.build_pool(subject, chapters)
            if not pool:
                logger.warning(
                    f"No questions found for subject: {subject}",
                    extra=get_log_context(user_id=user_id, subject=subject),
                )
                continue

            picked = self.pick(pool, used_ids, num_needed)
            if len(picked) < num_needed:
                logger.warning(
                    f"Subject {subject} has {len(picked)} of {num_needed} requested questions",
                    extra=get_log_context(user_id=user_id, subject=subject),
                )
            selected.extend(picked)
            processed.append(subject)

        if not selected:
            raise NoQuestionsFoundError()

        return SelectionResult(selected=selected, subjects_processed=processed)
