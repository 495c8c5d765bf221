"""Tests for usage-balanced question selection."""

import random
from unittest.mock import patch

import pytest

from mockquiz.app.db.memory_store import InMemoryDocumentStore
from mockquiz.app.exceptions import NoQuestionsFoundError
from mockquiz.app.services.models import Question, question_usage_collection
from mockquiz.app.services.question_selector import QuestionSelector, chunked


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that records the reads it serves."""

    def __init__(self):
        super().__init__()
        self.queries = []
        self.gets = []

    async def get(self, collection, doc_id):
        self.gets.append((collection, doc_id))
        return await super().get(collection, doc_id)

    async def _query(self, collection, filters):
        self.queries.append((collection, list(filters)))
        return await super()._query(collection, filters)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def selector(store, rng) -> QuestionSelector:
    return QuestionSelector(store, rng=rng)


async def mark_used(store, user_id, subject, question_ids):
    await store.set(
        question_usage_collection(user_id),
        subject,
        {"usedQuestions": list(question_ids), "chapterStats": {}},
    )


def question_filters(store):
    return [filters for collection, filters in store.queries if collection == "mock-questions"]


class TestChunked:
    def test_splits_into_bounded_chunks(self):
        assert chunked(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]

    def test_empty(self):
        assert chunked([], 10) == []


class TestBuildPool:
    """Test candidate pool construction."""

    @pytest.mark.asyncio
    async def test_filters_by_subject_and_chapter(self, selector, add_questions):
        cell = await add_questions("Biology", "Cell", 3)
        await add_questions("Biology", "Genetics", 2)
        await add_questions("Physics", "Cell", 2)

        pool = await selector.build_pool("Biology", ["Cell"])

        assert sorted(q.id for q in pool) == sorted(cell)

    @pytest.mark.asyncio
    async def test_empty_chapter_list_loads_whole_subject(self, selector, add_questions):
        ids = await add_questions("Biology", "Cell", 2)
        ids += await add_questions("Biology", "Genetics", 2)

        pool = await selector.build_pool("Biology", [])

        assert sorted(q.id for q in pool) == sorted(ids)

    @pytest.mark.asyncio
    async def test_chapters_are_chunked_into_bounded_queries(self, store, selector, add_questions):
        chapters = [f"Chapter {i}" for i in range(25)]
        expected = []
        for chapter in chapters:
            expected += await add_questions("Biology", chapter, 1)
        store.queries.clear()

        pool = await selector.build_pool("Biology", chapters)

        filters = question_filters(store)
        assert len(filters) == 3
        in_sizes = sorted(len(f.value) for fs in filters for f in fs if f.op == "in")
        assert in_sizes == [5, 10, 10]
        assert all(
            any(f.field == "subject" and f.value == "Biology" for f in fs) for fs in filters
        )
        ids = [q.id for q in pool]
        assert len(ids) == len(set(ids))
        assert sorted(ids) == sorted(expected)

    @pytest.mark.asyncio
    async def test_repeated_chapters_do_not_duplicate_questions(self, selector, add_questions):
        ids = await add_questions("Biology", "Cell", 3)

        pool = await selector.build_pool("Biology", ["Cell"] * 12)

        assert sorted(q.id for q in pool) == sorted(ids)

    @pytest.mark.asyncio
    async def test_question_defaults(self, store, selector):
        await store.set("mock-questions", "bare", {"subject": "Biology", "chapter": "Cell"})

        pool = await selector.build_pool("Biology", ["Cell"])

        assert pool == [Question(id="bare", subject="Biology", chapter="Cell")]


class TestPick:
    """Test unseen-first picking."""

    def make_pool(self, count):
        return [Question(id=f"q-{i}", subject="Biology", chapter="Cell") for i in range(count)]

    def test_prefers_unseen_questions(self, selector):
        pool = self.make_pool(10)
        used = {f"q-{i}" for i in range(4)}

        picked = selector.pick(pool, used, 6)

        assert sorted(q.id for q in picked) == sorted(f"q-{i}" for i in range(4, 10))

    def test_tops_up_from_seen_questions(self, selector):
        pool = self.make_pool(7)
        used = {f"q-{i}" for i in range(5)}

        picked = selector.pick(pool, used, 4)

        ids = [q.id for q in picked]
        assert len(ids) == 4
        assert len(set(ids)) == 4
        assert {"q-5", "q-6"} <= set(ids)

    def test_everything_seen(self, selector):
        pool = self.make_pool(5)

        picked = selector.pick(pool, {q.id for q in pool}, 3)

        assert len({q.id for q in picked}) == 3
        assert {q.id for q in picked} <= {q.id for q in pool}

    def test_undersized_pool_returns_what_exists(self, selector):
        pool = self.make_pool(2)

        assert len(selector.pick(pool, set(), 5)) == 2

    def test_seeded_rng_is_reproducible(self, store):
        pool = self.make_pool(20)

        first = QuestionSelector(store, rng=random.Random(7)).pick(pool, set(), 5)
        second = QuestionSelector(store, rng=random.Random(7)).pick(pool, set(), 5)

        assert [q.id for q in first] == [q.id for q in second]


class TestSelectQuestions:
    """Test selection across subjects."""

    @pytest.mark.asyncio
    async def test_selects_per_subject(self, selector, add_questions):
        await add_questions("Biology", "Cell", 5)
        await add_questions("Chemistry", "Atoms", 5)

        result = await selector.select_questions(
            subjects=["Biology", "Chemistry"],
            chapters=["Cell", "Atoms"],
            questions_per_subject={"Biology": 2, "Chemistry": 3},
            user_id="u-1",
        )

        subjects = [q.subject for q in result.selected]
        assert subjects.count("Biology") == 2
        assert subjects.count("Chemistry") == 3
        assert result.subjects_processed == ["Biology", "Chemistry"]

    @pytest.mark.asyncio
    async def test_unseen_first_using_stored_usage(self, store, selector, add_questions):
        ids = await add_questions("Biology", "Cell", 10)
        await mark_used(store, "u-1", "Biology", ids[:4])

        result = await selector.select_questions(
            ["Biology"], ["Cell"], {"Biology": 6}, "u-1"
        )

        assert sorted(q.id for q in result.selected) == sorted(ids[4:])

    @pytest.mark.asyncio
    async def test_zero_count_subject_is_never_queried(self, store, selector, add_questions):
        await add_questions("Biology", "Cell", 3)
        await add_questions("Physics", "Motion", 3)
        store.queries.clear()
        store.gets.clear()

        result = await selector.select_questions(
            ["Biology", "Physics"],
            ["Cell", "Motion"],
            {"Biology": 2, "Physics": 0},
            "u-1",
        )

        assert {q.subject for q in result.selected} == {"Biology"}
        assert result.subjects_processed == ["Biology"]
        for filters in question_filters(store):
            assert not any(f.field == "subject" and f.value == "Physics" for f in filters)
        assert (question_usage_collection("u-1"), "Physics") not in store.gets

    @pytest.mark.asyncio
    async def test_subject_missing_from_counts_is_skipped(self, selector, add_questions):
        await add_questions("Biology", "Cell", 3)
        await add_questions("Physics", "Motion", 3)

        result = await selector.select_questions(
            ["Biology", "Physics"], ["Cell", "Motion"], {"Biology": 1}, "u-1"
        )

        assert result.subjects_processed == ["Biology"]

    @pytest.mark.asyncio
    async def test_empty_pool_subject_is_skipped(self, selector, add_questions):
        await add_questions("Biology", "Cell", 3)

        with patch("mockquiz.app.services.question_selector.logger") as mock_logger:
            result = await selector.select_questions(
                ["Biology", "Chemistry"],
                ["Cell"],
                {"Biology": 2, "Chemistry": 2},
                "u-1",
            )

        assert len(result.selected) == 2
        assert result.subjects_processed == ["Biology"]
        warnings = [call.args[0] for call in mock_logger.warning.call_args_list]
        assert any("Chemistry" in msg for msg in warnings)

    @pytest.mark.asyncio
    async def test_short_fall_is_not_an_error(self, selector, add_questions):
        await add_questions("Biology", "Cell", 2)

        result = await selector.select_questions(["Biology"], ["Cell"], {"Biology": 5}, "u-1")

        assert len(result.selected) == 2

    @pytest.mark.asyncio
    async def test_nothing_selected_raises(self, selector, add_questions):
        await add_questions("Biology", "Cell", 2)

        with pytest.raises(NoQuestionsFoundError) as exc_info:
            await selector.select_questions(["Biology"], ["Genetics"], {"Biology": 2}, "u-1")

        assert exc_info.value.message == "No questions found matching your criteria."

    @pytest.mark.asyncio
    async def test_duplicate_subjects_processed_once(self, selector, add_questions):
        await add_questions("Biology", "Cell", 5)

        result = await selector.select_questions(
            ["Biology", "Biology"], ["Cell"], {"Biology": 3}, "u-1"
        )

        assert len(result.selected) == 3
        assert result.subjects_processed == ["Biology"]
