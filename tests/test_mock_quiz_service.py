"""Tests for the end-to-end mock quiz workflow."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from mockquiz.app.db.document_store import DocumentStore
from mockquiz.app.exceptions import ConfigurationError, ValidationError
from mockquiz.app.services.mock_quiz import MockQuizService, default_title, validate_request
from mockquiz.app.services.models import CreateMockQuizRequest


def make_request(**overrides) -> CreateMockQuizRequest:
    fields = {
        "user_id": "u-1",
        "subjects": ["Biology", "Chemistry"],
        "chapters": ["Cell", "Atoms"],
        "questions_per_subject": {"Biology": 2, "Chemistry": 1},
        "questions_per_page": 10,
        "duration": 60,
    }
    fields.update(overrides)
    return CreateMockQuizRequest(**fields)


@pytest.fixture
def service(store, clock, rng, fast_retry) -> MockQuizService:
    return MockQuizService(store, clock=clock, rng=rng, retry_policy=fast_retry)


@pytest_asyncio.fixture
async def seeded(add_questions):
    await add_questions("Biology", "Cell", 5)
    await add_questions("Chemistry", "Atoms", 5)


class TestValidateRequest:
    """Test request validation."""

    def test_valid_request(self):
        validate_request(make_request())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"user_id": ""},
            {"user_id": "   "},
            {"subjects": []},
            {"chapters": []},
        ],
    )
    def test_missing_fields(self, overrides):
        with pytest.raises(ValidationError, match="Missing required fields"):
            validate_request(make_request(**overrides))

    def test_total_questions_capped(self):
        with pytest.raises(ValidationError, match="180"):
            validate_request(make_request(questions_per_subject={"Biology": 100, "Chemistry": 81}))

    def test_total_questions_at_cap_is_allowed(self):
        validate_request(make_request(questions_per_subject={"Biology": 100, "Chemistry": 80}))

    def test_negative_count(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_request(make_request(questions_per_subject={"Biology": -1}))
        assert exc_info.value.field == "questionsPerSubject"

    @pytest.mark.parametrize("duration", [0, -5, 181, 200])
    def test_duration_out_of_range(self, duration):
        with pytest.raises(ValidationError) as exc_info:
            validate_request(make_request(duration=duration))
        assert exc_info.value.field == "duration"

    def test_questions_per_page(self):
        with pytest.raises(ValidationError):
            validate_request(make_request(questions_per_page=0))

    def test_custom_limits(self):
        with pytest.raises(ValidationError):
            validate_request(make_request(duration=45), max_duration=30)


class TestDefaultTitle:
    def test_abbreviates_subjects(self):
        title = default_title(["Biology", "Chemistry"], datetime(2024, 1, 2))

        assert title == "Bio, Che Mock - 1/2/2024"

    def test_short_subject_names(self):
        assert default_title(["GK"], datetime(2024, 11, 25)) == "GK Mock - 11/25/2024"


class TestCreateMockQuiz:
    """Test the workflow through the response-returning entry point."""

    @pytest.mark.asyncio
    async def test_success(self, store, service, seeded):
        response = await service.create_mock_quiz(make_request())

        assert response.success is True
        assert response.status_code == 201
        assert response.to_dict() == {"success": True, "quizId": response.quiz_id}

        quiz = await store.get("user-quizzes", response.quiz_id)
        assert quiz.get("title") == "Bio, Che Mock - 1/2/2024"
        assert quiz.get("questionCount") == 3
        assert quiz.get("createdBy") == "u-1"
        assert quiz.get("subjects") == ["Biology", "Chemistry"]
        user = await store.get("users", "u-1")
        assert user.get("quizUsage")["periodKey"] == "weekly-2024-W1"
        assert user.get("quizUsage")["count"] == 1

    @pytest.mark.asyncio
    async def test_custom_title(self, store, service, seeded):
        response = await service.create_mock_quiz(make_request(title="  Finals prep "))

        quiz = await store.get("user-quizzes", response.quiz_id)
        assert quiz.get("title") == "Finals prep"

    @pytest.mark.asyncio
    async def test_daily_limit_resets_next_day(self, store, rng, fast_retry, add_rule, enroll, add_questions):
        await add_rule("r-1", "series-1", 2, "daily")
        await enroll("u-1", "series-1")
        await add_questions("Biology", "Cell", 5)
        await store.set("users", "u-1", {"quizUsage": {"periodKey": "daily-2024-01-01", "count": 2}})
        request = make_request(
            subjects=["Biology"], chapters=["Cell"], questions_per_subject={"Biology": 2}
        )

        day_one = MockQuizService(
            store, clock=lambda: datetime(2024, 1, 1, 18, 0, tzinfo=timezone.utc),
            rng=rng, retry_policy=fast_retry,
        )
        rejected = await day_one.create_mock_quiz(request)

        assert rejected.success is False
        assert rejected.status_code == 429
        assert "2" in rejected.error and "day" in rejected.error
        assert await store.query("user-quizzes") == []

        day_two = MockQuizService(
            store, clock=lambda: datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc),
            rng=rng, retry_policy=fast_retry,
        )
        accepted = await day_two.create_mock_quiz(request)

        assert accepted.success is True
        usage = (await store.get("users", "u-1")).get("quizUsage")
        assert usage["periodKey"] == "daily-2024-01-02"
        assert usage["count"] == 1

    @pytest.mark.asyncio
    async def test_weekly_default_limit(self, store, service, seeded):
        await store.set("users", "u-1", {"quizUsage": {"periodKey": "weekly-2024-W1", "count": 7}})

        response = await service.create_mock_quiz(make_request())

        assert response.status_code == 429
        assert response.error == "You have reached your limit of 7 mock tests per week."

    @pytest.mark.asyncio
    async def test_validation_happens_before_store_access(self, clock):
        store = MagicMock(spec=DocumentStore)
        service = MockQuizService(store, clock=clock)

        response = await service.create_mock_quiz(make_request(duration=200))

        assert response.success is False
        assert response.status_code == 400
        assert response.to_dict() == {"success": False, "error": response.error}
        store.get.assert_not_called()
        store.query.assert_not_called()
        store.run_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_enrollment_required(self, service, seeded, add_rule):
        await add_rule("r-1", "series-1", 5, "weekly")

        response = await service.create_mock_quiz(make_request())

        assert response.status_code == 403
        assert response.error_code == "enrollment_required"
        assert "enroll in a Test Series" in response.error

    @pytest.mark.asyncio
    async def test_no_questions(self, service):
        response = await service.create_mock_quiz(make_request())

        assert response.status_code == 404
        assert response.error == "No questions found matching your criteria."

    @pytest.mark.asyncio
    async def test_duplicate_request(self, service, seeded):
        first = await service.create_mock_quiz(make_request(idempotency_key="req-1"))
        second = await service.create_mock_quiz(make_request(idempotency_key="req-1"))

        assert first.success is True
        assert second.success is False
        assert second.status_code == 409
        assert first.quiz_id in second.error

    @pytest.mark.asyncio
    async def test_store_unavailable(self, clock):
        store = MagicMock(spec=DocumentStore)
        store.query.side_effect = ConfigurationError()
        service = MockQuizService(store, clock=clock)

        response = await service.create_mock_quiz(make_request())

        assert response.status_code == 503
        assert response.error_code == "configuration_error"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic(self, clock):
        store = MagicMock(spec=DocumentStore)
        store.query.side_effect = RuntimeError("socket closed")
        service = MockQuizService(store, clock=clock)

        response = await service.create_mock_quiz(make_request())

        assert response.success is False
        assert response.status_code == 500
        assert response.error == "Failed to create mock test"

    @pytest.mark.asyncio
    async def test_selected_questions_become_used(self, store, service, seeded):
        await service.create_mock_quiz(
            make_request(subjects=["Biology"], questions_per_subject={"Biology": 5})
        )
        response = await service.create_mock_quiz(
            make_request(subjects=["Biology"], questions_per_subject={"Biology": 5})
        )

        assert response.success is True
        usage = await store.get("users/u-1/question-usage", "Biology")
        assert len(usage.get("usedQuestions")) == 5
        assert usage.get("chapterStats") == {"Cell": 5}


class TestGetQuota:
    @pytest.mark.asyncio
    async def test_reports_usage(self, store, service):
        await store.set("users", "u-1", {"quizUsage": {"periodKey": "weekly-2024-W1", "count": 2}})

        estimate = await service.get_quota("u-1")

        assert estimate.limit_count == 7
        assert estimate.used == 2
        assert estimate.remaining == 5
