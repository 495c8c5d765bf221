"""Domain records for mock quiz creation.

Documents read from the store are converted to these records at the service
boundary; optional fields get their defaults here and nowhere else.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from mockquiz.app.db.document_store import DocumentSnapshot

# Collection names
ACCESS_RULES_COLLECTION = "mock-test-access-rules"
ENROLLMENTS_COLLECTION = "enrollments"
USERS_COLLECTION = "users"
QUESTIONS_COLLECTION = "mock-questions"
QUIZZES_COLLECTION = "user-quizzes"


def question_usage_collection(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/question-usage"


def quiz_receipts_collection(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/quiz-receipts"


@dataclass
class AccessRule:
    id: str
    series_id: str
    limit_count: int
    limit_frequency: str
    is_active: bool = True

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "AccessRule":
        return cls(
            id=snapshot.id,
            series_id=str(snapshot.get("seriesId", "")),
            limit_count=int(snapshot.get("limitCount") or 0),
            limit_frequency=str(snapshot.get("limitFrequency") or "lifetime"),
            is_active=bool(snapshot.get("isActive", False)),
        )


@dataclass
class Enrollment:
    id: str
    student_id: str
    series_id: str
    status: str

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Enrollment":
        return cls(
            id=snapshot.id,
            student_id=str(snapshot.get("studentId", "")),
            series_id=str(snapshot.get("seriesId", "")),
            status=str(snapshot.get("status", "")),
        )


@dataclass(frozen=True)
class QuotaLimit:
    limit_count: int
    limit_frequency: str


@dataclass
class QuizUsage:
    """Per-user quiz counter for the current period, embedded in the user document."""

    period_key: Optional[str] = None
    count: int = 0
    last_updated: Optional[datetime] = None

    @classmethod
    def from_user_snapshot(cls, snapshot: DocumentSnapshot) -> "QuizUsage":
        raw = snapshot.get("quizUsage") or {}
        return cls(
            period_key=raw.get("periodKey"),
            count=int(raw.get("count") or 0),
            last_updated=_parse_datetime(raw.get("lastUpdated")),
        )

    def current_count(self, period_key: str) -> int:
        """Count for ``period_key``; a counter from another period reads as 0."""
        return self.count if self.period_key == period_key else 0

    def to_document(self) -> dict[str, Any]:
        return {
            "periodKey": self.period_key,
            "count": self.count,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class QuestionUsage:
    """Questions a user has already been served for one subject."""

    subject: str
    used_questions: list[str] = field(default_factory=list)
    chapter_stats: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "QuestionUsage":
        return cls(
            subject=snapshot.id,
            used_questions=list(snapshot.get("usedQuestions") or []),
            chapter_stats=dict(snapshot.get("chapterStats") or {}),
        )

    @property
    def used_ids(self) -> set[str]:
        return set(self.used_questions)

    def record(self, questions: list["Question"]) -> "QuestionUsage":
        """Return the usage after serving ``questions``.

        The id list only grows and never holds duplicates; a chapter is
        counted once per question that was not already recorded.
        """
        used = list(self.used_questions)
        seen = set(used)
        stats = dict(self.chapter_stats)
        for question in questions:
            if question.id in seen:
                continue
            seen.add(question.id)
            used.append(question.id)
            stats[question.chapter] = stats.get(question.chapter, 0) + 1
        return QuestionUsage(subject=self.subject, used_questions=used, chapter_stats=stats)


@dataclass
class Question:
    id: str
    subject: str
    chapter: str = ""
    question_text: str = ""
    options: list[Any] = field(default_factory=list)
    correct_answer: str = ""
    explanation: str = ""
    enable_explanation: bool = False
    used_in_quizzes: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Question":
        return cls(
            id=snapshot.id,
            subject=str(snapshot.get("subject") or ""),
            chapter=str(snapshot.get("chapter") or ""),
            question_text=str(snapshot.get("questionText") or ""),
            options=list(snapshot.get("options") or []),
            correct_answer=str(snapshot.get("correctAnswer") or ""),
            explanation=str(snapshot.get("explanation") or ""),
            enable_explanation=bool(snapshot.get("enableExplanation")),
            used_in_quizzes=int(snapshot.get("usedInQuizzes") or 0),
        )

    def to_snapshot(self) -> dict[str, Any]:
        """Immutable copy stored inside a quiz."""
        return {
            "id": self.id,
            "questionText": self.question_text,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "enableExplanation": self.enable_explanation,
            "subject": self.subject,
            "chapter": self.chapter,
        }


@dataclass
class QuizMeta:
    """Quiz attributes supplied by the request."""

    title: str
    subjects: list[str]
    chapters: list[str]
    duration: int
    questions_per_page: int
    idempotency_key: Optional[str] = None


@dataclass
class SelectionResult:
    selected: list[Question]
    subjects_processed: list[str]


@dataclass
class CreateMockQuizRequest:
    user_id: str
    subjects: list[str]
    chapters: list[str]
    questions_per_subject: dict[str, int]
    questions_per_page: int
    duration: int
    title: Optional[str] = None
    idempotency_key: Optional[str] = None

    @property
    def total_requested(self) -> int:
        return sum(self.questions_per_subject.values())


@dataclass
class CreateMockQuizResponse:
    success: bool
    quiz_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: int = 201

    @classmethod
    def ok(cls, quiz_id: str) -> "CreateMockQuizResponse":
        return cls(success=True, quiz_id=quiz_id)

    @classmethod
    def failed(
        cls, error: str, error_code: str = "internal_error", status_code: int = 500
    ) -> "CreateMockQuizResponse":
        return cls(success=False, error=error, error_code=error_code, status_code=status_code)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "quizId": self.quiz_id}
        return {"success": False, "error": self.error}


@dataclass(frozen=True)
class QuotaEstimate:
    limit_count: int
    limit_frequency: str
    period_key: str
    used: int

    @property
    def remaining(self) -> int:
        return max(self.limit_count - self.used, 0)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit_count


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
