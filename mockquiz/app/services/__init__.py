"""Mock quiz services."""

from mockquiz.app.services.access_rules import AccessRuleResolver
from mockquiz.app.services.mock_quiz import MockQuizService, validate_request
from mockquiz.app.services.question_selector import QuestionSelector
from mockquiz.app.services.quiz_commit import QuizCommitTransaction
from mockquiz.app.services.quota import check_quota_estimate, estimate_quota

__all__ = [
    "AccessRuleResolver",
    "MockQuizService",
    "QuestionSelector",
    "QuizCommitTransaction",
    "check_quota_estimate",
    "estimate_quota",
    "validate_request",
]
