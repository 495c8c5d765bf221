"""API endpoints package for the mock quiz service."""

from mockquiz.app.api.mock_quizzes import router as mock_quizzes_router

__all__ = [
    "mock_quizzes_router",
]
