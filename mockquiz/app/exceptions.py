"""Custom exceptions for the mock quiz application."""


class MockQuizError(Exception):
    """Base class for mock quiz exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code and error_code for consistent response handling.
    """
    status_code: int = 500
    error_code: str = "mock_quiz_error"

    def __init__(self, message: str = "Mock quiz error"):
        self.message = message
        super().__init__(message)


_FREQUENCY_NOUNS = {
    "daily": "day",
    "weekly": "week",
    "monthly": "month",
}


class ConfigurationError(MockQuizError):
    """Raised when the document store is unreachable or misconfigured.

    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503
    error_code = "configuration_error"

    def __init__(self, message: str = "Document store is not available"):
        super().__init__(message)


class ValidationError(MockQuizError):
    """Raised when a quiz request is rejected before any store access.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str = "Invalid request", field: str | None = None):
        self.field = field
        super().__init__(message)


class EnrollmentRequiredError(MockQuizError):
    """Raised when access rules exist but the user matches none of them.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403
    error_code = "enrollment_required"

    def __init__(
        self,
        user_id: str | None = None,
        message: str = "Mock tests are available to enrolled students. "
                       "Please enroll in a Test Series to create a mock test.",
    ):
        self.user_id = user_id
        super().__init__(message)


class QuotaExceededError(MockQuizError):
    """Raised when a user has reached their mock test limit for the period.

    Raised both by the best-effort pre-check and by the commit transaction.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "quota_exceeded"

    def __init__(
        self,
        limit_count: int,
        limit_frequency: str,
        period_key: str | None = None,
        detail: str | None = None,
    ):
        self.limit_count = limit_count
        self.limit_frequency = limit_frequency
        self.period_key = period_key
        if limit_frequency == "lifetime":
            window = "in total"
        else:
            window = f"per {_FREQUENCY_NOUNS.get(limit_frequency, limit_frequency)}"
        message = detail or (
            f"You have reached your limit of {limit_count} mock tests {window}."
        )
        super().__init__(message)


class NoQuestionsFoundError(MockQuizError):
    """Raised when no subject produced any question.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404
    error_code = "no_questions_found"

    def __init__(self, message: str = "No questions found matching your criteria."):
        super().__init__(message)


class TransactionConflictError(MockQuizError):
    """Raised when the commit transaction exhausted its conflict retries.

    Maps to HTTP 409 Conflict. Callers may retry the whole request.
    """
    status_code = 409
    error_code = "transaction_conflict"

    def __init__(self, attempts: int = 0, message: str | None = None):
        self.attempts = attempts
        super().__init__(
            message or "Could not save the mock test because of concurrent updates. Please try again."
        )


class DuplicateRequestError(MockQuizError):
    """Raised when an idempotency key was already used to create a quiz.

    Maps to HTTP 409 Conflict.
    """
    status_code = 409
    error_code = "duplicate_request"

    def __init__(self, idempotency_key: str, quiz_id: str | None = None):
        self.idempotency_key = idempotency_key
        self.quiz_id = quiz_id
        message = f"Request '{idempotency_key}' was already processed"
        if quiz_id:
            message += f" (quiz {quiz_id})"
        super().__init__(message + ".")


class DocumentNotFoundError(MockQuizError):
    """Raised when a transaction updates a document that does not exist.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404
    error_code = "document_not_found"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {collection}/{doc_id} does not exist")
