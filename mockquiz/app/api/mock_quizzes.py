"""Mock quiz API endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from mockquiz.app.core.logging import get_log_context, get_logger
from mockquiz.app.middleware.request_id import get_request_id
from mockquiz.app.services.mock_quiz import MockQuizService
from mockquiz.app.services.models import CreateMockQuizRequest

router = APIRouter(prefix="/v1/mock-quizzes", tags=["mock-quizzes"])
logger = get_logger(__name__)


class MockQuizCreate(BaseModel):
    """Schema for creating a mock quiz."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field("", alias="userId")
    subjects: list[str] = Field(default_factory=list)
    chapters: list[str] = Field(default_factory=list)
    questions_per_subject: dict[str, int] = Field(
        default_factory=dict, alias="questionsPerSubject"
    )
    questions_per_page: int = Field(..., alias="questionsPerPage")
    duration: int = Field(..., description="Duration in minutes")
    title: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey", max_length=200)

    def to_request(self) -> CreateMockQuizRequest:
        return CreateMockQuizRequest(
            user_id=self.user_id,
            subjects=self.subjects,
            chapters=self.chapters,
            questions_per_subject=self.questions_per_subject,
            questions_per_page=self.questions_per_page,
            duration=self.duration,
            title=self.title,
            idempotency_key=self.idempotency_key,
        )


class QuotaResponse(BaseModel):
    """Best-effort quota status for a user."""

    model_config = ConfigDict(populate_by_name=True)

    limit_count: int = Field(..., serialization_alias="limitCount")
    limit_frequency: str = Field(..., serialization_alias="limitFrequency")
    period_key: str = Field(..., serialization_alias="periodKey")
    used: int
    remaining: int


def get_mock_quiz_service(request: Request) -> MockQuizService:
    return request.app.state.mock_quiz_service


MockQuizServiceDep = Annotated[MockQuizService, Depends(get_mock_quiz_service)]


@router.post("")
async def create_mock_quiz(
    payload: MockQuizCreate,
    request: Request,
    service: MockQuizServiceDep,
) -> JSONResponse:
    """Create a mock quiz for the user within their quota."""
    result = await service.create_mock_quiz(payload.to_request())
    if result.success:
        logger.info(
            "Mock quiz created",
            extra=get_log_context(
                request_id=get_request_id(request),
                user_id=payload.user_id,
                quiz_id=result.quiz_id,
            ),
        )
    return JSONResponse(status_code=result.status_code, content=result.to_dict())


@router.get("/quota/{user_id}", response_model=QuotaResponse, response_model_by_alias=True)
async def get_quota(user_id: str, service: MockQuizServiceDep) -> QuotaResponse:
    """Return the user's quota for the current period (not authoritative)."""
    estimate = await service.get_quota(user_id)
    return QuotaResponse(
        limit_count=estimate.limit_count,
        limit_frequency=estimate.limit_frequency,
        period_key=estimate.period_key,
        used=estimate.used,
        remaining=estimate.remaining,
    )
