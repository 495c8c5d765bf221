from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mockquiz.app.api.mock_quizzes import router as mock_quizzes_router
from mockquiz.app.core.config import settings
from mockquiz.app.core.logging import get_logger, setup_logging
from mockquiz.app.db.async_session import close_async_engine
from mockquiz.app.db.document_store import DocumentStore
from mockquiz.app.db.init_db import init_database, verify_connection
from mockquiz.app.db.memory_store import InMemoryDocumentStore
from mockquiz.app.db.sql_store import SqlDocumentStore
from mockquiz.app.exceptions import MockQuizError
from mockquiz.app.middleware.request_id import RequestIdMiddleware, get_request_id
from mockquiz.app.services.mock_quiz import MockQuizService


def create_app(store: Optional[DocumentStore] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Document store to serve from. When omitted, the store named by
            ``settings.document_store`` is created on startup.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Create the document store on startup and release it on shutdown."""
        owns_engine = False
        if not hasattr(app.state, "mock_quiz_service"):
            if settings.document_store == "memory":
                default_store: DocumentStore = InMemoryDocumentStore()
            else:
                if not await verify_connection():
                    logger.error("Database connection failed!")
                    raise RuntimeError("Cannot connect to database")
                await init_database(drop_first=False)
                default_store = SqlDocumentStore()
                owns_engine = True
            app.state.document_store = default_store
            app.state.mock_quiz_service = MockQuizService(default_store)

        logger.info(
            "Application startup complete",
            extra={
                "document_store": type(app.state.document_store).__name__,
                "debug_mode": settings.debug,
            },
        )
        yield

        await app.state.document_store.close()
        if owns_engine:
            await close_async_engine()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Mock Quiz Service",
        description="Mock test creation with tiered quotas and usage-balanced question selection",
        version="1.0.0",
        lifespan=lifespan,
    )

    if store is not None:
        app.state.document_store = store
        app.state.mock_quiz_service = MockQuizService(store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(mock_quizzes_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with document store status."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}

        current = getattr(app.state, "document_store", None)
        if isinstance(current, SqlDocumentStore):
            if await verify_connection():
                health_status["components"]["database"] = {"status": "ok", "type": "sql"}
            else:
                health_status["status"] = "degraded"
                health_status["components"]["database"] = {"status": "error", "type": "sql"}
        elif current is not None:
            health_status["components"]["database"] = {"status": "ok", "type": "memory"}
        else:
            health_status["status"] = "degraded"
            health_status["components"]["database"] = {"status": "error", "error": "not initialized"}

        return health_status

    @app.exception_handler(MockQuizError)
    async def mock_quiz_error_handler(request: Request, exc: MockQuizError) -> JSONResponse:
        """Convert domain errors to the unsuccessful response shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed request bodies in the unsuccessful response shape."""
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:])}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"Invalid request: {problems}"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled exceptions and return a generic failure.

        Tracebacks are logged server-side only; debug mode adds the exception
        message to the response.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={"request_id": request_id, "exception_type": type(exc).__name__},
        )
        content: dict[str, Any] = {
            "success": False,
            "error": str(exc) if settings.debug else "Internal server error",
            "request_id": request_id,
        }
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
