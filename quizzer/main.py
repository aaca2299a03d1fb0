"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from quizzer.api.auth import router as auth_router
from quizzer.api.leaderboard import router as leaderboard_router
from quizzer.api.quizzes import router as quizzes_router
from quizzer.api.subjects import router as subjects_router
from quizzer.core.cache import RedisCache
from quizzer.core.config import Settings, get_settings
from quizzer.core.database import Database
from quizzer.core.errors import QuizzerError, error_body
from quizzer.core.logging import configure_logging
from quizzer.middleware.logging import LoggingMiddleware
from quizzer.middleware.rate_limit import RateLimitMiddleware
from quizzer.models.seed import seed_subjects
from quizzer.services.textgen import TextGenerator, build_text_generator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    """
    settings: Settings = app.state.settings
    database: Database = app.state.db

    # Startup
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})...")
    await database.connect()
    if settings.CREATE_TABLES_ON_STARTUP:
        await database.create_all()
        logger.info("Database tables ensured")
    if settings.SEED_DEFAULT_SUBJECTS:
        async with database.session() as session:
            await seed_subjects(session)

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await app.state.generator.aclose()
    await app.state.cache.close()
    await database.dispose()
    logger.info("Shutdown complete")


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(QuizzerError)
    async def quizzer_exception_handler(request: Request, exc: QuizzerError):
        if exc.status_code >= 500:
            logger.error(f"{exc.category} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.category, exc.status_code, jsonable_encoder(exc.details)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail, "http_error", exc.status_code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies and query strings are client errors."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("Validation error", "validation_error", status.HTTP_400_BAD_REQUEST,
                                jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        message = str(exc) if settings.is_development() else "An internal error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(message, "internal_error", status.HTTP_500_INTERNAL_SERVER_ERROR),
        )


def create_app(settings: Optional[Settings] = None, *, database: Optional[Database] = None,
               cache: Optional[RedisCache] = None, generator: Optional[TextGenerator] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url=settings.DOCS_URL if not settings.is_production() else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database or Database.from_settings(settings)
    app.state.cache = cache or RedisCache.from_settings(settings)
    app.state.generator = generator or build_text_generator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(RateLimitMiddleware)
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app, settings)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}

    @app.get("/health/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness check endpoint."""
        checks = {"database": False, "redis": False}

        try:
            checks["database"] = await request.app.state.db.ping()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")

        try:
            checks["redis"] = await request.app.state.cache.ping()
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")

        all_healthy = all(checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if all_healthy else "not_ready", "checks": checks},
        )

    prefix = settings.API_V1_PREFIX
    app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(subjects_router, prefix=f"{prefix}/subjects", tags=["subjects"])
    app.include_router(quizzes_router, prefix=f"{prefix}/quizzes", tags=["quizzes"])
    app.include_router(leaderboard_router, prefix=f"{prefix}/leaderboard", tags=["leaderboard"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "quizzer.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
    )
