from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from config import Config
from api import routers
from models import CATSession, QuizSession, User
from services.cache_service import get_cache_service
from services.database_service import get_database_service
from services.exceptions import AppError
from services.question_repository import get_question_repository
from services.reference_data import seed_reference_data


import structlog


APP_VERSION = "1.0.0"


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


log_handlers = [logging.StreamHandler()]
if Config.LOG_FILE:
    log_handlers.append(logging.FileHandler(Config.LOG_FILE))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=log_handlers
)

logger = structlog.get_logger(__name__)


import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

if Config.SENTRY_DSN:
    sentry_sdk.init(
        dsn=Config.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            )
        ],
        traces_sample_rate=0.2,
        environment=Config.ENVIRONMENT,
        release=f"nclex-prep-api@{APP_VERSION}"
    )
    logger.info("Sentry error monitoring initialized")
else:
    logger.warning("Sentry DSN not configured - error monitoring disabled")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(status_code: int, code: str, message: str, details: Optional[Any] = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    error["timestamp"] = _timestamp()
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"error": error}))


HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        created = seed_reference_data()
        logger.info(f"Reference data ready ({created} rows created)")
    except Exception as e:
        logger.error(f"Failed to seed reference data: {e}")
        raise
    yield


app = FastAPI(
    title="NCLEX Prep API",
    description="NCLEX exam preparation: practice quizzes, adaptive testing, flashcards, study plans and community",
    version=APP_VERSION,
    lifespan=lifespan
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in routers:
    app.include_router(router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = "Resource not found"
    else:
        message = str(exc.detail)
    return error_response(exc.status_code, code, message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in error.get("loc", [])), "message": error.get("msg")}
        for error in exc.errors()
    ]
    return error_response(422, "VALIDATION_ERROR", "Invalid request", details)


@app.exception_handler(Exception)
async def internal_server_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


@app.get("/")
async def root():
    return {"message": "NCLEX Prep API", "version": APP_VERSION}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for service monitoring
    """
    try:
        db_service = get_database_service()
        database_healthy = db_service.test_connection()

        cache_stats = get_cache_service().get_cache_stats()

        return {
            "status": "healthy" if database_healthy else "degraded",
            "timestamp": _timestamp(),
            "services": {
                "database": {
                    **db_service.get_connection_info(),
                    "status": "healthy" if database_healthy else "unhealthy"
                },
                "cache": cache_stats,
                "api": {"status": "healthy"}
            },
            "version": APP_VERSION
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "timestamp": _timestamp(),
            "error": str(e),
            "version": APP_VERSION
        }


@app.get("/metrics")
async def get_metrics():
    """
    Usage metrics endpoint
    """
    try:
        cache_stats = get_cache_service().get_cache_stats()

        with get_database_service().session_scope() as session:
            counts = {
                "total_users": session.query(User).count(),
                "total_quiz_sessions": session.query(QuizSession).count(),
                "total_cat_sessions": session.query(CATSession).count(),
            }

        return {
            "timestamp": _timestamp(),
            "cache": cache_stats.get("stats", {}),
            "api": {
                **counts,
                "total_questions": get_question_repository().count_questions(),
                "active_cache_entries": cache_stats.get("stats", {}).get("total_keys", 0),
                "cache_hit_rate": cache_stats.get("stats", {}).get("hit_rate", "0%")
            }
        }
    except Exception as e:
        logger.error(f"Metrics collection failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to collect metrics")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=Config.ENVIRONMENT == "development")
