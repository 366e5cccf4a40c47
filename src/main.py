"""LearnHub API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.certificates.renderer import WeasyPrintCertificateRenderer
from src.certificates.router import admin_router as certificates_admin_router
from src.certificates.router import router as certificates_router
from src.certificates.service import CertificateService
from src.certificates.store import CertificateStore
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.email.events import EmailEventService
from src.email.router import admin_router as email_admin_router
from src.email.router import router as email_router
from src.email.service import EmailService
from src.health import router as health_router
from src.notifications.fanout import NotificationFanout
from src.notifications.router import router as notifications_router
from src.notifications.service import NotificationService
from src.notifications.websocket_router import router as notifications_ws_router
from src.storage.service import FirebaseStorageService
from src.training.completion import CompletionService
from src.training.realtime import TrainingChangePublisher
from src.training.router import learner_router as training_learner_router
from src.training.router import router as training_router
from src.training.service import TrainingService
from src.training.store import TrainingStore
from src.training.websocket_router import router as training_ws_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    training_service: TrainingService | None = None
    completion_service: CompletionService | None = None
    certificate_service: CertificateService | None = None
    notification_service: NotificationService | None = None
    email_service: EmailService | None = None
    email_event_service: EmailEventService | None = None


app_state = AppState()


def get_training_service() -> TrainingService:
    """Get TrainingService instance from app state."""
    if app_state.training_service is None:
        msg = "TrainingService not initialized"
        raise RuntimeError(msg)
    return app_state.training_service


def get_completion_service() -> CompletionService:
    """Get CompletionService instance from app state."""
    if app_state.completion_service is None:
        msg = "CompletionService not initialized"
        raise RuntimeError(msg)
    return app_state.completion_service


def get_certificate_service() -> CertificateService:
    """Get CertificateService instance from app state."""
    if app_state.certificate_service is None:
        msg = "CertificateService not initialized"
        raise RuntimeError(msg)
    return app_state.certificate_service


def get_notification_service() -> NotificationService:
    """Get NotificationService instance from app state."""
    if app_state.notification_service is None:
        msg = "NotificationService not initialized"
        raise RuntimeError(msg)
    return app_state.notification_service


def get_email_event_service() -> EmailEventService:
    """Get EmailEventService instance from app state."""
    if app_state.email_event_service is None:
        msg = "EmailEventService not initialized"
        raise RuntimeError(msg)
    return app_state.email_event_service


def init_email_service() -> EmailService | None:
    """Gmail transport, or None when email is disabled or misconfigured."""
    if not settings.email_configured:
        logger.info("email_service_disabled")
        return None
    try:
        service = EmailService(
            credentials_path=settings.email_credentials_path,
            sender_address=settings.email_sender_address,
            sender_name=settings.email_sender_name,
        )
    except Exception as e:
        logger.warning(
            "email_service_init_skipped",
            error=str(e),
            message="Running without email service",
        )
        return None
    logger.info("email_service_initialized", sender=settings.email_sender_address)
    return service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - app works without it)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - realtime refresh and push disabled",
        )

    app_state.email_service = init_email_service()
    if app_state.email_service:
        app.state.email_service = app_state.email_service

    # Initialize Cassandra (async)
    try:
        session = await init_async_cassandra()
        app_state.cassandra_session = session
        keyspace = settings.cassandra_keyspace
        logger.info("cassandra_initialized")

        publisher = TrainingChangePublisher(redis_client)

        training_store = TrainingStore(
            session=session,
            keyspace=keyspace,
            page_size=settings.training_progress_page_size,
            page_fetch_attempts=settings.training_page_fetch_attempts,
            page_retry_delay=settings.training_page_retry_delay_seconds,
        )
        certificate_store = CertificateStore(
            session=session,
            keyspace=keyspace,
            page_size=settings.training_progress_page_size,
        )

        app_state.notification_service = NotificationService(
            session=session,
            keyspace=keyspace,
            redis_client=redis_client,
        )
        app.state.notification_service = app_state.notification_service

        app_state.email_event_service = EmailEventService(
            session=session,
            keyspace=keyspace,
            email_service=app_state.email_service,
        )
        await app_state.email_event_service.ensure_defaults()
        app.state.email_event_service = app_state.email_event_service

        fanout = NotificationFanout(
            training_store=training_store,
            certificate_store=certificate_store,
            notification_service=app_state.notification_service,
            email_events=app_state.email_event_service,
            batch_size=settings.training_email_batch_size,
            frontend_url=settings.frontend_url,
        )

        app_state.training_service = TrainingService(
            store=training_store,
            fanout=fanout,
            notification_service=app_state.notification_service,
            email_events=app_state.email_event_service,
            publisher=publisher,
            email_batch_size=settings.training_email_batch_size,
            frontend_url=settings.frontend_url,
        )
        app.state.training_service = app_state.training_service

        app_state.completion_service = CompletionService(
            store=training_store,
            publisher=publisher,
            default_approval_seconds=settings.training_default_approval_seconds,
        )
        app.state.completion_service = app_state.completion_service

        app_state.certificate_service = CertificateService(
            training_store=training_store,
            certificate_store=certificate_store,
            renderer=WeasyPrintCertificateRenderer(settings.certificate_issuer_name),
            storage=FirebaseStorageService(settings),
            notification_service=app_state.notification_service,
            email_events=app_state.email_event_service,
            publisher=publisher,
            storage_prefix=settings.certificate_storage_prefix,
            signed_url_ttl_seconds=settings.certificate_signed_url_ttl_seconds,
            email_link_ttl_days=settings.certificate_email_link_ttl_days,
        )
        app.state.certificate_service = app_state.certificate_service
        logger.info(
            "training_services_initialized",
            redis_enabled=redis_client is not None,
            email_enabled=app_state.email_service is not None,
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug=False keeps Starlette's ServerErrorMiddleware from rendering tracebacks
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LearnHub training completion and certification API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions; structured details (code + message) pass through."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        content: dict[str, Any] = {
            "error": True,
            "status_code": exc.status_code,
            "request_id": request_id,
        }
        if isinstance(exc.detail, dict):
            content["code"] = exc.detail.get("code")
            content["message"] = exc.detail.get("message")
        else:
            content["message"] = str(exc.detail)
        if exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
            content["message"] = "Internal server error"

        return ORJSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "code": "validation_error",
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler: full details are logged, never returned."""
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(training_router)
    app.include_router(training_learner_router)
    app.include_router(training_ws_router)
    app.include_router(certificates_router)
    app.include_router(certificates_admin_router)
    app.include_router(notifications_router)
    app.include_router(notifications_ws_router)
    app.include_router(email_router)
    app.include_router(email_admin_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        return {
            "message": "LearnHub API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


# Configure router dependencies before creating app
from src.certificates.dependencies import (  # noqa: E402
    set_certificate_service_getter,
)
from src.email.dependencies import set_email_event_service_getter  # noqa: E402
from src.notifications.dependencies import (  # noqa: E402
    set_notification_service_getter,
)
from src.training.dependencies import (  # noqa: E402
    set_completion_service_getter,
    set_training_service_getter,
)


set_training_service_getter(get_training_service)
set_completion_service_getter(get_completion_service)
set_certificate_service_getter(get_certificate_service)
set_notification_service_getter(get_notification_service)
set_email_event_service_getter(get_email_event_service)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.api_reload and settings.is_development,
    )
