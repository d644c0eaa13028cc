"""
FastAPI Application - Event Collector
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import Settings, get_settings
from .enrichment import get_client_ip
from .exceptions import CollectorException
from .handler import IntakeHandler
from .models import ErrorResponse, HealthCheckResponse, HealthStatus
from .publishers import BrokerPublisher, create_publisher
from .registry import EventTypeRegistry
from .reporting import ErrorReporter

logger = logging.getLogger(__name__)


def build_intake_handler(settings: Settings, reporter: ErrorReporter) -> IntakeHandler:
    """Fase de inicialización: conectar el broker y preparar los destinos.

    Cualquier fallo aquí es fatal para el proceso.
    """
    registry = EventTypeRegistry()
    publisher = create_publisher(settings)
    publisher.connect()
    try:
        publisher.declare_topics(registry)
    except Exception:
        publisher.close()
        raise
    return IntakeHandler(
        registry=registry,
        publisher=publisher,
        reporter=reporter,
        publish_timeout=settings.publish_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestión del ciclo de vida de la aplicación"""
    settings: Settings = app.state.settings

    # Startup
    logger.info("🚀 Iniciando Event Collector...")
    reporter = ErrorReporter(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        release=settings.service_version,
    )
    reporter.setup()
    app.state.reporter = reporter

    try:
        handler = build_intake_handler(settings, reporter)
    except Exception as e:
        reporter.capture(e, phase="startup", broker=settings.broker)
        reporter.flush()
        logger.critical(f"❌ Error iniciando Event Collector: {e}")
        raise

    app.state.intake_handler = handler
    logger.info(f"✅ Event Collector iniciado ({settings.broker}, tipos: {list(handler.registry)})")

    yield

    # Shutdown
    logger.info("🛑 Cerrando Event Collector...")
    handler.publisher.close()
    reporter.flush()
    logger.info("✅ Event Collector cerrado correctamente")


# Dependencies


def get_intake_handler(request: Request) -> IntakeHandler:
    """Obtener el handler creado en el startup"""
    handler: Optional[IntakeHandler] = getattr(request.app.state, "intake_handler", None)
    if handler is None:
        raise CollectorException(
            "Collector not initialized",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="not_ready",
        )
    return handler


def get_publisher(request: Request) -> Optional[BrokerPublisher]:
    handler: Optional[IntakeHandler] = getattr(request.app.state, "intake_handler", None)
    return handler.publisher if handler else None


def get_reporter(request: Request) -> ErrorReporter:
    reporter = getattr(request.app.state, "reporter", None)
    return reporter or ErrorReporter()


# Exception handlers


async def intake_exception_handler(request: Request, exc: CollectorException):
    """Errores esperados: se devuelven al cliente con su status"""
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def global_exception_handler(request: Request, exc: Exception):
    """Manejo global de excepciones"""
    trace_id = str(uuid.uuid4())
    get_reporter(request).capture(exc, trace_id=trace_id, path=request.url.path)

    error_response = ErrorResponse(
        error_code="INTERNAL_ERROR",
        error_message="Internal server error",
        timestamp=datetime.now(timezone.utc),
        trace_id=trace_id,
    )
    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))


# Event Collection Endpoints

collector_router = APIRouter(prefix="/v2", tags=["collection"])


@collector_router.post("/event/{event_type}", response_class=PlainTextResponse)
@collector_router.post("/event/{event_type}/", response_class=PlainTextResponse, include_in_schema=False)
async def collect_event(
    event_type: str,
    request: Request,
    handler: IntakeHandler = Depends(get_intake_handler),
):
    """
    Recopilar un evento de analítica

    - **event_type**: display, click o view (también es el nombre de la cola)
    - **body**: objeto JSON libre, se publica tal cual junto al enriquecimiento
    """
    received_at = handler.clock()
    # El tipo se valida antes de leer el body o resolver la IP
    handler.validate_type(event_type)

    body = await request.body()
    client_ip = get_client_ip(request.headers, request.client.host if request.client else None)

    envelope = await handler.handle(
        event_type,
        body,
        user_agent=request.headers.get("user-agent"),
        client_ip=client_ip,
        received_at=received_at,
    )
    logger.debug(f"Evento publicado en {envelope.topic} desde {client_ip}")
    return PlainTextResponse("Ok")


# Health Check Endpoints

health_router = APIRouter(prefix="/health", tags=["health"])


@health_router.get("", response_model=HealthCheckResponse)
async def health_check(request: Request, publisher: Optional[BrokerPublisher] = Depends(get_publisher)):
    """Health check endpoint"""
    settings: Settings = request.app.state.settings
    checks = {}
    overall_status = HealthStatus.HEALTHY

    if publisher:
        broker_health = publisher.get_health_status()
        checks["broker"] = broker_health
        if not broker_health.get("connected", False):
            overall_status = HealthStatus.DEGRADED
    else:
        checks["broker"] = {"status": "not_connected"}
        overall_status = HealthStatus.UNHEALTHY

    return HealthCheckResponse(
        service_name=settings.service_name,
        status=overall_status,
        version=settings.service_version,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
        metadata={"environment": "development" if settings.debug else "production"},
    )


@health_router.get("/ready")
async def readiness_check(publisher: Optional[BrokerPublisher] = Depends(get_publisher)):
    """Readiness check para Kubernetes"""
    if publisher is None or not publisher.connected:
        return JSONResponse(status_code=503, content={"status": "not_ready"})
    return {"status": "ready"}


@health_router.get("/live")
async def liveness_check():
    """Liveness check para Kubernetes"""
    return {"status": "alive"}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Crear la aplicación FastAPI"""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="attn - Event Collector",
        description="Recibe eventos display/click/view, los enriquece y los publica en el broker",
        version=settings.service_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CollectorException, intake_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(collector_router)
    app.include_router(health_router)

    @app.get("/")
    async def root():
        """Información básica del servicio"""
        return {
            "service": "attn Event Collector",
            "version": settings.service_version,
            "broker": settings.broker,
            "endpoints": {
                "health": "/health",
                "collect_event": "/v2/event/{event_type}",
            },
        }

    return app


app = create_app()
