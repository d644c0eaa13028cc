"""
Pipeline de ingesta: validar tipo, decodificar, enriquecer, publicar
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from .enrichment import UserAgentEnricher
from .envelope import build_envelope
from .exceptions import BadParameters, EventTypeNotFound, PublishError, PublishFailed
from .models import EventEnvelope, EventPayload
from .publishers import BrokerPublisher
from .registry import EventTypeRegistry
from .reporting import ErrorReporter

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IntakeHandler:
    """Orquestador por request.

    Received -> TypeValidated -> Decoded -> Enriched -> EnvelopeBuilt -> Published.
    Cualquier paso que falla corta el pipeline con una ``IntakeError`` que
    indica el paso. Sin reintentos.

    Una instancia se comparte entre todos los requests: no guarda estado por
    request y no toma locks alrededor del publish.
    """

    def __init__(
        self,
        registry: EventTypeRegistry,
        publisher: BrokerPublisher,
        reporter: ErrorReporter,
        enricher: Optional[UserAgentEnricher] = None,
        publish_timeout: Optional[float] = 5.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.publisher = publisher
        self.reporter = reporter
        self.enricher = enricher or UserAgentEnricher()
        self.publish_timeout = publish_timeout
        self.clock = clock

    def validate_type(self, event_type: str) -> None:
        """Lanza ``EventTypeNotFound`` si el tipo no está en el registro"""
        if not self.registry.is_allowed(event_type):
            logger.debug(f"Tipo de evento rechazado: {event_type!r}")
            raise EventTypeNotFound(event_type)

    async def handle(
        self,
        event_type: str,
        body: bytes,
        user_agent: Optional[str] = None,
        client_ip: str = "",
        received_at: Optional[datetime] = None,
    ) -> EventEnvelope:
        """Procesar un evento y devolver el envelope publicado.

        ``received_at`` permite al caller fijar el instante de recepción si lo
        capturó antes; por defecto se toma al entrar.
        """
        if received_at is None:
            received_at = self.clock()

        self.validate_type(event_type)

        try:
            payload = EventPayload.decode(body)
        except ValidationError as e:
            logger.debug(f"Payload inválido para {event_type}: {e.error_count()} errores")
            raise BadParameters(cause=e) from e

        ua_fields = self.enricher.enrich(user_agent)
        envelope = build_envelope(event_type, payload, ua_fields, received_at, client_ip)

        await self._publish(envelope.topic, envelope.serialize())
        return envelope

    async def _publish(self, topic: str, body: bytes) -> None:
        # El cliente del broker bloquea: se ejecuta fuera del event loop
        try:
            await asyncio.wait_for(
                run_in_threadpool(self.publisher.publish, topic, body),
                timeout=self.publish_timeout,
            )
        except PublishError as e:
            self.reporter.capture(e, topic=topic, broker=self.publisher.name)
            raise PublishFailed(topic, cause=e) from e
        except asyncio.TimeoutError as e:
            error = PublishError(topic, f"no ack after {self.publish_timeout}s")
            self.reporter.capture(error, topic=topic, broker=self.publisher.name)
            raise PublishFailed(topic, cause=error) from e
