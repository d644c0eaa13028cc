"""
Modelos Pydantic: payload de entrada, enriquecimiento, envelope y responses
"""
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError
from pydantic_core import from_json


class HealthStatus(str, Enum):
    """Estados de salud del servicio"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class EventPayload(RootModel[Dict[str, Any]]):
    """Payload opaco enviado por el cliente.

    El esquema pertenece a los consumidores; aquí solo se exige que sea un
    objeto JSON.
    """

    @classmethod
    def decode(cls, body: bytes) -> "EventPayload":
        """Decodificar el body del request (lanza ``ValidationError``).

        JSON estricto: ``NaN`` e ``Infinity`` no son JSON válido y se rechazan.
        """
        try:
            data = from_json(body, allow_inf_nan=False)
        except ValueError as e:
            raise ValidationError.from_exception_data(
                cls.__name__,
                [{"type": "json_invalid", "loc": (), "input": body, "ctx": {"error": str(e)}}],
            ) from e
        return cls.model_validate(data)


class UserAgentFields(BaseModel):
    """Campos derivados del header User-Agent"""
    model_config = ConfigDict(frozen=True)

    mobile: bool = False
    platform: str = ""
    os: str = ""
    browser: str = ""
    version: str = ""


class EnrichmentFields(UserAgentFields):
    """Metadatos que el collector agrega a cada evento"""

    date: datetime = Field(..., description="Momento de recepción del request")
    ip: str = Field("", description="IP del cliente")


ENRICHMENT_KEYS = tuple(EnrichmentFields.model_fields)


class EventEnvelope(BaseModel):
    """Mensaje publicado en el broker: payload + enriquecimiento"""
    model_config = ConfigDict(frozen=True)

    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    enrichment: EnrichmentFields

    @property
    def topic(self) -> str:
        # Una cola/topic por tipo de evento
        return self.event_type

    def to_message(self) -> Dict[str, Any]:
        """Payload plano con los campos de enriquecimiento.

        Si el payload trae una clave reservada (``ip``, ``date``...) gana el
        valor calculado por el collector.
        """
        return {**self.payload, **self.enrichment.model_dump(mode="json")}

    def serialize(self) -> bytes:
        return json.dumps(
            self.to_message(), ensure_ascii=False, allow_nan=False, separators=(",", ":")
        ).encode("utf-8")

    @classmethod
    def deserialize(cls, event_type: str, body: bytes) -> "EventEnvelope":
        """Reconstruir el envelope a partir del mensaje publicado"""
        message = json.loads(body)
        enrichment = {key: message.pop(key) for key in ENRICHMENT_KEYS if key in message}
        return cls(
            event_type=event_type,
            payload=message,
            enrichment=EnrichmentFields.model_validate(enrichment),
        )


class HealthCheckResponse(BaseModel):
    """Response del health check"""
    service_name: str
    status: HealthStatus
    version: str
    timestamp: datetime
    checks: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Response de error estándar"""
    error_code: str
    error_message: str
    timestamp: datetime
    trace_id: Optional[str] = None
