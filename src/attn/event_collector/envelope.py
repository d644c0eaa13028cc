"""
Construcción del envelope que se publica en el broker
"""
from datetime import datetime
from typing import Any, Mapping

from .models import EnrichmentFields, EventEnvelope, EventPayload, UserAgentFields


def build_envelope(
    event_type: str,
    payload: EventPayload,
    user_agent: UserAgentFields,
    timestamp: datetime,
    client_ip: str,
) -> EventEnvelope:
    """Combinar payload y metadatos del request en un envelope inmutable.

    ``timestamp`` es el instante de recepción del request, no el del publish.
    """
    enrichment = EnrichmentFields(
        date=timestamp,
        ip=client_ip,
        **user_agent.model_dump(),
    )
    body: Mapping[str, Any] = payload.root
    return EventEnvelope(event_type=event_type, payload=dict(body), enrichment=enrichment)
