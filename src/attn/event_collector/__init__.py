"""
Event Collector
===============

Servicio FastAPI que recibe eventos de analítica (display, click, view),
los enriquece con metadatos del request y los publica en el broker.

Responsabilidades:
- Validar el tipo de evento contra el registro
- Decodificar el payload JSON
- Enriquecer con fecha, IP y datos del User-Agent
- Publicar en RabbitMQ (cola por tipo) o Pulsar (topic por tipo)
"""

from .config import Settings, get_settings
from .handler import IntakeHandler
from .models import EventEnvelope, EventPayload, EnrichmentFields
from .publishers import BrokerPublisher, create_publisher
from .registry import DEFAULT_EVENT_TYPES, EventTypeRegistry

__all__ = [
    'Settings',
    'get_settings',
    'IntakeHandler',
    'EventEnvelope',
    'EventPayload',
    'EnrichmentFields',
    'BrokerPublisher',
    'create_publisher',
    'DEFAULT_EVENT_TYPES',
    'EventTypeRegistry',
]
