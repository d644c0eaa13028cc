"""
Interfaz común de publicación en brokers
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable

from .config import Settings


class BrokerPublisher(ABC):
    """Publica bytes en un destino (cola/topic) del broker.

    Una misma instancia se comparte entre todos los requests concurrentes;
    cada implementación se encarga de serializar el acceso al cliente si este
    no es thread-safe.
    """

    name: str = "broker"

    @abstractmethod
    def connect(self) -> None:
        """Conectar al broker; lanza ``BrokerConnectionError`` si no es posible"""

    def declare_topics(self, topics: Iterable[str]) -> None:
        """Preparar los destinos en el arranque (no-op por defecto)"""

    @abstractmethod
    def publish(self, topic: str, body: bytes) -> None:
        """Publicar un mensaje; lanza ``PublishError`` si el broker falla"""

    @abstractmethod
    def close(self) -> None:
        """Liberar conexiones"""

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    def get_health_status(self) -> Dict[str, Any]:
        return {"broker": self.name, "connected": self.connected}


def create_publisher(settings: Settings) -> BrokerPublisher:
    """Elegir la implementación según ``settings.broker``"""
    if settings.broker == "amqp":
        from .amqp_client import AmqpPublisher

        return AmqpPublisher(settings)
    if settings.broker == "pulsar":
        from .pulsar_client import PulsarPublisher

        return PulsarPublisher(settings)
    raise ValueError(f"Broker no soportado: {settings.broker}")
