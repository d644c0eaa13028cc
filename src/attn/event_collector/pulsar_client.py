"""
Cliente de Apache Pulsar: publica directo al topic del tipo de evento
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional

import pulsar

from .config import Settings
from .exceptions import BrokerConnectionError, PublishError
from .publishers import BrokerPublisher

logger = logging.getLogger(__name__)


class PulsarPublisher(BrokerPublisher):
    """Publisher para Pulsar.

    No hay paso de declaración: el topic se crea al publicar. Los producers
    de los topics conocidos se crean en el arranque para validar la conexión;
    cualquier otro topic obtiene su producer en el primer publish.
    """

    name = "pulsar"

    def __init__(self, settings: Settings, client_factory: Optional[Callable[[], Any]] = None):
        self.settings = settings
        self._client_factory = client_factory or self._default_client
        self.client: Optional[Any] = None
        self.producers: Dict[str, Any] = {}
        # Solo protege el cache de producers, nunca el send
        self._producers_lock = threading.Lock()
        self._connected = False

    def _default_client(self):
        return pulsar.Client(
            self.settings.pulsar_url,
            connection_timeout_ms=self.settings.pulsar_connection_timeout_ms,
            operation_timeout_seconds=self.settings.pulsar_operation_timeout_seconds,
        )

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Crear el cliente Pulsar"""
        try:
            logger.info(f"Conectando a Pulsar: {self.settings.pulsar_url}")
            self.client = self._client_factory()
        except Exception as e:
            raise BrokerConnectionError(f"Failed to connect to Pulsar: {e}") from e

    def declare_topics(self, topics: Iterable[str]) -> None:
        """Pre-crear producers; falla si el broker no responde"""
        for topic in topics:
            try:
                self._get_producer(topic)
            except Exception as e:
                raise BrokerConnectionError(f"Failed to create producer for '{topic}': {e}") from e
        self._connected = True
        logger.info("Conectado a Pulsar exitosamente")

    def _get_producer(self, topic: str):
        producer = self.producers.get(topic)
        if producer is not None:
            return producer
        if self.client is None:
            raise PublishError(topic, "client not connected")
        with self._producers_lock:
            producer = self.producers.get(topic)
            if producer is None:
                producer = self.client.create_producer(
                    topic,
                    send_timeout_millis=self.settings.producer_send_timeout_ms,
                )
                self.producers[topic] = producer
                logger.info(f"Producer creado para topic: {topic}")
        return producer

    def publish(self, topic: str, body: bytes) -> None:
        try:
            self._get_producer(topic).send(body)
        except PublishError:
            raise
        except Exception as e:
            raise PublishError(topic, str(e) or type(e).__name__) from e

    def close(self) -> None:
        """Desconectar de Pulsar"""
        with self._producers_lock:
            for topic, producer in self.producers.items():
                try:
                    producer.close()
                    logger.info(f"Producer cerrado para topic: {topic}")
                except Exception as e:
                    logger.error(f"Error cerrando producer {topic}: {e}")
            self.producers.clear()
        if self.client is not None:
            try:
                self.client.close()
                logger.info("Cliente Pulsar cerrado")
            except Exception as e:
                logger.error(f"Error desconectando de Pulsar: {e}")
        self.client = None
        self._connected = False

    def get_health_status(self) -> Dict[str, Any]:
        status = super().get_health_status()
        status["producers_count"] = len(self.producers)
        return status
