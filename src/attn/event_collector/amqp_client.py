"""
Cliente de RabbitMQ: declara una cola durable por tipo de evento
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Set

import pika
from pika.exceptions import AMQPError

from .config import Settings
from .exceptions import BrokerConnectionError, PublishError
from .publishers import BrokerPublisher

logger = logging.getLogger(__name__)

# delivery_mode=2: mensaje persistente en colas durables
JSON_PROPERTIES = pika.BasicProperties(content_type="application/json", delivery_mode=2)


class AmqpPublisher(BrokerPublisher):
    """Publisher para brokers AMQP (RabbitMQ).

    Cada tipo de evento es una cola durable declarada una sola vez en el
    arranque; los mensajes se publican en el exchange por defecto con
    routing key = nombre de la cola.
    """

    name = "amqp"

    def __init__(self, settings: Settings, connection_factory: Optional[Callable[[], Any]] = None):
        self.settings = settings
        self._connection_factory = connection_factory or self._default_connection
        self.connection = None
        self.channel = None
        self.declared: Set[str] = set()
        # pika no es thread-safe: un solo publish (o reconexión) a la vez sobre el canal
        self._lock = threading.Lock()

    def _default_connection(self):
        params = pika.URLParameters(self.settings.amqp_url)
        params.heartbeat = self.settings.amqp_heartbeat
        params.blocked_connection_timeout = self.settings.amqp_blocked_connection_timeout
        return pika.BlockingConnection(params)

    @property
    def connected(self) -> bool:
        return bool(
            self.connection is not None
            and self.connection.is_open
            and self.channel is not None
            and self.channel.is_open
        )

    def connect(self) -> None:
        """Conectar a RabbitMQ y abrir el canal compartido"""
        try:
            logger.info("Conectando a RabbitMQ")
            self.connection = self._connection_factory()
            self.channel = self.connection.channel()
            logger.info("Conectado a RabbitMQ exitosamente")
        except AMQPError as e:
            raise BrokerConnectionError(f"Failed to connect to RabbitMQ: {e}") from e

    def declare_topics(self, topics: Iterable[str]) -> None:
        """Declarar las colas (idempotente en el broker)"""
        if self.channel is None:
            raise BrokerConnectionError("Channel not open, call connect() first")
        for topic in topics:
            try:
                self.channel.queue_declare(
                    queue=topic,
                    durable=True,
                    exclusive=False,
                    auto_delete=False,
                )
            except AMQPError as e:
                raise BrokerConnectionError(f"Failed to declare queue '{topic}': {e}") from e
            self.declared.add(topic)
            logger.info(f"Cola declarada: {topic}")

    def _ensure_channel(self) -> None:
        """Reabrir conexión/canal si el broker los cerró (un solo intento).

        Se llama con el lock tomado. Las colas ya declaradas se vuelven a
        declarar en el canal nuevo.
        """
        if self.connection is None or not self.connection.is_open:
            logger.warning("Conexión RabbitMQ cerrada, reconectando")
            self.channel = None
            self.connection = self._connection_factory()
        if self.channel is None or not self.channel.is_open:
            self.channel = self.connection.channel()
            for queue in sorted(self.declared):
                self.channel.queue_declare(queue=queue, durable=True, exclusive=False, auto_delete=False)
            logger.info("Canal RabbitMQ reabierto")

    def publish(self, topic: str, body: bytes) -> None:
        if topic not in self.declared:
            raise PublishError(topic, "queue not declared")
        try:
            with self._lock:
                self._ensure_channel()
                self.channel.basic_publish(
                    exchange="",
                    routing_key=topic,
                    body=body,
                    properties=JSON_PROPERTIES,
                )
        except AMQPError as e:
            raise PublishError(topic, str(e) or type(e).__name__) from e

    def close(self) -> None:
        """Cerrar canal y conexión"""
        try:
            if self.channel is not None and self.channel.is_open:
                self.channel.close()
            if self.connection is not None and self.connection.is_open:
                self.connection.close()
                logger.info("Conexión RabbitMQ cerrada")
        except AMQPError as e:
            logger.error(f"Error desconectando de RabbitMQ: {e}")
        finally:
            self.channel = None
            self.connection = None

    def get_health_status(self) -> Dict[str, Any]:
        status = super().get_health_status()
        status["queues"] = sorted(self.declared)
        return status
