"""Tests de los publishers de RabbitMQ y Pulsar con clientes falsos."""

from typing import Any, Dict, List, Optional

import pytest
from pika.exceptions import AMQPChannelError, AMQPConnectionError

from attn.event_collector import amqp_client
from attn.event_collector.amqp_client import AmqpPublisher
from attn.event_collector.config import Settings
from attn.event_collector.exceptions import BrokerConnectionError, PublishError
from attn.event_collector.publishers import create_publisher
from attn.event_collector.pulsar_client import PulsarPublisher


class FakeChannel:
    def __init__(self) -> None:
        self.is_open = True
        self.queues: Dict[str, Dict[str, Any]] = {}
        self.declare_calls: List[str] = []
        self.published: List[Dict[str, Any]] = []
        self.fail_publish = False

    def queue_declare(self, queue: str, **kwargs: Any) -> None:
        self.declare_calls.append(queue)
        existing = self.queues.get(queue)
        if existing is not None and existing != kwargs:
            raise AMQPChannelError(406, "PRECONDITION_FAILED")
        self.queues[queue] = kwargs

    def basic_publish(self, exchange: str, routing_key: str, body: bytes, properties: Any = None) -> None:
        if self.fail_publish:
            raise AMQPChannelError("channel closed by broker")
        self.published.append(
            {"exchange": exchange, "routing_key": routing_key, "body": body, "properties": properties}
        )

    def close(self) -> None:
        self.is_open = False


class FakeConnection:
    def __init__(self) -> None:
        self.is_open = True
        self.channels: List[FakeChannel] = []

    def channel(self) -> FakeChannel:
        channel = FakeChannel()
        self.channels.append(channel)
        return channel

    def close(self) -> None:
        self.is_open = False


@pytest.fixture
def amqp() -> AmqpPublisher:
    connection = FakeConnection()
    publisher = AmqpPublisher(Settings(), connection_factory=lambda: connection)
    publisher.connect()
    return publisher


# RabbitMQ


def test_amqp_declares_durable_queues(amqp: AmqpPublisher) -> None:
    amqp.declare_topics(["click", "display", "view"])
    assert amqp.channel.queues["click"] == {"durable": True, "exclusive": False, "auto_delete": False}
    assert amqp.declared == {"click", "display", "view"}
    assert amqp.connected


def test_amqp_declare_is_idempotent(amqp: AmqpPublisher) -> None:
    amqp.declare_topics(["click"])
    amqp.declare_topics(["click"])
    assert amqp.channel.declare_calls == ["click", "click"]

    amqp.publish("click", b"{}")
    assert len(amqp.channel.published) == 1


def test_amqp_publish_routes_by_queue_name(amqp: AmqpPublisher) -> None:
    amqp.declare_topics(["view"])
    amqp.publish("view", b'{"foo":"bar"}')

    sent = amqp.channel.published[0]
    assert sent["exchange"] == ""
    assert sent["routing_key"] == "view"
    assert sent["body"] == b'{"foo":"bar"}'
    assert sent["properties"].content_type == "application/json"
    assert sent["properties"].delivery_mode == 2


def test_amqp_rejects_undeclared_topic(amqp: AmqpPublisher) -> None:
    with pytest.raises(PublishError) as excinfo:
        amqp.publish("click", b"{}")
    assert excinfo.value.topic == "click"
    assert amqp.channel.published == []


def test_amqp_publish_failure_is_wrapped(amqp: AmqpPublisher) -> None:
    amqp.declare_topics(["click"])
    amqp.channel.fail_publish = True
    with pytest.raises(PublishError):
        amqp.publish("click", b"{}")


def test_amqp_connection_failure_is_fatal() -> None:
    def refuse():
        raise AMQPConnectionError("connection refused")

    publisher = AmqpPublisher(Settings(), connection_factory=refuse)
    with pytest.raises(BrokerConnectionError):
        publisher.connect()
    assert not publisher.connected


def test_amqp_declare_requires_connection() -> None:
    publisher = AmqpPublisher(Settings(), connection_factory=FakeConnection)
    with pytest.raises(BrokerConnectionError):
        publisher.declare_topics(["click"])


class ConnectionCounter:
    """Factory que abre una FakeConnection nueva por llamada."""

    def __init__(self) -> None:
        self.opened: List[FakeConnection] = []
        self.refuse = False

    def __call__(self) -> FakeConnection:
        if self.refuse:
            raise AMQPConnectionError("connection refused")
        connection = FakeConnection()
        self.opened.append(connection)
        return connection


@pytest.fixture
def counter() -> ConnectionCounter:
    return ConnectionCounter()


@pytest.fixture
def reconnecting(counter: ConnectionCounter) -> AmqpPublisher:
    publisher = AmqpPublisher(Settings(), connection_factory=counter)
    publisher.connect()
    publisher.declare_topics(["click", "view"])
    return publisher


def test_amqp_reopens_closed_channel(reconnecting: AmqpPublisher, counter: ConnectionCounter) -> None:
    old_channel = reconnecting.channel
    old_channel.close()

    for _ in range(3):
        reconnecting.publish("click", b"{}")

    assert len(counter.opened) == 1
    assert reconnecting.channel is not old_channel
    assert reconnecting.channel.declare_calls == ["click", "view"]
    assert len(reconnecting.channel.published) == 3
    assert reconnecting.connected


def test_amqp_reconnects_closed_connection(reconnecting: AmqpPublisher, counter: ConnectionCounter) -> None:
    counter.opened[0].close()

    reconnecting.publish("view", b"{}")

    assert len(counter.opened) == 2
    assert reconnecting.connection is counter.opened[1]
    assert reconnecting.channel.declare_calls == ["click", "view"]
    assert reconnecting.channel.published[0]["routing_key"] == "view"


def test_amqp_failed_reconnect_is_publish_error(reconnecting: AmqpPublisher, counter: ConnectionCounter) -> None:
    counter.opened[0].close()
    counter.refuse = True

    with pytest.raises(PublishError):
        reconnecting.publish("click", b"{}")

    # Un solo intento por publish, sin bucle de reintentos
    counter.refuse = False
    reconnecting.publish("click", b"{}")
    assert len(counter.opened) == 2


def test_amqp_connection_uses_heartbeat(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def fake_blocking_connection(params):
        captured["params"] = params
        return FakeConnection()

    monkeypatch.setattr(amqp_client.pika, "BlockingConnection", fake_blocking_connection)
    publisher = AmqpPublisher(Settings(amqp_heartbeat=30, amqp_blocked_connection_timeout=60))
    publisher.connect()

    assert captured["params"].heartbeat == 30
    assert captured["params"].blocked_connection_timeout == 60


def test_amqp_close(amqp: AmqpPublisher) -> None:
    connection = amqp.connection
    amqp.close()
    assert not connection.is_open
    assert not amqp.connected


# Pulsar


class FakeProducer:
    def __init__(self, topic: str, fail: bool = False) -> None:
        self.topic = topic
        self.sent: List[bytes] = []
        self.fail = fail
        self.closed = False

    def send(self, body: bytes) -> None:
        if self.fail:
            raise RuntimeError("TimeOut")
        self.sent.append(body)

    def close(self) -> None:
        self.closed = True


class FakePulsarClient:
    def __init__(self, unreachable: bool = False) -> None:
        self.unreachable = unreachable
        self.producers: Dict[str, FakeProducer] = {}
        self.closed = False

    def create_producer(self, topic: str, **kwargs: Any) -> FakeProducer:
        if self.unreachable:
            raise RuntimeError("ConnectError")
        producer = FakeProducer(topic)
        self.producers[topic] = producer
        return producer

    def close(self) -> None:
        self.closed = True


def _pulsar(client: Optional[FakePulsarClient] = None) -> PulsarPublisher:
    fake = client or FakePulsarClient()
    publisher = PulsarPublisher(Settings(broker="pulsar"), client_factory=lambda: fake)
    publisher.connect()
    return publisher


def test_pulsar_warms_up_producers() -> None:
    publisher = _pulsar()
    publisher.declare_topics(["click", "view"])
    assert set(publisher.producers) == {"click", "view"}
    assert publisher.connected


def test_pulsar_publishes_to_topic_without_declaration() -> None:
    publisher = _pulsar()
    publisher.publish("display", b"{}")
    assert publisher.client.producers["display"].sent == [b"{}"]

    publisher.publish("display", b"{}")
    assert len(publisher.client.producers) == 1


def test_pulsar_send_failure_is_wrapped() -> None:
    publisher = _pulsar()
    publisher.declare_topics(["click"])
    publisher.producers["click"].fail = True
    with pytest.raises(PublishError):
        publisher.publish("click", b"{}")


def test_pulsar_unreachable_broker_is_fatal() -> None:
    publisher = _pulsar(FakePulsarClient(unreachable=True))
    with pytest.raises(BrokerConnectionError):
        publisher.declare_topics(["click"])
    assert not publisher.connected


def test_pulsar_close() -> None:
    publisher = _pulsar()
    publisher.declare_topics(["click"])
    client = publisher.client
    producer = publisher.producers["click"]
    publisher.close()
    assert producer.closed and client.closed
    assert publisher.producers == {}
    assert not publisher.connected


def test_create_publisher_selects_backend() -> None:
    assert isinstance(create_publisher(Settings(broker="amqp")), AmqpPublisher)
    assert isinstance(create_publisher(Settings(broker="pulsar")), PulsarPublisher)
