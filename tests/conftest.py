"""Fixtures compartidos: publisher en memoria, reporter que registra errores y cliente ASGI."""

import json
import threading
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest
from httpx import ASGITransport, AsyncClient

from attn.event_collector.app import create_app
from attn.event_collector.config import Settings
from attn.event_collector.exceptions import PublishError
from attn.event_collector.handler import IntakeHandler
from attn.event_collector.publishers import BrokerPublisher
from attn.event_collector.registry import EventTypeRegistry
from attn.event_collector.reporting import ErrorReporter

FIXED_NOW = datetime(2024, 5, 17, 12, 30, 0, tzinfo=timezone.utc)

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)
CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FakePublisher(BrokerPublisher):
    """Publisher en memoria; con ``fail_with`` todo publish falla."""

    name = "fake"

    def __init__(self, fail_with: Optional[str] = None) -> None:
        self.fail_with = fail_with
        self.published: List[Tuple[str, bytes]] = []
        self.declared: List[str] = []
        self._connected = False
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True

    def declare_topics(self, topics: Iterable[str]) -> None:
        self.declared.extend(topics)

    def publish(self, topic: str, body: bytes) -> None:
        if self.fail_with:
            raise PublishError(topic, self.fail_with)
        with self._lock:
            self.published.append((topic, body))

    def close(self) -> None:
        self._connected = False

    def messages(self, topic: str) -> List[Dict[str, Any]]:
        return [json.loads(body) for t, body in self.published if t == topic]


class RecordingReporter(ErrorReporter):
    """Reporter que guarda los errores en vez de enviarlos a Sentry."""

    def __init__(self) -> None:
        super().__init__(dsn=None)
        self.captured: List[Tuple[BaseException, Dict[str, Any]]] = []

    def capture(self, exc: BaseException, **context: Any) -> None:
        self.captured.append((exc, context))


@pytest.fixture
def publisher() -> FakePublisher:
    p = FakePublisher()
    p.connect()
    return p


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def registry() -> EventTypeRegistry:
    return EventTypeRegistry()


@pytest.fixture
def handler(registry: EventTypeRegistry, publisher: FakePublisher, reporter: RecordingReporter) -> IntakeHandler:
    return IntakeHandler(
        registry=registry,
        publisher=publisher,
        reporter=reporter,
        publish_timeout=1.0,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def app(handler: IntakeHandler, reporter: RecordingReporter):
    """App sin lifespan (ASGITransport no lo ejecuta): el estado se inyecta a mano."""
    application = create_app(Settings())
    application.state.intake_handler = handler
    application.state.reporter = reporter
    return application


@pytest.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
