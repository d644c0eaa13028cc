"""
Reporte de errores (Sentry + logging)
"""
import logging
from typing import Any, Optional

import sentry_sdk

logger = logging.getLogger(__name__)


class ErrorReporter:
    """Sink de errores de sistema: fallos de arranque y de publish.

    Sin DSN configurado solo se loguea. Nunca lanza excepciones.
    """

    def __init__(self, dsn: Optional[str] = None, environment: str = "development", release: Optional[str] = None):
        self.dsn = dsn
        self.environment = environment
        self.release = release
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def setup(self) -> None:
        """Inicializar Sentry si hay DSN"""
        if not self.dsn:
            logger.info("Sentry deshabilitado (sin DSN)")
            return
        sentry_sdk.init(dsn=self.dsn, environment=self.environment, release=self.release)
        self._enabled = True
        logger.info(f"Sentry inicializado (environment={self.environment})")

    def capture(self, exc: BaseException, **context: Any) -> None:
        logger.error(f"{type(exc).__name__}: {exc} {context}", exc_info=exc)
        if not self._enabled:
            return
        try:
            with sentry_sdk.new_scope() as scope:
                for key, value in context.items():
                    scope.set_extra(key, value)
                sentry_sdk.capture_exception(exc)
        except Exception as e:
            logger.warning(f"No se pudo enviar el error a Sentry: {e}")

    def flush(self, timeout: float = 2.0) -> None:
        if self._enabled:
            sentry_sdk.flush(timeout=timeout)
