"""
Excepciones del Event Collector
"""
from typing import Optional

from fastapi import status


class CollectorException(Exception):
    """Excepción base del Event Collector"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "internal_error",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


# Errores de request: se devuelven al cliente, nunca se reportan a Sentry


class IntakeError(CollectorException):
    """Fallo en un paso del pipeline de ingesta"""

    step: str = "received"

    def __init__(self, message: str, status_code: int, error_code: str, cause: Optional[BaseException] = None):
        super().__init__(message=message, status_code=status_code, error_code=error_code)
        self.cause = cause


class EventTypeNotFound(IntakeError):
    """El tipo de evento no está en el registro"""

    step = "type_validation"

    def __init__(self, event_type: str):
        super().__init__(
            message="Type not found",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="type_not_found",
        )
        self.event_type = event_type


class BadParameters(IntakeError):
    """El body no se pudo decodificar como objeto JSON"""

    step = "decode"

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(
            message="Bad parameters",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="bad_parameters",
            cause=cause,
        )


class PublishFailed(IntakeError):
    """El broker rechazó o no confirmó el publish a tiempo"""

    step = "publish"

    def __init__(self, topic: str, cause: Optional[BaseException] = None):
        super().__init__(
            message="Publish failed",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="publish_failed",
            cause=cause,
        )
        self.topic = topic


# Errores del broker


class BrokerError(Exception):
    """Error base de los clientes de broker"""


class BrokerConnectionError(BrokerError):
    """No se pudo conectar al broker (fatal en startup)"""


class PublishError(BrokerError):
    """Fallo puntual al publicar un mensaje"""

    def __init__(self, topic: str, reason: str):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Publish to '{topic}' failed: {reason}")
