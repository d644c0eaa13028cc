"""
Registro de tipos de evento permitidos
"""
from typing import Iterable, Iterator, Tuple

DEFAULT_EVENT_TYPES: Tuple[str, ...] = ("display", "click", "view")


class EventTypeRegistry:
    """Conjunto inmutable de tipos de evento aceptados.

    Se construye una sola vez en el arranque y se comparte entre requests sin
    sincronización. Cada tipo es también el nombre de la cola/topic destino.
    """

    __slots__ = ("_event_types",)

    def __init__(self, event_types: Iterable[str] = DEFAULT_EVENT_TYPES):
        names = frozenset(event_types)
        if not names:
            raise ValueError("El registro necesita al menos un tipo de evento")
        object.__setattr__(self, "_event_types", names)

    def __setattr__(self, name, value):
        raise AttributeError("EventTypeRegistry es inmutable")

    def is_allowed(self, candidate: str) -> bool:
        """Match exacto y sensible a mayúsculas"""
        if not isinstance(candidate, str):
            return False
        return candidate in self._event_types

    def __contains__(self, candidate: object) -> bool:
        return self.is_allowed(candidate)  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._event_types))

    def __len__(self) -> int:
        return len(self._event_types)

    def __repr__(self) -> str:
        return f"EventTypeRegistry({sorted(self._event_types)!r})"
