"""
Enriquecimiento de eventos a partir del request (User-Agent e IP)
"""
import logging
from functools import lru_cache
from typing import Mapping, Optional

from user_agents import parse as parse_user_agent

from .models import UserAgentFields

logger = logging.getLogger(__name__)

UNKNOWN_FAMILY = "Other"


def _family(value: Optional[str]) -> str:
    if not value or value == UNKNOWN_FAMILY:
        return ""
    return value


def _join(family: str, version: str) -> str:
    if family and version:
        return f"{family} {version}"
    return family


@lru_cache(maxsize=2048)
def _parse(raw_user_agent: str) -> UserAgentFields:
    ua = parse_user_agent(raw_user_agent)

    os_family = _family(ua.os.family)
    # Desktop: el device viene como "Other", se usa la familia del SO
    platform = _family(ua.device.family) or os_family

    return UserAgentFields(
        mobile=bool(ua.is_mobile),
        platform=platform,
        os=_join(os_family, ua.os.version_string if os_family else ""),
        browser=_family(ua.browser.family),
        version=ua.browser.version_string if _family(ua.browser.family) else "",
    )


class UserAgentEnricher:
    """Extrae mobile/platform/os/browser/version del User-Agent.

    Nunca falla el request: un User-Agent vacío o que no se puede parsear da
    los valores por defecto.
    """

    def enrich(self, raw_user_agent: Optional[str]) -> UserAgentFields:
        if not raw_user_agent or not raw_user_agent.strip():
            return UserAgentFields()
        try:
            return _parse(raw_user_agent.strip())
        except Exception as e:
            logger.debug(f"User-Agent no parseable ({raw_user_agent!r}): {e}")
            return UserAgentFields()


def get_client_ip(headers: Mapping[str, str], remote_host: Optional[str] = None) -> str:
    """Obtener IP del cliente considerando proxies"""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return remote_host or ""
