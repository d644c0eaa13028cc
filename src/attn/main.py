import logging
import sys

import uvicorn
from pydantic import ValidationError

from .event_collector.config import get_settings


def main() -> None:
    try:
        settings = get_settings()
    except (ValidationError, ValueError) as e:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger(__name__).critical(f"Can't read config: {e}")
        sys.exit(1)

    uvicorn.run(
        "attn.event_collector.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
