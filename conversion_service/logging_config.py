from __future__ import annotations

import logging


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging for the service process.

    ``basicConfig`` is a no-op once the root logger has handlers, so uvicorn's
    own configuration wins when the app runs under it.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("conversion_service").setLevel(getattr(logging, level.upper(), logging.INFO))
