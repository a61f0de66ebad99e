from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - stdlib logging only; uvicorn (or the embedding app) owns the handlers.
    - Set `PORTAL_LOG_LEVEL=DEBUG` to see every authorization decision, including
      the rule that matched.
    """

    normalized = level.upper()
    logging.getLogger("portal").setLevel(normalized)
    logging.getLogger("portal").propagate = True
