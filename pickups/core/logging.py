import logging

from pickups.core.config import settings

_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Attach one stream handler to the package logger (idempotent)."""
    logger = logging.getLogger("pickups")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    name = (level or settings.LOG_LEVEL or "INFO").upper()
    logger.setLevel(getattr(logging, name, logging.INFO))
    logger.propagate = False
