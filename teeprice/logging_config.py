import logging

from teeprice.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Attach a single stream handler to the teeprice logger."""
    logger = logging.getLogger("teeprice")
    logger.setLevel(getattr(logging, (level or LOG_LEVEL), logging.INFO))

    # Avoid stacking handlers when the app module is re-imported (uvicorn --reload).
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
