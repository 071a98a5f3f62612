import logging
from logging.handlers import RotatingFileHandler

from .config import settings

_configured = False


def configure_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return

    logger = logging.getLogger()
    logger.setLevel((level or settings.log_level).upper())

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file (unbounded serial sessions can run for weeks)
    if settings.log_file:
        fh = RotatingFileHandler(
            settings.log_file, maxBytes=2_000_000, backupCount=5
        )
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Silence noisy client logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("influxdb_client").setLevel(logging.WARNING)

    _configured = True
