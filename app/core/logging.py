import logging
from logging import Logger
from typing import Optional

from .config import get_settings

LOG_FORMAT = "[%(levelname)s] %(asctime)s | %(name)s | %(message)s"


def configure_logging(module: Optional[str] = None) -> Logger:
    """
    Return the service logger, or a child of it named after ``module``.

    The parent gets its single stream handler on first use. Children
    propagate to it, so ``LOG_LEVEL`` applies to every module.
    """
    settings = get_settings()

    service_logger = logging.getLogger(settings.app_name)
    if not service_logger.handlers:
        service_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        service_logger.addHandler(handler)
        service_logger.propagate = False

    if not module:
        return service_logger
    # app.services.raster_service -> pdf-to-jpeg.raster_service
    return service_logger.getChild(module.rsplit(".", 1)[-1])
