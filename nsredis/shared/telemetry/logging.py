"""Logging setup for applications embedding the client."""

import logging
import sys

from nsredis.core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
HANDLER_NAME = "nsredis-stdout"


def setup_logging(debug: bool | None = None) -> logging.Logger:
    """Send the "nsredis" logger hierarchy to stdout.

    Only the package logger is configured, so the host application's root
    logger is left alone. Calling this again adjusts the level without adding
    a second handler. The redis driver's own logger is kept at WARNING.

    Args:
        debug: DEBUG level when True, INFO when False; defaults to settings.debug.

    Returns:
        The configured "nsredis" logger.
    """
    if debug is None:
        debug = get_settings().debug
    package_logger = logging.getLogger("nsredis")
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not any(h.get_name() == HANDLER_NAME for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    logging.getLogger("redis").setLevel(logging.WARNING)
    return package_logger
