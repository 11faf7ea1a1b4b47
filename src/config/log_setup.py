"""
Street Legacy - Logging Configuration

One place to set the root handler so every module's
``logging.getLogger(__name__)`` shares a format.
"""

import logging

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Libraries that log every frame at DEBUG
_NOISY_LOGGERS = ("websockets", "httpx", "httpcore")


def configure_logging(level: str = "INFO", *, debug: bool = False) -> None:
    """Configure the root logger.

    Args:
        level: Log level name for application loggers.
        debug: When True, also let transport libraries log at DEBUG.
    """
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(level=resolved, format=_LOG_FORMAT, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
