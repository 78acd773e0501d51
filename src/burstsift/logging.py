import logging
import os

PACKAGE_LOGGER = "burstsift"
LOG_LEVEL_ENV = "BURSTSIFT_LOG_LEVEL"


def _resolve_level(level_name: str, default_level: int) -> int:
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        return default_level
    return level


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Library modules stay quiet by default, the CLI reports progress.
    # BURSTSIFT_LOG_LEVEL overrides both.
    default_level = logging.WARNING
    if name.endswith('.cli'):
        default_level = logging.INFO

    level_name = os.getenv(LOG_LEVEL_ENV, logging.getLevelName(default_level))
    logger.setLevel(_resolve_level(level_name, default_level))
    return logger


def set_package_level(level_name: str) -> int:
    """Apply one level to every burstsift logger created so far."""
    level = _resolve_level(level_name, logging.INFO)
    for name, existing in list(logging.Logger.manager.loggerDict.items()):
        if name.split('.')[0] == PACKAGE_LOGGER and isinstance(existing, logging.Logger):
            existing.setLevel(level)
    return level
