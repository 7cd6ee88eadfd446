"""
Loguru configuration shared by the migrator and its CLI.

Structured fields are passed as keyword arguments to the logging call
(``logger.info("...", event_type="migration_applied", version=3)``) and end
up in ``record["extra"]``.
"""

import sys

from loguru import logger

from docmigrate.core.config import settings

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[app_name]}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(config: dict | None = None) -> None:
    """
    Configure the global loguru logger.

    Args:
        config: Logging configuration, defaults to ``settings.logging_config``.
    """
    config = config or settings.logging_config

    logger.remove()
    logger.configure(extra={"app_name": config.get("app_name", "docmigrate")})

    if config.get("json_logs"):
        logger.add(sys.stderr, level=config["log_level"], serialize=True)
    else:
        logger.add(sys.stderr, level=config["log_level"], format=TEXT_FORMAT)


setup_logging()

__all__ = ["logger", "setup_logging"]
