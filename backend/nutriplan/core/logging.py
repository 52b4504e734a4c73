import logging
import sys
from nutriplan.core.config import get_settings

def setup_logging():
    """Configure logging for the application."""
    settings = get_settings()

    logger = logging.getLogger("nutriplan")
    logger.setLevel(settings.log_level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.log_level.upper())

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)

    # setup_logging runs once per get_logger call
    if not logger.handlers:
        logger.addHandler(handler)

    return logger

def get_logger(name: str):
    """Get a logger instance with the given name."""
    # Ensure the parent 'nutriplan' logger is configured
    setup_logging()
    return logging.getLogger(f"nutriplan.{name}")
