import logging
import sys
from typing import Optional

from circuit.config import Settings, get_settings

_FILE_HANDLER = "circuit.file"
_CONSOLE_HANDLER = "circuit.console"


def setup_logging(settings: Optional[Settings] = None):
    """Configure logging for the client."""
    settings = settings or get_settings()
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    level = logging.getLevelName(settings.log_level.upper())

    # Root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # File handler
    file_handler = logging.FileHandler(log_dir / "circuit.log")
    file_handler.setLevel(level)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(levelname)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # Replace handlers from an earlier call rather than stacking them
    file_handler.set_name(_FILE_HANDLER)
    console_handler.set_name(_CONSOLE_HANDLER)
    for handler in logger.handlers[:]:
        if handler.get_name() in (_FILE_HANDLER, _CONSOLE_HANDLER):
            logger.removeHandler(handler)
            handler.close()
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    # Request lines from httpx are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
