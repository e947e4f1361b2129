import logging
from rich.logging import RichHandler
from ytscribe.config import settings

# Chatty libraries that log every connection or retry at DEBUG/INFO
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "openai")

def setup_logger(name: str = "ytscribe", level: str = None) -> logging.Logger:
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)]
    )
    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger(name)

def set_level(level: str) -> None:
    """Change the level of the package logger after startup (CLI --verbose)."""
    logger.setLevel(level.upper())

logger = setup_logger()
