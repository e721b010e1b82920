import logging
from typing import Optional

from . import config


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Configure logging for migration runs.

    Args:
        log_level: The minimum log level to display (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Falls back to the LOG_LEVEL environment variable, then INFO.
    """
    log_level = (log_level or config.get_log_level()).upper()

    # Convert string to logging level
    numeric_level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )

    # SQLAlchemy echoes every statement at INFO; only let it through in DEBUG mode.
    if numeric_level > logging.DEBUG:
        for logger_name in ['sqlalchemy.engine', 'sqlalchemy.pool', 'sqlalchemy.dialects']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
