"""
Logger configuration.

All modules log through loguru's global ``logger``; this module only decides
where the records go and how they look.
"""

import sys
from typing import Any, Optional

from loguru import logger

from transcoder.errors import ConfigurationError

# The format string for the Loguru logger. Module names are left out: the
# messages already name the file being processed.
LOGGER_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"


def setup_logging(level: str = "info", colors: bool = False, sink: Optional[Any] = None) -> int:
    """
    Replace loguru's default handler with a single configured one.

    Args:
        level: Level name, case insensitive (trace ... critical).
        colors: Force ANSI colours; otherwise loguru decides from the sink.
        sink: Destination, stdout by default.

    Returns:
        The loguru handler id.

    Raises:
        ConfigurationError: Unknown level name.
    """
    logger.remove()
    try:
        return logger.add(
            sink if sink is not None else sys.stdout,
            level=level.upper(),
            format=LOGGER_FORMAT,
            colorize=True if colors else None,
        )
    except ValueError as e:
        # Keep the run observable even when the level is rejected
        logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)
        raise ConfigurationError(f"Invalid log level {level!r}: {e}") from e
