"""Logging setup for the crawler CLI.

Console output goes to stderr so that JSON results on stdout stay clean.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s'

# Libraries that log every request at INFO
QUIET_LOGGERS = ('httpx', 'httpcore', 'playwright', 'asyncio')


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None
) -> None:
    """Configure the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Also write to this file, creating its directory if needed
        format_string: Format for both handlers instead of the defaults
    """
    root_level = logging.getLevelName(level.upper())
    if not isinstance(root_level, int):
        root_level = logging.INFO

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(format_string or CONSOLE_FORMAT))
    handlers: List[logging.Handler] = [console]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(format_string or FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=root_level, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
