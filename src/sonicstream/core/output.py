"""
Unified output system using Loguru.
User-facing messages go to the log file and, optionally, to the console.
"""

import sys
from pathlib import Path

from loguru import logger

_console_output = False


def setup_loguru(log_file: Path, level: str = "INFO", console_output: bool = False) -> None:
    """
    Configure loguru for file logging.

    Args:
        log_file: Path to log file
        level: Minimum level for file logging (DEBUG, INFO, WARNING, ERROR)
        console_output: Also echo user-facing messages to stdout
    """
    global _console_output

    # Remove default handler
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation="10 MB",
        retention=5,  # Keep 5 backup files
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        enqueue=False,
    )

    _console_output = console_output

    logger.info(f"Loguru initialized: {log_file} (level={level})")


def log(message: str, level: str = "info") -> None:
    """
    Unified logging: writes to file and optionally prints to stdout.

    Use this instead of print() for user-facing messages that should also be logged.

    Args:
        message: User-facing message
        level: Log level (debug, info, warning, error)
    """
    log_func = getattr(logger, level)
    log_func(message)

    if _console_output:
        stream = sys.stderr if level in ("warning", "error") else sys.stdout
        print(message, file=stream)
