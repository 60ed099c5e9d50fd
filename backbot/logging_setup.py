"""Structured logging setup using loguru.

Every record carries an ``engine`` field so the interleaved output of the
decision and trailing-stop loops can be told apart. Modules that belong to
one loop log through ``engine_logger(name)``; everything else uses the plain
``logger`` and shows up as ``main``.
"""
import sys
from pathlib import Path

from loguru import logger as _logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[engine]: <13}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_logger.configure(extra={"engine": "main"})


def engine_logger(engine: str):
    """Logger whose records are tagged with ``engine``."""
    return _logger.bind(engine=engine)


def setup_logging(
    log_file: str = "backbot.log",
    level: str = "INFO",
    enable_console: bool = True,
) -> None:
    """Replace the default sink with a rotating file sink and an optional console sink.

    Args:
        log_file: Path to the log file; parent directories are created
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Also log colorized records to stdout
    """
    _logger.remove()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _logger.add(
        str(log_path),
        format=LOG_FORMAT,
        level=level,
        rotation="100 MB",
        retention="7 days",
    )

    if enable_console:
        _logger.add(sys.stdout, format=LOG_FORMAT, level=level, colorize=True)


logger = _logger
