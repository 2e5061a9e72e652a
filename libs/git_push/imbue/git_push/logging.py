import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from typing import Final

from loguru import logger

from imbue.git_push.primitives import LogLevel

_LOG_FORMAT: Final[str] = (
    "<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Build log lines are what a CI user reads, so INFO and above are printed without the source location.
_BUILD_LOG_FORMAT: Final[str] = "<level>{message}</level>"


def setup_logging(level: LogLevel = LogLevel.INFO) -> None:
    """Configure loguru with a single stderr sink at the given level."""
    logger.remove()
    is_verbose = level in (LogLevel.TRACE, LogLevel.DEBUG)
    logger.add(
        sys.stderr,
        level=level.value,
        format=_LOG_FORMAT if is_verbose else _BUILD_LOG_FORMAT,
    )


@contextmanager
def log_span(message: str, *args: Any, **context: Any) -> Iterator[None]:
    """Log a debug message on entry and a trace message with timing on exit.

    Keyword arguments are passed to logger.contextualize so that every message
    logged inside the span carries them as extra fields.
    """
    with logger.contextualize(**context):
        logger.debug(message, *args)
        start_time = time.monotonic()
        try:
            yield
        except BaseException:
            elapsed = time.monotonic() - start_time
            logger.trace(message + " [failed after {:.5f} sec]", *args, elapsed)
            raise
        else:
            elapsed = time.monotonic() - start_time
            logger.trace(message + " [done in {:.5f} sec]", *args, elapsed)
