"""Logging configuration and error reporting helpers."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
import os
from typing import Any, Optional, TypeVar, Union

from gnn_schema.errors import GnnSchemaError, ValidationError

DEFAULT_LOGGER_NAME = "gnn_schema"
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVEL_ENV = "GNN_SCHEMA_LOG_LEVEL"

_T = TypeVar("_T")


def parse_log_level(value: Union[int, str, None]) -> int:
    """Accept a logging level number or name ("debug", "WARNING", "10")."""
    if value is None or value == "":
        return DEFAULT_LOG_LEVEL
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value!r}")
    return level


def configure_logging(
    level: Union[int, str, None] = None,
    *,
    logger_name: str = DEFAULT_LOGGER_NAME,
    fmt: str = DEFAULT_LOG_FORMAT,
    force: bool = False,
) -> logging.Logger:
    """Set up root handlers once and return the package logger.

    Without an explicit level, `GNN_SCHEMA_LOG_LEVEL` is consulted.
    """
    resolved = parse_log_level(level if level is not None else os.environ.get(LOG_LEVEL_ENV))
    logging.basicConfig(level=resolved, format=fmt, force=force)
    logger = logging.getLogger(logger_name)
    logger.setLevel(resolved)
    return logger


def get_user_message(exc: BaseException) -> str:
    if isinstance(exc, GnnSchemaError):
        return exc.user_message
    return f"Unexpected error: {exc}"


def log_violations(
    logger: logging.Logger,
    violations: Iterable[Any],
    *,
    limit: Optional[int] = None,
) -> int:
    """Log each violation at ERROR or WARNING; return how many were logged."""
    count = 0
    for violation in violations:
        if limit is not None and count >= limit:
            logger.info("... further violations omitted.")
            break
        level = logging.ERROR if violation.is_error else logging.WARNING
        logger.log(level, "%s: %s", violation.path, violation.message)
        count += 1
    return count


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    *,
    show_traceback: bool = False,
) -> str:
    user_message = get_user_message(exc)
    logger.error(user_message)
    if isinstance(exc, GnnSchemaError) and exc.context:
        logger.debug("Error context: %s", exc.context)
    if isinstance(exc, ValidationError):
        log_violations(logger, exc.violations, limit=20)
    if show_traceback:
        logger.error("Detailed traceback:", exc_info=exc)
    else:
        logger.debug("Detailed traceback:", exc_info=exc)
    return user_message


def run_with_error_handling(
    func: Callable[..., _T],
    *args: Any,
    logger: logging.Logger,
    show_traceback: bool = False,
    **kwargs: Any,
) -> _T:
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        log_exception(logger, exc, show_traceback=show_traceback)
        raise


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FORMAT",
    "LOG_LEVEL_ENV",
    "parse_log_level",
    "configure_logging",
    "get_user_message",
    "log_violations",
    "log_exception",
    "run_with_error_handling",
]
