import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Generator, Optional, Union

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(model_str)s%(name)s: %(message)s"

# Name of the model whose queryset is currently executing
model_context: ContextVar[Optional[str]] = ContextVar("model_context", default=None)


class QueryFormatter(logging.Formatter):
    """
    Formatter that prefixes records with the executing model and writes
    timestamps in UTC.
    """

    def formatTime(self, record, datefmt=None):  # noqa: N802
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return stamp.strftime(datefmt)
        return f"{stamp:%Y-%m-%d %H:%M:%S}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        model = model_context.get()
        record.model_str = f"[{model}] " if model else ""
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a flash_query module.

    >>> logger = get_logger(__name__)
    """
    return logging.getLogger(name)


def _handlers(
    log_file: Optional[Union[str, Path]], max_bytes: int, backup_count: int
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        )
    return handlers


def setup_logging(
    level: Union[int, str, None] = None,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_485_760,
    backup_count: int = 10,
    capture_roots: bool = False,
    module_name: str = "flash_query",
) -> logging.Logger:
    """
    Configure console (and optionally rotating file) output.

    Args:
        level: Logging level. Defaults to ``query_settings.LOG_LEVEL``.
        log_file: Optional path for a rotating log file. Parent directories
            are created.
        capture_roots: Configure the root logger instead of ``module_name``.
        module_name: Logger configured when ``capture_roots`` is False; it
            stops propagating so records are not printed twice.

    Calling it again replaces the handlers it installed before.
    """
    if level is None:
        from .config import query_settings

        level = query_settings.LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    target = logging.getLogger() if capture_roots else logging.getLogger(module_name)
    target.handlers.clear()
    target.setLevel(level)

    formatter = QueryFormatter(DEFAULT_FORMAT)
    for handler in _handlers(log_file, max_bytes, backup_count):
        handler.setFormatter(formatter)
        target.addHandler(handler)

    if not capture_roots:
        target.propagate = False
    return target


@contextmanager
def scoped_model_context(model_name: str) -> Generator[None, None, None]:
    """
    Tag log records emitted inside the block with ``model_name``.

    >>> with scoped_model_context("User"):
    ...     logger.debug("executing")  # prefixed with [User]
    """
    token = model_context.set(model_name)
    try:
        yield
    finally:
        model_context.reset(token)
