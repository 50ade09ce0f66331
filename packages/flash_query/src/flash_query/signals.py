"""Model lifecycle signals."""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Union

from .logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[type, Any], Union[Awaitable[None], None]]


class ModelSignal(str, Enum):
    """Events emitted around ``save()`` and ``delete()``."""

    PRE_SAVE = "pre_save"
    POST_SAVE = "post_save"
    PRE_DELETE = "pre_delete"
    POST_DELETE = "post_delete"


def _event_name(event: str | ModelSignal) -> str:
    return str(getattr(event, "value", event))


class SignalRegistry:
    """
    Dispatches lifecycle events to handlers registered per model.

    Handlers receive ``(model_class, entity)`` and may be plain functions or
    coroutines. All handlers for an event run concurrently. A failing handler
    fails the emit; wrap it with ``safe_handler`` to isolate it.

    Example:
        >>> async def audit(model, entity):
        ...     print("saved", entity.pk)
        >>> model_signals.on("post_save", User, audit)
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, type], list[Handler]] = {}

    def on(self, event: str | ModelSignal, model: type, handler: Handler) -> None:
        """Register ``handler`` for ``event`` on ``model``."""
        handlers = self._handlers.setdefault((_event_name(event), model), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str | ModelSignal, model: type, handler: Handler) -> None:
        """Unregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get((_event_name(event), model))
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handlers(self, event: str | ModelSignal, model: type) -> list[Handler]:
        return list(self._handlers.get((_event_name(event), model), ()))

    def clear(self) -> None:
        self._handlers.clear()

    async def emit(self, event: str | ModelSignal, model: type, entity: Any) -> None:
        """Run every handler registered for ``event`` on ``model`` concurrently."""
        handlers = self.handlers(event, model)
        if not handlers:
            return
        logger.debug(
            "Emitting %s for %s to %d handler(s)",
            _event_name(event),
            model.__name__,
            len(handlers),
        )
        await asyncio.gather(*(_call(h, model, entity) for h in handlers))


async def _call(handler: Handler, model: type, entity: Any) -> None:
    result = handler(model, entity)
    if inspect.isawaitable(result):
        await result


def safe_handler(handler: Handler, log: bool | None = None) -> Handler:
    """
    Wrap ``handler`` so its exceptions are swallowed.

    Args:
        handler: The signal handler to protect.
        log: Log swallowed exceptions. Defaults to
            ``query_settings.LOG_SIGNAL_ERRORS``.
    """

    @wraps(handler)
    async def wrapper(model: type, entity: Any) -> None:
        try:
            await _call(handler, model, entity)
        except Exception:
            should_log = log
            if should_log is None:
                from .config import query_settings

                should_log = query_settings.LOG_SIGNAL_ERRORS
            if should_log:
                logger.exception(f"Error in signal handler {handler!r}")

    return wrapper


# Process-wide default signal registry
model_signals = SignalRegistry()
