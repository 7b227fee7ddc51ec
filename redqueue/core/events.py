"""
EventNotifier — a small publish/subscribe registry keyed by event name.

Queue owns one of these rather than inheriting from an emitter base class.
Handlers may be plain callables or coroutine functions; awaitable results
are awaited in registration order.

Per-handler error isolation
---------------------------
A handler that raises is logged and skipped. The remaining handlers still
run and the exception never reaches the code that emitted the event.
"""
from __future__ import annotations

import dataclasses
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None] | None]


@dataclasses.dataclass
class EventNotifier:
    """
    Parameters
    ----------
    events : the event names handlers may subscribe to; anything else is a
             ValueError, which catches typos at registration time
    """

    events: Iterable[str]

    _handlers: dict[str, list[Handler]] = dataclasses.field(
        init=False, repr=False
    )

    def __post_init__(self) -> None:
        self.events = frozenset(self.events)
        self._handlers = {name: [] for name in self.events}

    def on(self, event: str, handler: Handler) -> Handler:
        """Subscribe `handler` to `event`. Returns the handler."""
        self._check(event)
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        """Unsubscribe `handler`; a handler that was never registered is ignored."""
        self._check(event)
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def handlers(self, event: str) -> tuple[Handler, ...]:
        self._check(event)
        return tuple(self._handlers[event])

    async def emit(self, event: str, *args: Any) -> None:
        """Call every handler of `event` with `args`."""
        self._check(event)
        for handler in tuple(self._handlers[event]):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler %r for %r event failed", handler, event)

    def _check(self, event: str) -> None:
        if event not in self._handlers:
            raise ValueError(
                f"unknown event {event!r}; expected one of {sorted(self._handlers)}"
            )
