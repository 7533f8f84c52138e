"""Topic-keyed event emitter with one-shot, deadline and wildcard subscriptions."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

WILDCARD = "*"

Handler = Callable[..., Any]
Unsubscribe = Callable[[], None]


class EventEmitter:
    """Publish/subscribe registry keyed by string topic.

    Topic handlers are called with the payload. Handlers registered under
    ``"*"`` are called with ``(topic, payload)`` for every emitted topic.

    Handlers may be plain callables or coroutine functions. ``emit`` invokes
    them synchronously in registration order; awaitable results are gathered
    in aggregate and their failures are logged, never raised to the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._inflight: set[asyncio.Future[list[Any]]] = set()

    def has(self, topic: str) -> bool:
        """Check if a topic has any active subscribers."""
        return bool(self._handlers.get(topic))

    def on(self, topic: str, handler: Handler) -> Unsubscribe:
        """Subscribe a handler to a topic.

        Returns:
            Callable that removes the subscription.
        """
        handlers = self._handlers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(topic, handler)

    def once(self, topic: str, handler: Handler) -> Unsubscribe:
        """Subscribe a handler that is removed before its first invocation."""
        fired = False

        def one_shot(*args: Any) -> Any:
            nonlocal fired
            if fired:
                return None
            fired = True
            self.off(topic, one_shot)
            return handler(*args)

        return self.on(topic, one_shot)

    def within(self, topic: str, handler: Handler, timeout: float) -> Unsubscribe:
        """Subscribe a handler that is removed after ``timeout`` seconds.

        The handler may fire any number of times before the deadline.
        Must be called from a running event loop.
        """
        unsubscribe = self.on(topic, handler)
        timer = asyncio.get_running_loop().call_later(timeout, unsubscribe)

        def cancel() -> None:
            timer.cancel()
            unsubscribe()

        return cancel

    def off(self, topic: str, handler: Handler) -> None:
        """Remove a specific handler from a topic."""
        handlers = self._handlers.get(topic)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._handlers[topic]

    def clear(self, topic: str | None = None) -> None:
        """Remove all handlers for a topic, or every handler when topic is None."""
        if topic is None:
            self._handlers.clear()
        else:
            self._handlers.pop(topic, None)

    def emit(self, topic: str, payload: Any = None) -> asyncio.Future[list[Any]] | None:
        """Emit a payload to every subscriber of ``topic`` and to wildcard handlers.

        Returns:
            A future settling when all asynchronous handlers finish, or None
            if every handler completed synchronously. Awaiting it never raises
            a handler's exception.
        """
        awaitables: list[Any] = []

        for handler in list(self._handlers.get(topic, ())):
            self._invoke(topic, handler, awaitables, payload)

        if topic != WILDCARD:
            for handler in list(self._handlers.get(WILDCARD, ())):
                self._invoke(topic, handler, awaitables, topic, payload)

        if not awaitables:
            return None

        future = asyncio.gather(*awaitables, return_exceptions=True)
        self._inflight.add(future)
        future.add_done_callback(self._settled)
        return future

    def _invoke(self, topic: str, handler: Handler, awaitables: list[Any], *args: Any) -> None:
        try:
            result = handler(*args)
        except Exception:
            logger.exception(f"Handler for '{topic}' failed")
            return
        if inspect.isawaitable(result):
            awaitables.append(result)

    def _settled(self, future: asyncio.Future[list[Any]]) -> None:
        self._inflight.discard(future)
        if future.cancelled():
            return
        for result in future.result():
            if isinstance(result, BaseException):
                logger.error(f"Async event handler failed: {result!r}")
