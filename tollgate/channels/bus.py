"""Bidirectional message channel between the orchestrator and frontend contexts."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from tollgate.channels.base import FrontendContext
from tollgate.model.message import dump_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Any]


class MessageChannel:
    """Typed-message transport between one backend and N frontend contexts.

    Delivery is at-most-once with no acknowledgement or retry. Messages from
    one sender are handled in the order sent; messages from different
    contexts interleave arbitrarily.

    When ``coalesce`` is on, a message deep-equal to the previous one sent in
    the same direction is dropped. Inbound messages are compared per sender.
    This only saves redundant UI churn and must not be relied upon for
    correctness.
    """

    def __init__(self, coalesce: bool = True) -> None:
        self._coalesce = coalesce
        self._contexts: dict[str, FrontendContext] = {}
        self._handlers: list[MessageHandler] = []
        self._last_inbound: dict[str, dict[str, Any]] = {}
        self._last_outbound: dict[str, Any] | None = None

    @property
    def contexts(self) -> list[FrontendContext]:
        """Currently attached frontend contexts."""
        return list(self._contexts.values())

    def attach(self, context: FrontendContext) -> Callable[[], None]:
        """Connect a frontend context to receive broadcasts.

        Returns:
            Callable that detaches the context.
        """
        self._contexts[context.context_id] = context
        logger.info(f"Frontend context attached: {context.context_id} ({len(self._contexts)} connected)")
        return lambda: self.detach(context)

    def detach(self, context: FrontendContext) -> None:
        self._last_inbound.pop(context.context_id, None)
        if self._contexts.pop(context.context_id, None) is not None:
            logger.info(f"Frontend context detached: {context.context_id} ({len(self._contexts)} connected)")

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler for inbound (frontend to backend) messages.

        Returns:
            Callable that removes the handler.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def send(self, message: BaseModel, origin: FrontendContext | None = None) -> bool:
        """Deliver an inbound message to every registered handler.

        Returns:
            False if the message was coalesced away, True otherwise.
        """
        wire = dump_message(message)
        source = origin.context_id if origin else "local"
        if self._coalesce and wire == self._last_inbound.get(source):
            logger.debug(f"Skipping duplicate inbound message from {source}: {wire.get('type')}")
            return False
        self._last_inbound[source] = wire

        logger.debug(f"Inbound {wire.get('type')} from {source}")

        for handler in list(self._handlers):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Message handler failed for {wire.get('type')}")
        return True

    async def broadcast(self, message: BaseModel | dict[str, Any]) -> bool:
        """Deliver an outbound message to every attached context.

        A context whose delivery fails is detached.

        Returns:
            False if the message was coalesced away, True otherwise.
        """
        wire = dump_message(message)
        if self._coalesce and wire == self._last_outbound:
            logger.debug(f"Skipping duplicate message to frontend: {wire.get('type')}")
            return False
        self._last_outbound = wire

        contexts = self.contexts
        logger.debug(f"Broadcasting {wire.get('type')} to {len(contexts)} context(s)")
        if not contexts:
            return True

        results = await asyncio.gather(
            *(context.post(wire) for context in contexts),
            return_exceptions=True,
        )
        for context, result in zip(contexts, results):
            if isinstance(result, Exception):
                logger.warning(f"Delivery to {context.context_id} failed: {result}")
                self.detach(context)
        return True
