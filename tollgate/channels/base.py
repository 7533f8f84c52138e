"""Frontend context interface."""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any


class FrontendContext(ABC):
    """One connected frontend (a browser tab, a window, a test client).

    Contexts handle:
    - Transport adaptation (platform-specific delivery of wire dicts)
    - Identification for logging
    """

    name: str = "base"

    def __init__(self, context_id: str | None = None) -> None:
        self.context_id = context_id or f"{self.name}:{uuid.uuid4().hex[:8]}"

    @abstractmethod
    async def post(self, message: dict[str, Any]) -> None:
        """Deliver one wire message to this context.

        Raises:
            Exception: Any transport failure; the channel detaches the context.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.context_id}>"


class QueueContext(FrontendContext):
    """In-process context that buffers delivered messages in an asyncio queue."""

    name = "queue"

    def __init__(self, context_id: str | None = None) -> None:
        super().__init__(context_id)
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def post(self, message: dict[str, Any]) -> None:
        await self.queue.put(message)

    async def receive(self, timeout: float | None = None) -> dict[str, Any]:
        """Wait for the next delivered message."""
        return await asyncio.wait_for(self.queue.get(), timeout)

    def drain(self) -> list[dict[str, Any]]:
        """Return every buffered message without waiting."""
        messages: list[dict[str, Any]] = []
        while not self.queue.empty():
            messages.append(self.queue.get_nowait())
        return messages
