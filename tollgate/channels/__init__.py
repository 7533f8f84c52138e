"""Message channel and frontend contexts."""

from tollgate.channels.base import FrontendContext, QueueContext
from tollgate.channels.bus import MessageChannel

__all__ = [
    "FrontendContext",
    "MessageChannel",
    "QueueContext",
]
