"""FastAPI dependency injection providers."""

from fastapi import Request

from tollgate.channels.bus import MessageChannel
from tollgate.runtime.orchestrator import BackgroundOrchestrator


def get_orchestrator(request: Request) -> BackgroundOrchestrator | None:
    """
    Get orchestrator from app state.

    The orchestrator is None until the application lifespan has started.

    Args:
        request: FastAPI request object

    Returns:
        BackgroundOrchestrator instance or None
    """
    return getattr(request.app.state, "orchestrator", None)


def get_channel(request: Request) -> MessageChannel | None:
    """Get the frontend message channel from app state."""
    return getattr(request.app.state, "channel", None)
