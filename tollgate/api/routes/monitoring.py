"""Monitoring and health check endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from tollgate import __version__
from tollgate.api.dependencies import get_channel, get_orchestrator
from tollgate.api.schemas.monitoring import HealthResponse
from tollgate.channels.bus import MessageChannel
from tollgate.runtime.orchestrator import BackgroundOrchestrator

router = APIRouter(prefix="/monitoring", tags=["monitoring"])


# =============================================================================
# Health Check
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(
    orchestrator: Annotated[BackgroundOrchestrator | None, Depends(get_orchestrator)],
    channel: Annotated[MessageChannel | None, Depends(get_channel)],
) -> HealthResponse:
    """System health check endpoint.

    Reports connected frontends, outstanding prompts and the state of
    the prompt lock.

    Returns:
        HealthResponse: Health status of the orchestrator and channel
    """
    if orchestrator is None:
        return HealthResponse(
            status="unavailable",
            version=__version__,
            orchestrator="stopped",
            contexts=0,
            pending_prompts=0,
            lock_held=False,
            lock_waiters=0,
        )

    return HealthResponse(
        status="healthy",
        version=__version__,
        orchestrator="running" if orchestrator.running else "stopped",
        contexts=len(channel.contexts) if channel else 0,
        pending_prompts=len(orchestrator.prompts.get_pending()),
        lock_held=orchestrator.mutex.locked(),
        lock_waiters=orchestrator.mutex.waiting,
        active_relay=orchestrator.active_relay,
    )
