"""Pydantic schemas for Monitoring API endpoints."""

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /monitoring/health endpoint.

    Attributes:
        status: Overall health status ("healthy" or "unavailable")
        version: API version string
        orchestrator: Orchestrator status ("running" or "stopped")
        contexts: Number of connected frontend contexts
        pending_prompts: Prompts awaiting a human decision
        lock_held: Whether the prompt lock is currently held
        lock_waiters: Flows queued for the prompt lock
        active_relay: URL of the relay currently in use
    """

    status: str
    version: str
    orchestrator: str
    contexts: int
    pending_prompts: int
    lock_held: bool
    lock_waiters: int
    active_relay: str | None = None

    model_config = ConfigDict(extra="forbid")
