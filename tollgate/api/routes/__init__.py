"""API route modules."""

from tollgate.api.routes.channel import channel_endpoint
from tollgate.api.routes.monitoring import router as monitoring_router

__all__ = ["channel_endpoint", "monitoring_router"]
