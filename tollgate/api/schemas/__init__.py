"""Pydantic schemas for API request/response models."""

from tollgate.api.schemas.monitoring import HealthResponse

__all__ = ["HealthResponse"]
