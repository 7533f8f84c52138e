"""Pydantic configuration models for Tollgate.

For loading logic, see loader.py.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    """Configuration for logging system."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    directory: str | None = Field(default="logs", description="Directory for log files (null = console only)")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the logging level name."""
        normalized = v.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid logging level '{v}'")
        return normalized


class DatabaseConfig(BaseModel):
    """Configuration for the SQLite persistence layer."""

    path: Path = Field(default=Path("tollgate.db"), description="Path to the SQLite database file")


class ServerConfig(BaseModel):
    """Configuration for the FastAPI/uvicorn service surface."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8001, description="Bind port")
    websocket_path: str = Field(default="/ws", description="Path of the frontend WebSocket endpoint")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")


class ChannelConfig(BaseModel):
    """Configuration for the frontend message channel."""

    coalesce: bool = Field(
        default=True,
        description="Suppress a message identical to the previous one sent in the same direction",
    )


class ApprovalConfig(BaseModel):
    """Configuration for the human approval handshake."""

    timeout_seconds: float | None = Field(
        default=120,
        description="Seconds to wait for a prompt response before applying default_action (null = wait forever)",
    )
    default_action: Literal["deny", "approve"] = Field(
        default="deny",
        description="Decision applied when a prompt times out",
    )
    lock_scope: Literal["response", "setup"] = Field(
        default="response",
        description="Hold the prompt lock until the response arrives, or only while the prompt is sent",
    )
    recovery: Literal["resume", "abandon"] = Field(
        default="resume",
        description="What to do at startup with prompts left outstanding by a previous process",
    )
    default_task_type: str = Field(
        default="default",
        description="Task type used when a task does not declare one",
    )

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        """Reject non-positive timeouts; null disables the timeout."""
        if v is not None and v <= 0:
            raise ValueError("timeout_seconds must be positive or null")
        return v


class RelaysConfig(BaseModel):
    """Configuration for outbound relay endpoints."""

    default_url: str = Field(default="ws://localhost:8002", description="Relay used when none is configured")
    default_key: str = Field(default="default", description="Storage key of the seeded default relay")


class Config(BaseModel):
    """Root configuration for Tollgate."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    relays: RelaysConfig = Field(default_factory=RelaysConfig)

    model_config = {"extra": "allow"}
