"""Configuration package for Tollgate.

Pydantic configuration models and loading utilities, re-exported at the package level.
"""

from tollgate.core.config.loader import (
    check_unexpanded_vars,
    expand_env_vars,
    expand_env_vars_recursive,
    load_config,
    merge_configs,
)
from tollgate.core.config.models import (
    ApprovalConfig,
    ChannelConfig,
    Config,
    DatabaseConfig,
    LoggingConfig,
    RelaysConfig,
    ServerConfig,
)

__all__ = [
    # Models
    "ApprovalConfig",
    "ChannelConfig",
    "Config",
    "DatabaseConfig",
    "LoggingConfig",
    "RelaysConfig",
    "ServerConfig",
    # Loaders
    "check_unexpanded_vars",
    "expand_env_vars",
    "expand_env_vars_recursive",
    "load_config",
    "merge_configs",
]
