"""Core primitives for Tollgate: configuration, logging and the approval gate."""

from tollgate.core.config import Config, load_config
from tollgate.core.emitter import EventEmitter
from tollgate.core.mutex import LockHandle, Mutex

__all__ = [
    "Config",
    "load_config",
    "EventEmitter",
    "LockHandle",
    "Mutex",
]
