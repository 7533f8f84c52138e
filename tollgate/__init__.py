"""Tollgate: approval-gated background orchestrator."""

__version__ = "0.1.0"
