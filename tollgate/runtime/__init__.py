"""Approval runtime: prompt table and background orchestrator."""

from tollgate.runtime.approval import PendingPrompt, PromptResolution, PromptTable, prompt_topic
from tollgate.runtime.orchestrator import BackgroundOrchestrator

__all__ = [
    "BackgroundOrchestrator",
    "PendingPrompt",
    "PromptResolution",
    "PromptTable",
    "prompt_topic",
]
