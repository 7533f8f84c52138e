"""Prompt table for human-in-the-loop task approval."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from tollgate.core.emitter import EventEmitter
from tollgate.model.message import PromptOutcome, PromptResponse

logger = logging.getLogger(__name__)


def prompt_topic(prompt_id: str) -> str:
    """Emitter topic on which the response to a prompt is delivered."""
    return f"prompt-{prompt_id}"


@dataclass
class PromptResolution:
    """How a prompt ended and the decision that applies."""

    outcome: PromptOutcome
    response: PromptResponse

    @property
    def approved(self) -> bool:
        return self.outcome is not PromptOutcome.CANCELLED and self.response.approved

    @property
    def answered(self) -> bool:
        """True when a human supplied the decision."""
        return self.outcome in (PromptOutcome.APPROVED, PromptOutcome.DENIED)


@dataclass
class PendingPrompt:
    """A prompt shown to the human and awaiting resolution."""

    prompt_id: str
    task_type: str
    task: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _future: asyncio.Future[PromptResolution] | None = field(default=None, repr=False)

    @property
    def resolved(self) -> bool:
        return self._future is not None and self._future.done()


class PromptTable:
    """Single-shot futures keyed by prompt id.

    Lifecycle:
    1. Orchestrator opens a prompt -> PendingPrompt registered, emitter
       subscription on ``prompt-{id}`` installed, timeout armed
    2. Frontend receives PROMPT and the human answers
    3. Response emitted on the prompt topic -> resolve() settles the future
    4. Orchestrator resumes from wait() with the resolution
    5. Timeout or cancel settle the future when no answer arrives
    """

    def __init__(
        self,
        emitter: EventEmitter,
        timeout_seconds: float | None = 120,
        default_action: Literal["deny", "approve"] = "deny",
    ) -> None:
        self._emitter = emitter
        self._timeout_seconds = timeout_seconds
        self._default_action = default_action
        self._pending: dict[str, PendingPrompt] = {}
        self._timeout_tasks: dict[str, asyncio.Task[None]] = {}
        self._unsubscribers: dict[str, Any] = {}

    def __contains__(self, prompt_id: object) -> bool:
        return prompt_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def open(self, task_type: str, task: dict[str, Any], prompt_id: str | None = None) -> PendingPrompt:
        """Register a new pending prompt.

        Args:
            task_type: Permission classifier of the task being approved.
            task: Snapshot of the task shown to the human.
            prompt_id: Reuse an existing id (recovery); a fresh one is generated otherwise.

        Raises:
            ValueError: If the prompt id is already pending.
        """
        prompt_id = prompt_id or str(uuid.uuid4())
        if prompt_id in self._pending:
            raise ValueError(f"Prompt {prompt_id} is already pending")

        prompt = PendingPrompt(
            prompt_id=prompt_id,
            task_type=task_type,
            task=task,
            _future=asyncio.get_running_loop().create_future(),
        )
        self._pending[prompt_id] = prompt
        self._unsubscribers[prompt_id] = self._emitter.once(
            prompt_topic(prompt_id),
            lambda response: self.resolve(prompt_id, response),
        )

        if self._timeout_seconds is not None:
            self._timeout_tasks[prompt_id] = asyncio.create_task(self._timeout_handler(prompt_id))

        return prompt

    async def wait(self, prompt_id: str) -> PromptResolution:
        """Wait for a prompt to be resolved, then drop it from the table.

        A prompt settled before wait() is called resolves immediately.

        Raises:
            KeyError: If the prompt id is not in the table.
        """
        prompt = self._pending.get(prompt_id)
        if prompt is None or prompt._future is None:
            raise KeyError(prompt_id)
        try:
            return await prompt._future
        finally:
            self._pending.pop(prompt_id, None)

    def resolve(self, prompt_id: str, response: PromptResponse | dict[str, Any]) -> bool:
        """Settle a prompt with the human's decision."""
        if isinstance(response, dict):
            response = PromptResponse.model_validate(response)
        outcome = PromptOutcome.APPROVED if response.approved else PromptOutcome.DENIED
        return self._settle(prompt_id, PromptResolution(outcome=outcome, response=response))

    def cancel(self, prompt_id: str) -> bool:
        """Settle a prompt whose surface closed without an answer."""
        return self._settle(
            prompt_id,
            PromptResolution(outcome=PromptOutcome.CANCELLED, response=PromptResponse(approved=False)),
        )

    def forget(self, prompt_id: str) -> None:
        """Drop a prompt without settling it (its waiter is gone)."""
        self._pending.pop(prompt_id, None)
        self._disarm(prompt_id)

    def get_pending(self, task_type: str | None = None) -> list[PendingPrompt]:
        """Get unresolved prompts, optionally filtered by task type."""
        pending = [p for p in self._pending.values() if not p.resolved]
        if task_type:
            pending = [p for p in pending if p.task_type == task_type]
        return pending

    async def cleanup(self) -> None:
        """Cancel timeouts and drop every pending prompt."""
        for prompt_id in list(self._unsubscribers):
            self._emitter.clear(prompt_topic(prompt_id))
        self._unsubscribers.clear()

        for task in self._timeout_tasks.values():
            if not task.done():
                task.cancel()
        if self._timeout_tasks:
            await asyncio.gather(*self._timeout_tasks.values(), return_exceptions=True)
        self._timeout_tasks.clear()

        for prompt in self._pending.values():
            if prompt._future is not None and not prompt._future.done():
                prompt._future.cancel()
        self._pending.clear()

    def _settle(self, prompt_id: str, resolution: PromptResolution) -> bool:
        prompt = self._pending.get(prompt_id)
        if prompt is None or prompt._future is None or prompt._future.done():
            logger.debug(f"Ignoring resolution for unknown or settled prompt {prompt_id}")
            return False

        prompt._future.set_result(resolution)
        self._disarm(prompt_id)
        return True

    def _disarm(self, prompt_id: str) -> None:
        unsubscribe = self._unsubscribers.pop(prompt_id, None)
        if unsubscribe is not None:
            unsubscribe()

        timeout_task = self._timeout_tasks.pop(prompt_id, None)
        if timeout_task and not timeout_task.done() and timeout_task is not asyncio.current_task():
            timeout_task.cancel()

    async def _timeout_handler(self, prompt_id: str) -> None:
        """Apply the default action after the timeout."""
        try:
            await asyncio.sleep(self._timeout_seconds or 0)
        except asyncio.CancelledError:
            return

        approved = self._default_action == "approve"
        resolution = PromptResolution(
            outcome=PromptOutcome.TIMEOUT,
            response=PromptResponse(approved=approved),
        )
        if self._settle(prompt_id, resolution):
            logger.info(f"Prompt {prompt_id} timed out, applied default: {self._default_action}")
