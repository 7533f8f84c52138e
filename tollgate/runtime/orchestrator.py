"""Background orchestrator: the single dispatcher between frontends and stores."""

import asyncio
import inspect
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from tollgate.channels.bus import MessageChannel
from tollgate.core.config.models import Config
from tollgate.core.emitter import EventEmitter
from tollgate.core.mutex import LockHandle, Mutex
from tollgate.model.message import (
    AddRelayMessage,
    DataUpdateMessage,
    ErrorMessage,
    FetchPermissionsMessage,
    FetchRelaysMessage,
    FetchSettingsMessage,
    KeyValue,
    PermissionsDataMessage,
    PromptCancelMessage,
    PromptClosedMessage,
    PromptMessage,
    PromptOutcome,
    PromptResponse,
    PromptResponseMessage,
    RelaysDataMessage,
    RemoveRelayMessage,
    SettingsDataMessage,
    SettingsUpdatedMessage,
    TaskMessage,
    UpdateSettingsMessage,
)
from tollgate.model.records import PendingPromptRecord, PermissionRecord
from tollgate.model.task import Task, TaskFlow, TaskState, parse_task
from tollgate.runtime.approval import PromptResolution, PromptTable, prompt_topic
from tollgate.stores.base import DataStore, PermissionStore, PromptLedger, StorageError

logger = logging.getLogger(__name__)

TOMBSTONE = {"_deleted": True}

RelayChangeHook = Callable[[str], Any]


def _is_tombstone(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("_deleted"))


class BackgroundOrchestrator:
    """Routes inbound frontend messages and drives the approval handshake.

    Every handler catches store failures and converts them into ERROR
    broadcasts. Nothing raises past ``dispatch``.

    Approval flow for a task submitted with ``requires_approval``:
    1. Look up the latest remembered permission for the task type
    2. Remembered -> execute or drop without asking
    3. Otherwise acquire the prompt lock, record the prompt durably,
       broadcast PROMPT and wait for the response, timeout or cancel
    4. Store the permission when the human asked to remember it
    5. Broadcast PROMPT_CLOSED, release the lock, then execute or drop
    """

    def __init__(
        self,
        channel: MessageChannel,
        data_store: DataStore,
        permission_store: PermissionStore,
        prompt_ledger: PromptLedger | None = None,
        config: Config | None = None,
        emitter: EventEmitter | None = None,
        mutex: Mutex | None = None,
        on_relay_change: RelayChangeHook | None = None,
    ) -> None:
        self._config = config or Config()
        self._channel = channel
        self._data = data_store
        self._permissions = permission_store
        self._ledger = prompt_ledger
        self.emitter = emitter or EventEmitter()
        self.mutex = mutex or Mutex()
        self.prompts = PromptTable(
            self.emitter,
            timeout_seconds=self._config.approval.timeout_seconds,
            default_action=self._config.approval.default_action,
        )
        self.on_relay_change = on_relay_change
        self.active_relay: str | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the channel, seed relays and reconcile outstanding prompts."""
        if self.running:
            return
        self._unsubscribe = self._channel.on_message(self.dispatch)
        await self._seed_default_relay()
        await self._refresh_active_relay()
        await self.recover_prompts()
        logger.info("Background orchestrator started")

    async def stop(self) -> None:
        """Cancel in-flight flows. Durable pending prompts are kept for recovery."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        await self.prompts.cleanup()
        logger.info("Background orchestrator stopped")

    async def join(self) -> None:
        """Wait until every in-flight handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, message: Any) -> None:
        """Route one inbound message to its handler.

        Handlers run as background tasks so a flow waiting on a human
        never blocks the channel.
        """
        if isinstance(message, TaskMessage):
            self._spawn(self.submit_task(message.task, message.requires_approval))
        elif isinstance(message, PromptResponseMessage):
            self.record_response(message.prompt_id, message.response)
        elif isinstance(message, PromptCancelMessage):
            self.cancel_prompt(message.prompt_id)
        elif isinstance(message, FetchSettingsMessage):
            self._spawn(self.fetch_settings())
        elif isinstance(message, UpdateSettingsMessage):
            self._spawn(self.update_settings(message.key, message.value))
        elif isinstance(message, FetchRelaysMessage):
            self._spawn(self.fetch_relays())
        elif isinstance(message, AddRelayMessage):
            self._spawn(self.add_relay(message.url))
        elif isinstance(message, RemoveRelayMessage):
            self._spawn(self.remove_relay(message.key))
        elif isinstance(message, FetchPermissionsMessage):
            self._spawn(self.fetch_permissions())
        else:
            logger.warning(f"Ignoring message not addressed to the backend: {getattr(message, 'type', message)!r}")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Orchestrator handler failed: {exc!r}", exc_info=exc)
            self._spawn(self._report_failure(exc))

    async def _report_failure(self, exc: BaseException) -> None:
        try:
            await self._error(f"Failed to handle message: {exc}")
        except Exception:
            logger.exception("Failed to broadcast handler failure")

    # ------------------------------------------------------------------
    # Tasks and approval
    # ------------------------------------------------------------------

    async def submit_task(self, task: Task | dict[str, Any], requires_approval: bool = False) -> TaskFlow:
        """Run a task through the approval decision and execute it if allowed."""
        task = parse_task(task)
        flow = TaskFlow(task=task, task_type=task.task_type(self._config.approval.default_task_type))

        if not requires_approval:
            return await self._execute(flow)

        flow.advance(TaskState.PERMISSION_CHECK)
        permission = await self._lookup_permission(flow.task_type)
        if permission is not None and permission.remember:
            if permission.approved:
                flow.advance(TaskState.CACHED_APPROVE)
                return await self._execute(flow)
            flow.advance(TaskState.CACHED_DENY)
            flow.advance(TaskState.DROPPED)
            logger.info(f"Task [{flow.task_type}] denied by remembered permission")
            return flow

        flow.advance(TaskState.PROMPT_PENDING)
        return await self._approve_and_run(flow)

    async def _approve_and_run(self, flow: TaskFlow, prompt_id: str | None = None) -> TaskFlow:
        resolution = await self._ask(flow, prompt_id)
        if resolution.outcome is PromptOutcome.CANCELLED:
            flow.advance(TaskState.ABORTED)
            return flow
        if resolution.approved:
            return await self._execute(flow)
        flow.advance(TaskState.DROPPED)
        return flow

    async def _ask(self, flow: TaskFlow, prompt_id: str | None = None) -> PromptResolution:
        flow.advance(TaskState.ACQUIRE_LOCK)
        handle = await self.mutex.acquire()
        try:
            prompt = self.prompts.open(flow.task_type, flow.task.payload(), prompt_id)
            flow.prompt_id = prompt.prompt_id
            await self._record_pending(prompt.prompt_id, flow.task_type, prompt.task)

            await self._channel.broadcast(PromptMessage(prompt_id=prompt.prompt_id, task=prompt.task))
            flow.advance(TaskState.PROMPT_SENT)
            logger.info(f"Prompt {prompt.prompt_id} sent for task type '{flow.task_type}'")

            if self._config.approval.lock_scope == "setup":
                self._release(flow, handle)

            flow.advance(TaskState.AWAIT_RESPONSE)
            try:
                resolution = await self.prompts.wait(prompt.prompt_id)
            except asyncio.CancelledError:
                self.prompts.forget(prompt.prompt_id)
                raise

            logger.info(f"Prompt {prompt.prompt_id} resolved: {resolution.outcome}")
            if resolution.outcome is not PromptOutcome.CANCELLED:
                flow.advance(TaskState.APPROVED if resolution.approved else TaskState.DENIED)
            if resolution.answered and resolution.response.remember:
                await self._remember(flow.task_type, resolution.response.approved)
            await self._discard_pending(prompt.prompt_id)
            await self._channel.broadcast(
                PromptClosedMessage(prompt_id=prompt.prompt_id, outcome=resolution.outcome)
            )
            return resolution
        finally:
            if not handle.released:
                self._release(flow, handle)

    def _release(self, flow: TaskFlow, handle: LockHandle) -> None:
        flow.advance(TaskState.RELEASE_LOCK)
        handle.release()

    async def _execute(self, flow: TaskFlow) -> TaskFlow:
        flow.advance(TaskState.EXECUTING)
        payload = flow.task.payload()
        try:
            flow.key = await self._data.put(payload, flow.task.storage_key)
        except StorageError as e:
            logger.error(f"Failed to execute task [{flow.task_type}]: {e}")
            flow.advance(TaskState.FAILED)
            await self._error(f"Failed to execute task: {e}")
            return flow

        flow.advance(TaskState.DONE)
        logger.info(f"Task [{flow.task_type}] executed under key {flow.key}")
        await self._channel.broadcast(DataUpdateMessage(data=payload))
        return flow

    async def _lookup_permission(self, task_type: str) -> PermissionRecord | None:
        try:
            return await self._permissions.lookup(task_type)
        except StorageError as e:
            logger.error(f"Permission lookup for '{task_type}' failed, asking instead: {e}")
            return None

    async def _remember(self, task_type: str, approved: bool) -> None:
        try:
            await self._permissions.append(task_type, approved, True)
        except StorageError as e:
            logger.error(f"Failed to store permission for '{task_type}': {e}")
            await self._error(f"Failed to store permission: {e}")

    async def _record_pending(self, prompt_id: str, task_type: str, task: dict[str, Any]) -> None:
        if self._ledger is None:
            return
        try:
            await self._ledger.record(PendingPromptRecord(prompt_id=prompt_id, task_type=task_type, task=task))
        except StorageError as e:
            logger.warning(f"Prompt {prompt_id} will not survive a restart: {e}")

    async def _discard_pending(self, prompt_id: str) -> None:
        if self._ledger is None:
            return
        try:
            await self._ledger.discard(prompt_id)
        except StorageError as e:
            logger.warning(f"Failed to discard pending prompt {prompt_id}: {e}")

    def record_response(self, prompt_id: str, response: PromptResponse | dict[str, Any]) -> bool:
        """Deliver a human's decision to the flow waiting on ``prompt_id``.

        Returns:
            False if no flow is waiting on that prompt.
        """
        topic = prompt_topic(prompt_id)
        if not self.emitter.has(topic):
            logger.debug(f"No flow waiting on prompt {prompt_id}; response dropped")
            return False
        self.emitter.emit(topic, response)
        return True

    def cancel_prompt(self, prompt_id: str) -> bool:
        """Abort the flow waiting on ``prompt_id`` without a decision."""
        cancelled = self.prompts.cancel(prompt_id)
        if cancelled:
            logger.info(f"Prompt {prompt_id} cancelled by frontend")
        return cancelled

    async def recover_prompts(self) -> int:
        """Reconcile prompts left outstanding by a previous process.

        Returns:
            Number of records reconciled.
        """
        if self._ledger is None:
            return 0
        try:
            records = await self._ledger.outstanding()
        except StorageError as e:
            logger.error(f"Failed to read pending prompts: {e}")
            return 0

        for record in records:
            if record.prompt_id in self.prompts:
                continue
            if self._config.approval.recovery == "resume":
                logger.info(f"Resuming prompt {record.prompt_id} for task type '{record.task_type}'")
                task = parse_task(record.task)
                flow = TaskFlow(task=task, task_type=record.task_type)
                flow.advance(TaskState.PROMPT_PENDING)
                self._spawn(self._approve_and_run(flow, record.prompt_id))
            else:
                logger.info(f"Abandoning prompt {record.prompt_id} for task type '{record.task_type}'")
                await self._discard_pending(record.prompt_id)
                await self._error(f"Prompt {record.prompt_id} was abandoned after a restart")
        return len(records)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def fetch_settings(self) -> dict[str, Any]:
        """Broadcast SETTINGS_DATA with every live (non-deleted) entry."""
        try:
            entries = await self._data.get_all()
        except StorageError as e:
            logger.error(f"Failed to fetch settings: {e}")
            await self._error(f"Failed to fetch settings: {e}")
            await self._channel.broadcast(SettingsDataMessage(data={}))
            return {}

        data = {entry.key: entry.value for entry in entries if entry.key and not _is_tombstone(entry.value)}
        await self._channel.broadcast(SettingsDataMessage(data=data))
        return data

    async def update_settings(self, key: str, value: Any) -> bool:
        """Write one setting; a None value deletes it. Always re-broadcasts state."""
        stored = TOMBSTONE if value is None else value
        try:
            await self._data.put(stored, key)
        except StorageError as e:
            logger.error(f"Failed to update setting '{key}': {e}")
            await self._error(f"Failed to update setting: {e}")
            await self.fetch_settings()
            return False

        logger.info(f"Setting {'removed' if value is None else 'updated'}: {key}")
        await self._channel.broadcast(SettingsUpdatedMessage(key=key, value=value))
        await self.fetch_settings()
        return True

    # ------------------------------------------------------------------
    # Relays
    # ------------------------------------------------------------------

    async def fetch_relays(self) -> list[KeyValue]:
        """Broadcast RELAYS_DATA in insertion order."""
        try:
            relays = await self._data.list_relays()
        except StorageError as e:
            logger.error(f"Failed to fetch relays: {e}")
            await self._error(f"Failed to fetch relays: {e}")
            await self._channel.broadcast(RelaysDataMessage(data=[]))
            return []

        data = [KeyValue(key=relay.key, value=relay.value) for relay in relays]
        await self._channel.broadcast(RelaysDataMessage(data=data))
        return data

    async def add_relay(self, url: str) -> str | None:
        """Add a relay endpoint and re-broadcast the list."""
        key: str | None = None
        try:
            key = await self._data.add_relay(url)
        except StorageError as e:
            logger.error(f"Failed to add relay {url}: {e}")
            await self._error(f"Failed to add relay: {e}")
        await self.fetch_relays()
        await self._refresh_active_relay()
        return key

    async def remove_relay(self, key: str) -> bool:
        """Remove a relay endpoint and re-broadcast the list."""
        removed = False
        try:
            removed = await self._data.remove_relay(key)
        except StorageError as e:
            logger.error(f"Failed to remove relay {key}: {e}")
            await self._error(f"Failed to remove relay: {e}")
        await self.fetch_relays()
        await self._refresh_active_relay()
        return removed

    async def _seed_default_relay(self) -> None:
        relays = self._config.relays
        try:
            if not await self._data.list_relays():
                await self._data.add_relay(relays.default_url, key=relays.default_key)
        except StorageError as e:
            logger.error(f"Failed to seed default relay: {e}")

    async def _refresh_active_relay(self) -> None:
        url = self._config.relays.default_url
        try:
            relays = await self._data.list_relays()
            if relays:
                url = relays[0].value
        except StorageError as e:
            logger.error(f"Failed to read relays, using default {url}: {e}")

        if url == self.active_relay:
            return
        self.active_relay = url
        logger.info(f"Active relay: {url}")
        if self.on_relay_change is not None:
            try:
                result = self.on_relay_change(url)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Relay change hook failed for {url}")

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def fetch_permissions(self) -> list[KeyValue]:
        """Broadcast PERMISSIONS_DATA with every remembered decision."""
        try:
            records = await self._permissions.list()
        except StorageError as e:
            logger.error(f"Failed to fetch permissions: {e}")
            await self._error(f"Failed to fetch permissions: {e}")
            await self._channel.broadcast(PermissionsDataMessage(data=[]))
            return []

        data = [KeyValue(**record.to_entry().to_dict()) for record in records]
        await self._channel.broadcast(PermissionsDataMessage(data=data))
        return data

    async def _error(self, message: str) -> None:
        await self._channel.broadcast(ErrorMessage(message=message))
