"""Tests for the background orchestrator approval flow."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest

from tollgate.channels.base import QueueContext
from tollgate.channels.bus import MessageChannel
from tollgate.core.config.models import ApprovalConfig, Config
from tollgate.model.message import (
    FetchSettingsMessage,
    PromptCancelMessage,
    PromptResponse,
    PromptResponseMessage,
    TaskMessage,
    UpdateSettingsMessage,
)
from tollgate.model.task import TaskState
from tollgate.runtime.orchestrator import BackgroundOrchestrator
from tollgate.stores.base import StorageError
from tollgate.stores.memory import InMemoryDataStore, InMemoryPermissionStore, InMemoryPromptLedger


class Harness:
    """Orchestrator wired to in-memory stores and one queue-backed frontend."""

    def __init__(self, coalesce: bool = False, **approval: Any) -> None:
        approval.setdefault("timeout_seconds", None)
        self.config = Config(approval=ApprovalConfig(**approval))
        self.channel = MessageChannel(coalesce=coalesce)
        self.frontend = QueueContext()
        self.channel.attach(self.frontend)
        self.data = InMemoryDataStore()
        self.permissions = InMemoryPermissionStore()
        self.ledger = InMemoryPromptLedger()
        self.orchestrator = BackgroundOrchestrator(
            self.channel,
            self.data,
            self.permissions,
            self.ledger,
            config=self.config,
        )

    async def next_of(self, message_type: str, timeout: float = 1.0) -> dict[str, Any]:
        """Receive messages until one of the given type arrives."""
        while True:
            message = await self.frontend.receive(timeout)
            if message["type"] == message_type:
                return message

    def types(self) -> list[str]:
        """Types of every message buffered so far."""
        return [m["type"] for m in self.frontend.drain()]


@pytest.fixture
async def harness():
    """Provide a harness and stop its orchestrator afterwards."""
    h = Harness()
    yield h
    await h.orchestrator.stop()


class TestDirectExecution:
    """Test tasks that do not require approval."""

    async def test_executes_immediately(self, harness):
        """A task without approval is stored and broadcast."""
        flow = await harness.orchestrator.submit_task({"name": "ship", "key": "k1"})

        assert flow.state is TaskState.DONE
        assert flow.key == "k1"
        assert await harness.data.get("k1") == {"name": "ship", "key": "k1"}

        update = await harness.next_of("DATA_UPDATE")
        assert update["data"] == {"name": "ship", "key": "k1"}

    async def test_generates_key(self, harness):
        """A task without a key is stored under a fresh key."""
        flow = await harness.orchestrator.submit_task({"name": "ship"})

        assert flow.key is not None
        assert await harness.data.get(flow.key) == {"name": "ship"}

    async def test_storage_failure_fails_flow(self, harness):
        """A rejected write ends in FAILED with an ERROR and no DATA_UPDATE."""
        harness.data.put = AsyncMock(side_effect=StorageError("disk full"))

        flow = await harness.orchestrator.submit_task({"name": "ship"})

        assert flow.state is TaskState.FAILED
        assert harness.types() == ["ERROR"]

    async def test_non_string_key_over_channel(self, harness):
        """A numeric key is stored under its string form; the payload is unchanged."""
        await harness.orchestrator.start()

        await harness.channel.send(TaskMessage(task={"type": "note", "key": 5}))

        update = await harness.next_of("DATA_UPDATE")
        assert update["data"] == {"type": "note", "key": 5}
        assert await harness.data.get("5") == {"type": "note", "key": 5}

    async def test_unhashable_type_over_channel(self, harness):
        """A list-valued type still runs through the approval handshake."""
        await harness.orchestrator.start()

        await harness.channel.send(TaskMessage(task={"type": ["a"]}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")
        harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=False))

        closed = await harness.next_of("PROMPT_CLOSED")
        assert closed["outcome"] == "denied"

    async def test_unexpected_failure_broadcasts_error(self, harness):
        """A handler failing with a non-storage error is reported with ERROR."""
        harness.data.put = AsyncMock(side_effect=RuntimeError("disk on fire"))
        await harness.orchestrator.start()

        await harness.channel.send(TaskMessage(task={"name": "ship"}))
        await harness.orchestrator.join()

        error = await harness.next_of("ERROR")
        assert "disk on fire" in error["message"]


class TestRememberedPermissions:
    """Test the cached decision path."""

    async def test_remembered_approval_skips_prompt(self, harness):
        """A remembered approval executes with no PROMPT."""
        await harness.permissions.append("x", approved=True, remember=True)

        flow = await harness.orchestrator.submit_task({"type": "x"}, requires_approval=True)

        assert flow.state is TaskState.DONE
        assert TaskState.CACHED_APPROVE in flow.history
        assert harness.types() == ["DATA_UPDATE"]

    async def test_remembered_denial_drops(self, harness):
        """A remembered denial drops the task without prompting."""
        await harness.permissions.append("x", approved=False, remember=True)

        flow = await harness.orchestrator.submit_task({"type": "x"}, requires_approval=True)

        assert flow.state is TaskState.DROPPED
        assert TaskState.CACHED_DENY in flow.history
        assert harness.types() == []
        assert await harness.data.get_all() == []

    async def test_latest_record_wins(self, harness):
        """The most recent record for a task type applies."""
        await harness.permissions.append("x", approved=False, remember=True)
        await harness.permissions.append("x", approved=True, remember=True)

        flow = await harness.orchestrator.submit_task({"type": "x"}, requires_approval=True)

        assert flow.state is TaskState.DONE

    async def test_unremembered_record_prompts(self, harness):
        """A record without remember is treated as no record."""
        await harness.permissions.append("x", approved=True, remember=False)

        pending = asyncio.create_task(harness.orchestrator.submit_task({"type": "x"}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")
        harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=True))

        flow = await pending
        assert flow.state is TaskState.DONE

    async def test_lookup_failure_prompts(self, harness):
        """A failing permission lookup falls back to asking the human."""
        harness.permissions.lookup = AsyncMock(side_effect=StorageError("locked"))

        pending = asyncio.create_task(harness.orchestrator.submit_task({"type": "x"}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")
        harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=False))

        flow = await pending
        assert flow.state is TaskState.DROPPED


class TestPromptFlow:
    """Test the live prompt handshake."""

    async def test_denied_prompt(self, harness):
        """A denial drops the task: no DATA_UPDATE and nothing stored."""
        pending = asyncio.create_task(harness.orchestrator.submit_task({"type": "y"}, requires_approval=True))

        prompt = await harness.next_of("PROMPT")
        assert prompt["task"] == {"type": "y"}
        assert harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=False)) is True

        flow = await pending
        assert flow.state is TaskState.DROPPED
        assert TaskState.DENIED in flow.history
        assert flow.prompt_id == prompt["promptId"]

        closed = await harness.next_of("PROMPT_CLOSED")
        assert closed == {"type": "PROMPT_CLOSED", "promptId": prompt["promptId"], "outcome": "denied"}
        assert "DATA_UPDATE" not in harness.types()
        assert await harness.data.get_all() == []
        assert harness.permissions.records == []

    async def test_settings_scenario(self, harness):
        """Approve+remember stores the permission; the next settings task needs no prompt."""
        first = {"type": "settings", "key": "theme", "value": "dark"}
        pending = asyncio.create_task(harness.orchestrator.submit_task(first, requires_approval=True))

        prompt = await harness.next_of("PROMPT")
        harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=True, remember=True))
        flow = await pending

        assert flow.state is TaskState.DONE
        record = harness.permissions.records[0]
        assert (record.task_type, record.approved, record.remember) == ("settings", True, True)
        update = await harness.next_of("DATA_UPDATE")
        assert update["data"] == first

        second = {"type": "settings", "key": "theme", "value": "light"}
        flow = await harness.orchestrator.submit_task(second, requires_approval=True)

        assert flow.state is TaskState.DONE
        assert TaskState.CACHED_APPROVE in flow.history
        assert harness.types() == ["DATA_UPDATE"]
        assert await harness.data.get("theme") == second

    async def test_history(self, harness):
        """The approved flow walks the full handshake."""
        pending = asyncio.create_task(harness.orchestrator.submit_task({}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")
        harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=True))
        flow = await pending

        assert flow.history == [
            TaskState.RECEIVED,
            TaskState.PERMISSION_CHECK,
            TaskState.PROMPT_PENDING,
            TaskState.ACQUIRE_LOCK,
            TaskState.PROMPT_SENT,
            TaskState.AWAIT_RESPONSE,
            TaskState.APPROVED,
            TaskState.RELEASE_LOCK,
            TaskState.EXECUTING,
            TaskState.DONE,
        ]

    async def test_unknown_prompt_response(self, harness):
        """A response for an unknown prompt is ignored."""
        assert harness.orchestrator.record_response("nope", PromptResponse(approved=True)) is False

    async def test_ledger_tracks_open_prompt(self, harness):
        """The prompt is durably recorded until it resolves."""
        pending = asyncio.create_task(harness.orchestrator.submit_task({"type": "z"}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")

        outstanding = await harness.ledger.outstanding()
        assert [r.prompt_id for r in outstanding] == [prompt["promptId"]]
        assert outstanding[0].task_type == "z"

        harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=False))
        await pending
        assert await harness.ledger.outstanding() == []

    async def test_dispatch_over_channel(self, harness):
        """TASK and PROMPT_RESPONSE sent through the channel complete the flow."""
        await harness.orchestrator.start()
        await harness.channel.send(TaskMessage(task={"type": "w", "key": "k"}, requires_approval=True))

        prompt = await harness.next_of("PROMPT")
        await harness.channel.send(
            PromptResponseMessage(prompt_id=prompt["promptId"], response=PromptResponse(approved=True))
        )

        update = await harness.next_of("DATA_UPDATE")
        assert update["data"] == {"type": "w", "key": "k"}


class TestLockScope:
    """Test prompt serialization under both lock scopes."""

    async def test_response_scope_serializes_prompts(self, harness):
        """The second PROMPT is not sent until the first is answered."""
        orchestrator = harness.orchestrator
        first_task = asyncio.create_task(orchestrator.submit_task({"type": "a"}, requires_approval=True))
        second_task = asyncio.create_task(orchestrator.submit_task({"type": "b"}, requires_approval=True))

        first = await harness.next_of("PROMPT")
        await asyncio.sleep(0.05)
        assert "PROMPT" not in harness.types()
        assert orchestrator.mutex.waiting == 1

        orchestrator.record_response(first["promptId"], PromptResponse(approved=True))
        second = await harness.next_of("PROMPT")
        assert second["promptId"] != first["promptId"]
        assert second["task"] == {"type": "b"}

        orchestrator.record_response(second["promptId"], PromptResponse(approved=True))
        flows = await asyncio.gather(first_task, second_task)
        assert [f.state for f in flows] == [TaskState.DONE, TaskState.DONE]
        assert orchestrator.mutex.locked() is False

    async def test_setup_scope_overlaps_prompts(self):
        """With lock_scope=setup both prompts are visible at once."""
        harness = Harness(lock_scope="setup")
        orchestrator = harness.orchestrator
        tasks = [
            asyncio.create_task(orchestrator.submit_task({"type": t}, requires_approval=True))
            for t in ("a", "b")
        ]

        first = await harness.next_of("PROMPT")
        second = await harness.next_of("PROMPT")
        await asyncio.sleep(0.01)
        assert orchestrator.mutex.locked() is False

        orchestrator.record_response(second["promptId"], PromptResponse(approved=False))
        orchestrator.record_response(first["promptId"], PromptResponse(approved=True))
        flows = await asyncio.gather(*tasks)

        assert [f.state for f in flows] == [TaskState.DONE, TaskState.DROPPED]
        await orchestrator.stop()


class TestTimeoutAndCancel:
    """Test prompts resolved without an answer."""

    async def test_timeout_denies(self):
        """A timed-out prompt is denied and stores no permission."""
        harness = Harness(timeout_seconds=0.05)
        flow = await harness.orchestrator.submit_task({"type": "t"}, requires_approval=True)

        assert flow.state is TaskState.DROPPED
        closed = await harness.next_of("PROMPT_CLOSED")
        assert closed["outcome"] == "timeout"
        assert harness.permissions.records == []
        assert harness.orchestrator.mutex.locked() is False
        await harness.orchestrator.stop()

    async def test_timeout_default_approve(self):
        """default_action=approve executes on timeout."""
        harness = Harness(timeout_seconds=0.05, default_action="approve")
        flow = await harness.orchestrator.submit_task({"type": "t"}, requires_approval=True)

        assert flow.state is TaskState.DONE
        assert harness.permissions.records == []
        await harness.orchestrator.stop()

    async def test_cancel_aborts_and_releases_lock(self, harness):
        """PROMPT_CANCEL ends the flow as ABORTED and frees the lock."""
        pending = asyncio.create_task(harness.orchestrator.submit_task({"type": "c"}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")

        assert harness.orchestrator.cancel_prompt(prompt["promptId"]) is True
        flow = await pending

        assert flow.state is TaskState.ABORTED
        assert harness.orchestrator.mutex.locked() is False
        closed = await harness.next_of("PROMPT_CLOSED")
        assert closed["outcome"] == "cancelled"
        assert await harness.ledger.outstanding() == []
        assert await harness.data.get_all() == []

    async def test_cancel_message_over_channel(self, harness):
        """A PROMPT_CANCEL message from a frontend aborts the flow."""
        await harness.orchestrator.start()
        await harness.channel.send(TaskMessage(task={"type": "c"}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")

        await harness.channel.send(PromptCancelMessage(prompt_id=prompt["promptId"]))

        closed = await harness.next_of("PROMPT_CLOSED")
        assert closed["outcome"] == "cancelled"
        assert harness.orchestrator.cancel_prompt(prompt["promptId"]) is False

    async def test_stop_cancels_waiting_flow(self, harness):
        """Shutdown cancels the waiting flow, frees the lock and keeps the ledger record."""
        await harness.orchestrator.start()
        await harness.channel.send(TaskMessage(task={"type": "s"}, requires_approval=True))
        prompt = await harness.next_of("PROMPT")

        await harness.orchestrator.stop()

        assert harness.orchestrator.mutex.locked() is False
        assert [r.prompt_id for r in await harness.ledger.outstanding()] == [prompt["promptId"]]
        assert harness.orchestrator.record_response(prompt["promptId"], PromptResponse(approved=True)) is False


class TestCoalescedChannel:
    """Test flows over a channel with coalescing on, as shipped by default."""

    @pytest.fixture
    async def coalesced(self):
        """Provide a coalescing harness with a second attached frontend."""
        h = Harness(coalesce=True)
        h.other = QueueContext()
        h.channel.attach(h.other)
        await h.orchestrator.start()
        yield h
        await h.orchestrator.stop()

    async def test_identical_tasks_from_two_contexts(self, coalesced):
        """The same task sent by two contexts is executed twice."""
        task = {"type": "note", "text": "hi"}

        assert await coalesced.channel.send(TaskMessage(task=task), origin=coalesced.frontend) is True
        assert await coalesced.channel.send(TaskMessage(task=task), origin=coalesced.other) is True
        await coalesced.orchestrator.join()

        entries = await coalesced.data.get_all()
        assert [e.value for e in entries] == [task, task]

    async def test_settings_scenario(self, coalesced):
        """Fetch, approve+remember, cached approval and update all work with coalescing on."""
        channel, first, second = coalesced.channel, coalesced.frontend, coalesced.other

        assert await channel.send(FetchSettingsMessage(), origin=first) is True
        assert await channel.send(FetchSettingsMessage(), origin=second) is True
        await coalesced.orchestrator.join()
        assert [m for m in second.drain() if m["type"] == "SETTINGS_DATA"] == [{"type": "SETTINGS_DATA", "data": {}}]
        first.drain()

        task = {"type": "settings", "key": "theme", "value": "dark"}
        await channel.send(TaskMessage(task=task, requires_approval=True), origin=first)
        prompt = await coalesced.next_of("PROMPT")
        await channel.send(
            PromptResponseMessage(
                prompt_id=prompt["promptId"], response=PromptResponse(approved=True, remember=True)
            ),
            origin=second,
        )
        assert (await coalesced.next_of("PROMPT_CLOSED"))["outcome"] == "approved"
        assert (await coalesced.next_of("DATA_UPDATE"))["data"] == task
        await coalesced.orchestrator.join()
        second.drain()

        assert await channel.send(TaskMessage(task=task, requires_approval=True), origin=second) is True
        await coalesced.orchestrator.join()
        assert "PROMPT" not in [m["type"] for m in second.drain()]
        assert len(coalesced.permissions.records) == 1

        await channel.send(UpdateSettingsMessage(key="theme", value="light"), origin=first)
        await coalesced.orchestrator.join()
        data = await coalesced.next_of("SETTINGS_DATA")
        assert data["data"] == {"theme": "light"}
