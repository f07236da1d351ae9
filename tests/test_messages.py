"""Tests for the inter-agent message bus."""

import asyncio
from datetime import datetime, timedelta

import pytest

from squad_lite.coordination import MessageBus, format_messages_for_context
from squad_lite.events import EventEmitter, EventType
from squad_lite.store import Store
from squad_lite.types import Message, MessagePriority, MessageType


async def seed(store, count, to_agent="s1", **kwargs):
    base = datetime.now() - timedelta(minutes=count)
    messages = []
    for i in range(count):
        message = Message(
            from_agent="d1",
            to_agent=to_agent,
            content=f"m{i}",
            type=MessageType.TASK,
            thread_id="t1",
            created_at=base + timedelta(seconds=i),
            **kwargs,
        )
        messages.append(await store.messages.insert(message))
    return messages


class TestSend:
    """Tests for sending messages."""

    @pytest.mark.asyncio
    async def test_send_persists_unread_and_emits(self):
        events = EventEmitter()
        store = Store.in_memory()
        bus = MessageBus(store, events)

        message = await bus.send_message("d1", "s1", "x" * 150, MessageType.TASK, "thread-1")

        stored = await store.messages.find_one({"messageId": message.message_id})
        assert stored.read_at is None
        assert stored.priority == MessagePriority.NORMAL
        assert stored.thread_id == "thread-1"

        event = events.history(EventType.MESSAGE_NEW)[-1]
        assert event.data["preview"] == "x" * 100
        assert event.data["toAgent"] == "s1"

    @pytest.mark.asyncio
    async def test_thread_id_defaults(self):
        bus = MessageBus(Store.in_memory())
        message = await bus.send_message("d1", "s1", "hi", MessageType.STATUS)
        assert message.thread_id


class TestInbox:
    """Tests for reading messages."""

    @pytest.mark.asyncio
    async def test_unread_newest_first_with_limit(self):
        store = Store.in_memory()
        await seed(store, 25)
        bus = MessageBus(store)

        unread = await bus.get_unread_messages("s1")
        assert len(unread) == 20
        assert unread[0].content == "m24"

        inbox = await bus.check_inbox("s1")
        assert [m.content for m in inbox[:2]] == ["m24", "m23"]
        assert len(inbox) == 10

    @pytest.mark.asyncio
    async def test_priority_does_not_reorder(self):
        store = Store.in_memory()
        [old] = await seed(store, 1, priority=MessagePriority.HIGH)
        await store.messages.insert(
            Message(
                from_agent="d1",
                to_agent="s1",
                content="newer",
                type=MessageType.STATUS,
                thread_id="t2",
                priority=MessagePriority.LOW,
                created_at=old.created_at + timedelta(seconds=5),
            )
        )

        inbox = await MessageBus(store).check_inbox("s1")
        assert [m.content for m in inbox] == ["newer", "m0"]

    @pytest.mark.asyncio
    async def test_other_recipients_excluded(self):
        store = Store.in_memory()
        await seed(store, 2, to_agent="someone-else")

        assert await MessageBus(store).check_inbox("s1") == []


class TestMarkRead:
    """Tests for acknowledging messages."""

    @pytest.mark.asyncio
    async def test_mark_read(self):
        store = Store.in_memory()
        messages = await seed(store, 3)
        bus = MessageBus(store)

        marked = await bus.mark_messages_as_read([m.message_id for m in messages[:2]])

        assert marked == 2
        assert [m.content for m in await bus.check_inbox("s1")] == ["m2"]

    @pytest.mark.asyncio
    async def test_read_at_never_overwritten(self):
        store = Store.in_memory()
        [message] = await seed(store, 1)
        bus = MessageBus(store)

        await bus.mark_messages_as_read([message.message_id])
        first = (await store.messages.find_one({"messageId": message.message_id})).read_at

        assert await bus.mark_messages_as_read([message.message_id]) == 0
        second = (await store.messages.find_one({"messageId": message.message_id})).read_at
        assert second == first

    @pytest.mark.asyncio
    async def test_empty_list_is_noop(self, monkeypatch):
        store = Store.in_memory()
        await seed(store, 2)
        bus = MessageBus(store)
        writes = []

        async def record_update(*args, **kwargs):
            writes.append((args, kwargs))
            return 0

        monkeypatch.setattr(store.messages.backend, "update_many", record_update)
        monkeypatch.setattr(store.messages.backend, "update_one", record_update)

        assert await bus.mark_messages_as_read([]) == 0
        assert writes == []
        assert len(await bus.get_unread_messages("s1")) == 2


class TestThreadsAndPolling:
    """Tests for threads, polling and digests."""

    @pytest.mark.asyncio
    async def test_thread_oldest_first(self):
        store = Store.in_memory()
        await seed(store, 3)

        thread = await MessageBus(store).get_thread("t1")
        assert [m.content for m in thread] == ["m0", "m1", "m2"]

    @pytest.mark.asyncio
    async def test_poll_returns_when_mail_arrives(self):
        store = Store.in_memory()
        bus = MessageBus(store)

        async def deliver():
            await asyncio.sleep(0.05)
            await bus.send_message("d1", "s1", "late", MessageType.TASK, "t1")

        sender = asyncio.create_task(deliver())
        messages = await bus.poll_inbox("s1", timeout=2.0, poll_interval=0.01)
        await sender

        assert [m.content for m in messages] == ["late"]

    @pytest.mark.asyncio
    async def test_poll_times_out_empty(self):
        bus = MessageBus(Store.in_memory())
        assert await bus.poll_inbox("s1", timeout=0.05, poll_interval=0.01) == []

    @pytest.mark.asyncio
    async def test_list_messages(self):
        store = Store.in_memory()
        await seed(store, 2)
        await seed(store, 1, to_agent="s2")
        bus = MessageBus(store)

        assert len(await bus.list_messages()) == 3
        assert len(await bus.list_messages(agent_id="s2")) == 1

    def test_format_digest(self):
        messages = [
            Message(
                from_agent="director-123456789",
                to_agent="s1",
                content="Urgent",
                type=MessageType.TASK,
                thread_id="t",
                priority=MessagePriority.HIGH,
            ),
            Message(from_agent="d2", to_agent="s1", content="FYI", type=MessageType.STATUS, thread_id="t"),
        ]

        assert format_messages_for_context(messages) == (
            "**Inbox (2 unread):**\n"
            "- From director: [task] [HIGH PRIORITY] Urgent\n"
            "- From d2: [status] FYI"
        )
        assert format_messages_for_context([]) == "No unread messages."
