"""Inter-agent message bus for squad-lite.

Messages are directed, persisted and delivered newest-first. Priority is
advisory only: it tags the rendered digest and never reorders delivery.
"""

import asyncio
import logging
import time
from datetime import datetime

from ..events import EventEmitter, EventType
from ..store import Store
from ..types import Message, MessagePriority, MessageType, new_id, short_id

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


class MessageBus:
    """Send, read and acknowledge messages between agents.

    Example:
        bus = MessageBus(store)
        await bus.send_message(director_id, specialist_id, "Go", MessageType.TASK, task_id)

        unread = await bus.check_inbox(specialist_id)
        await bus.mark_messages_as_read([m.message_id for m in unread])
    """

    def __init__(self, store: Store, events: EventEmitter | None = None):
        self._store = store
        self._events = events

    async def send_message(
        self,
        from_agent: str,
        to_agent: str,
        content: str,
        type: MessageType,
        thread_id: str | None = None,
        priority: MessagePriority = MessagePriority.NORMAL,
    ) -> Message:
        message = Message(
            from_agent=from_agent,
            to_agent=to_agent,
            content=content,
            type=type,
            thread_id=thread_id or new_id(),
            priority=priority,
        )
        await self._store.messages.insert(message)

        logger.debug(
            "Message %s -> %s [%s]",
            short_id(from_agent),
            short_id(to_agent),
            message.type.value,
        )
        if self._events:
            self._events.emit(
                EventType.MESSAGE_NEW,
                messageId=message.message_id,
                fromAgent=from_agent,
                toAgent=to_agent,
                type=message.type.value,
                preview=content[:PREVIEW_LENGTH],
            )
        return message

    async def get_unread_messages(self, agent_id: str, limit: int = 20) -> list[Message]:
        """Unread messages addressed to an agent, newest first."""
        return await self._store.messages.find(
            {"toAgent": agent_id, "readAt": None},
            sort=[("createdAt", -1)],
            limit=limit,
        )

    async def check_inbox(self, agent_id: str, limit: int = 10) -> list[Message]:
        return await self.get_unread_messages(agent_id, limit=limit)

    async def mark_messages_as_read(self, message_ids: list[str]) -> int:
        """Stamp ``readAt`` on unread messages. Already-read messages keep their stamp.

        Returns:
            Number of messages newly marked.
        """
        if not message_ids:
            return 0

        count = await self._store.messages.update_many(
            {"messageId": {"$in": list(message_ids)}, "readAt": None},
            {"readAt": datetime.now()},
        )
        logger.debug("Marked %d messages as read", count)
        return count

    async def get_thread(self, thread_id: str) -> list[Message]:
        return await self._store.messages.find({"threadId": thread_id}, sort=[("createdAt", 1)])

    async def list_messages(
        self,
        agent_id: str | None = None,
        thread_id: str | None = None,
        limit: int = 100,
    ) -> list[Message]:
        """Messages addressed to an agent and/or in a thread, newest first."""
        filter: dict[str, str] = {}
        if agent_id:
            filter["toAgent"] = agent_id
        if thread_id:
            filter["threadId"] = thread_id
        return await self._store.messages.find(filter, sort=[("createdAt", -1)], limit=limit)

    async def poll_inbox(
        self,
        agent_id: str,
        timeout: float = 30.0,
        poll_interval: float = 1.0,
    ) -> list[Message]:
        """Wait until unread mail arrives or the deadline passes."""
        deadline = time.monotonic() + timeout
        while True:
            messages = await self.check_inbox(agent_id)
            if messages or time.monotonic() >= deadline:
                return messages
            await asyncio.sleep(min(poll_interval, max(deadline - time.monotonic(), 0)))


def format_messages_for_context(messages: list[Message]) -> str:
    """Render an inbox digest for prompt injection."""
    if not messages:
        return "No unread messages."

    lines = []
    for msg in messages:
        priority = " [HIGH PRIORITY]" if msg.priority == MessagePriority.HIGH else ""
        lines.append(f"- From {short_id(msg.from_agent)}: [{msg.type.value}]{priority} {msg.content}")

    return f"**Inbox ({len(messages)} unread):**\n" + "\n".join(lines)
