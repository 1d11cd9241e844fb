from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass

from .transport import ChatTransport, MessageRef

logger = logging.getLogger("merit_room_bot")


@dataclass(slots=True)
class PendingCleanup:
    trigger: MessageRef
    reply: MessageRef
    due_at: float


class SpamCleanupScheduler:
    """Deletes transient bot replies, and the messages that caused them, after a delay.

    Cleanup is advisory: nothing is persisted, nothing is retried and pending
    timers are dropped on shutdown.
    """

    def __init__(self, transport: ChatTransport, default_delay: float = 30.0) -> None:
        self.transport = transport
        self.default_delay = max(0.0, float(default_delay))
        self._tasks: dict[tuple[str, str], asyncio.Task[None]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        trigger: MessageRef,
        reply: MessageRef | None,
        delay: float | None = None,
    ) -> PendingCleanup | None:
        if reply is None or not trigger.chat.is_group:
            return None
        if reply.key in self._tasks:
            return None

        wait = self.default_delay if delay is None else max(0.0, float(delay))
        item = PendingCleanup(trigger=trigger, reply=reply, due_at=time.monotonic() + wait)
        self._tasks[reply.key] = asyncio.create_task(
            self._run(item, wait),
            name=f"cleanup-{reply.chat.chat_id}-{reply.message_id}",
        )
        return item

    async def _run(self, item: PendingCleanup, wait: float) -> None:
        try:
            await asyncio.sleep(wait)
            await self._delete_quietly(item.trigger)
            await self._delete_quietly(item.reply)
        finally:
            self._tasks.pop(item.reply.key, None)

    async def _delete_quietly(self, ref: MessageRef) -> None:
        try:
            deleted = await self.transport.delete_message(ref)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Cleanup delete failed for %s/%s: %s", ref.chat.chat_id, ref.message_id, exc)
            return
        if not deleted:
            logger.debug("Cleanup delete skipped for %s/%s", ref.chat.chat_id, ref.message_id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
