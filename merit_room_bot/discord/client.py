from __future__ import annotations

import asyncio
import contextlib
import logging

import discord

from ..config import Settings
from ..engine.cleanup import SpamCleanupScheduler
from ..engine.context import EngineContext, EnginePolicy
from ..engine.router import build_router
from ..services.ledger_oracle import LedgerOracle
from .mixins.message_mixin import MessageMixin
from .mixins.workers_mixin import WorkersMixin
from .transport import DiscordTransport

logger = logging.getLogger("merit_room_bot")


class MeritRoomDiscordBot(
    MessageMixin,
    WorkersMixin,
    discord.Client,
):
    def __init__(
        self,
        settings: Settings,
        store: object,
        oracle: LedgerOracle,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.messages = True

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.oracle = oracle

        self.transport = DiscordTransport(self, timeout_seconds=settings.transport_timeout_seconds)
        self.scheduler = SpamCleanupScheduler(self.transport, default_delay=settings.cleanup_delay_seconds)
        self.ctx = EngineContext(
            policy=EnginePolicy.from_settings(settings),
            store=store,
            oracle=oracle,
            transport=self.transport,
            scheduler=self.scheduler,
        )
        self.router, self.verification, self.moderation = build_router(self.ctx)

        self.sweep_task: asyncio.Task[None] | None = None

    async def setup_hook(self) -> None:
        await self.store.init()
        await self.store.ping()
        logger.info("Record store ready (%s)", getattr(self.store, "backend_name", "?"))
        await self.oracle.start()

        if self.settings.recheck_sweep_seconds > 0:
            self.sweep_task = asyncio.create_task(self._recheck_sweep_loop(), name="recheck-sweep")

    async def close(self) -> None:
        await self._cancel_task(self.sweep_task)
        await self._run_shutdown_step("scheduler.shutdown", self.scheduler.shutdown(), timeout=3.0)
        await self._run_shutdown_step("oracle.close", self.oracle.close(), timeout=6.0)
        await self._run_shutdown_step("store.close", self.store.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def _cancel_task(self, task: asyncio.Task[None] | None) -> None:
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
        room = self.get_channel(int(self.settings.room_channel_id))
        if room is None:
            logger.warning("Room channel %s is not visible to the bot", self.settings.room_channel_id)
        else:
            logger.info("Moderating room #%s (%s)", getattr(room, "name", "?"), room.id)
