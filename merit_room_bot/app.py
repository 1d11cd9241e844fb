from __future__ import annotations

import asyncio
import contextlib
import logging

from .config import Settings
from .discord.client import MeritRoomDiscordBot
from .services.ledger_oracle import LedgerOracle
from .store.factory import build_record_store

logger = logging.getLogger("merit_room_bot")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.client").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)


def build_bot(settings: Settings) -> MeritRoomDiscordBot:
    store = build_record_store(settings)
    oracle = LedgerOracle(
        base_url=settings.ledger_api_url,
        timeout_seconds=settings.ledger_timeout_seconds,
        api_token=settings.ledger_api_token,
    )
    return MeritRoomDiscordBot(settings=settings, store=store, oracle=oracle)


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            with contextlib.suppress(Exception):
                await asyncio.wait_for(bot.close(), timeout=10.0)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    logger.info(
        "Starting merit room bot (room=%s threshold=%s store=%s)",
        settings.room_channel_id,
        settings.merit_threshold,
        settings.store_backend,
    )
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
