from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger("merit_room_bot")


class WorkersMixin:
    async def _recheck_sweep_loop(self) -> None:
        interval = float(self.settings.recheck_sweep_seconds)
        while True:
            try:
                await asyncio.sleep(interval)
                demoted = await self.verification.sweep_stale()
                if demoted:
                    logger.info("[sweep] demoted=%s", demoted)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Re-check sweep worker error")
