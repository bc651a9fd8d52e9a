"""
Long-polling update source.

Fetches updates with ``getUpdates`` and an advancing offset, handing each
one to the bot as its own task. Per-user ordering is kept by the bot's
per-user lock, which tasks queue on in arrival order.
"""

import asyncio
import logging
from typing import Optional, Set

import httpx
from pydantic import ValidationError as ModelValidationError

from ..config import settings
from ..core.conversation.orchestrator import WalletBot
from ..providers.telegram import TelegramAPIError, TelegramTransport
from ..types.telegram import Update


class UpdatePoller:
    """Background task feeding Bot API updates into a ``WalletBot``."""

    def __init__(
        self,
        bot: WalletBot,
        transport: TelegramTransport,
        *,
        timeout: Optional[int] = None,
        retry_delay: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.bot = bot
        self.transport = transport
        self.timeout = settings.telegram_poll_timeout_seconds if timeout is None else timeout
        self.retry_delay = retry_delay
        self.logger = logger or logging.getLogger(__name__)
        self.offset: Optional[int] = None
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        # Webhook and getUpdates are mutually exclusive on the Bot API side
        await self.transport.delete_webhook()
        self.logger.info("Update poller starting")
        self._loop_task = asyncio.create_task(self._run_loop(), name="telegram-update-poller")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.logger.info("Update poller stopping")
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        self._inflight.clear()

    async def poll_once(self) -> int:
        """Fetch one batch and dispatch it; returns the number of updates dispatched."""
        batch = await self.transport.get_updates(offset=self.offset, timeout=self.timeout)
        dispatched = 0
        for raw in batch or []:
            update_id = raw.get("update_id")
            if isinstance(update_id, int):
                self.offset = update_id + 1
            try:
                update = Update.model_validate(raw)
            except ModelValidationError as e:
                self.logger.warning(f"Skipping malformed update {update_id}: {e.error_count()} errors")
                continue
            task = asyncio.create_task(self.bot.handle_update(update))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            dispatched += 1
        return dispatched

    async def _run_loop(self) -> None:
        try:
            while self._running:
                try:
                    await self.poll_once()
                except (TelegramAPIError, httpx.HTTPError) as exc:
                    self.logger.warning(f"getUpdates failed, retrying in {self.retry_delay}s: {exc}")
                    await asyncio.sleep(self.retry_delay)
        except asyncio.CancelledError:
            return
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"Update poller crashed: {exc}", exc_info=True)
            self._running = False
