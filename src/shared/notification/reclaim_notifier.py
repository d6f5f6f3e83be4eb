"""
Reclaim Notifier
================
Outbound `ReclaimCompleted` events to Discord (webhook embed) and Telegram.

Delivery is fire-and-forget: notify() schedules a task and returns at
once. Delivery failures are logged and never reach the reclaim path.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Set

import httpx
from telegram import Bot

from config.settings import Settings
from src.shared.system.logging import Logger


@dataclass
class ReclaimCompleted:
    operator: str
    amount_lamports: int
    account_count: int
    signature: str

    @property
    def amount_sol(self) -> float:
        return self.amount_lamports / 1e9


class ReclaimNotifier:
    """Best-effort notification sink."""

    def __init__(
        self,
        discord_webhook_url: Optional[str] = None,
        telegram_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
    ):
        self.discord_webhook_url = discord_webhook_url
        self.telegram_token = telegram_token
        self.telegram_chat_id = telegram_chat_id
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls) -> "ReclaimNotifier":
        return cls(
            discord_webhook_url=Settings.DISCORD_WEBHOOK_URL or None,
            telegram_token=Settings.TELEGRAM_BOT_TOKEN or None,
            telegram_chat_id=Settings.TELEGRAM_CHAT_ID or None,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.discord_webhook_url or (self.telegram_token and self.telegram_chat_id))

    def notify(self, event: ReclaimCompleted) -> Optional[asyncio.Task]:
        """Schedule delivery without waiting for it."""
        if not self.enabled:
            return None
        task = asyncio.create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for pending deliveries (shutdown / tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _deliver(self, event: ReclaimCompleted) -> None:
        if self.discord_webhook_url:
            try:
                await self.send_discord(event)
            except Exception as e:
                Logger.warning(f"⚠️ [NOTIFY] Discord delivery failed: {e}")
        if self.telegram_token and self.telegram_chat_id:
            try:
                await self.send_telegram(event)
            except Exception as e:
                Logger.warning(f"⚠️ [NOTIFY] Telegram delivery failed: {e}")

    async def send_discord(self, event: ReclaimCompleted) -> None:
        payload = {
            "embeds": [{
                "title": "♻️ Rent Reclaimed",
                "color": 0x00FF00,
                "fields": [
                    {"name": "Amount", "value": f"{event.amount_sol:.4f} SOL", "inline": True},
                    {"name": "Accounts", "value": str(event.account_count), "inline": True},
                    {"name": "Operator", "value": f"`{event.operator}`", "inline": False},
                    {"name": "Transaction",
                     "value": f"[View on Solscan](https://solscan.io/tx/{event.signature})",
                     "inline": False},
                ],
            }]
        }
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(self.discord_webhook_url, json=payload)
            response.raise_for_status()
        Logger.debug(f"[NOTIFY] Discord notified for {event.signature[:8]}...")

    async def send_telegram(self, event: ReclaimCompleted) -> None:
        text = (
            f"♻️ <b>Rent Reclaimed</b>\n"
            f"Amount: <code>{event.amount_sol:.4f} SOL</code>\n"
            f"Accounts: {event.account_count}\n"
            f"Tx: <a href=\"https://solscan.io/tx/{event.signature}\">{event.signature[:12]}...</a>"
        )
        async with Bot(self.telegram_token) as bot:
            await bot.send_message(chat_id=self.telegram_chat_id, text=text, parse_mode="HTML")
        Logger.debug(f"[NOTIFY] Telegram notified for {event.signature[:8]}...")
