from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timezone
from typing import Optional

from .models import NotificationSettings, NotifyResult
from .storage import Storage
from .telegram import TelegramClient, TelegramSendError


def format_signal_message(strategy_name: str, symbol: str, price: float, ts: Optional[int] = None) -> str:
    when = datetime.fromtimestamp(ts if ts is not None else time.time(), tz=timezone.utc)
    return (
        "STRATEGY ALERT\n"
        f"Strategy: {strategy_name}\n"
        f"Symbol: {symbol}\n"
        f"Price: {price:.2f}\n"
        f"Time: {when.strftime('%Y-%m-%d %H:%M UTC')}"
    )


class NotificationDispatcher:
    """Best-effort Telegram fan-out for fired strategies.

    ``notify`` never raises; the outcome is reported as a NotifyResult so the
    caller can log it. A failed send is not retried and does not affect the
    alert that was already stored.
    """

    def __init__(self, storage: Storage, telegram: TelegramClient) -> None:
        self.storage = storage
        self.telegram = telegram

    def notify_user(self, user_id: str, strategy_name: str, symbol: str, price: float) -> NotifyResult:
        try:
            settings = self.storage.get_notification_settings(user_id)
        except sqlite3.Error as exc:
            return NotifyResult.failed(f"settings_unavailable:{exc}")
        return self.notify(settings, strategy_name, symbol, price)

    def notify(
        self,
        settings: Optional[NotificationSettings],
        strategy_name: str,
        symbol: str,
        price: float,
    ) -> NotifyResult:
        if settings is None:
            return NotifyResult.skipped("no_settings")
        if not settings.enabled:
            return NotifyResult.skipped("disabled")
        if not settings.is_complete:
            return NotifyResult.skipped("incomplete_settings")

        message = format_signal_message(strategy_name, symbol, price)
        try:
            self.telegram.send_message(settings.bot_token, settings.chat_id, message)
        except TelegramSendError as exc:
            return NotifyResult.failed(str(exc))
        return NotifyResult.sent()
