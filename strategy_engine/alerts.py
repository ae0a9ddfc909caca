from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from .constants import ALERT_TYPE_SIGNAL
from .models import Alert, Strategy
from .storage import Storage

logger = logging.getLogger("strategy_engine.alerts")


class AlertWriteError(Exception):
    pass


class AlertEmitter:
    """Appends one alert row per firing.

    Rows are never updated or deduplicated here: a strategy whose conditions
    stay true fires again on the next run.
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def emit(
        self,
        strategy: Strategy,
        symbol: str,
        price: float,
        data_timestamp: Optional[int],
    ) -> Alert:
        alert = Alert(
            id=None,
            user_id=strategy.user_id,
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            symbol=symbol,
            price=price,
            type=ALERT_TYPE_SIGNAL,
            data_timestamp=data_timestamp,
        )
        try:
            stored = self.storage.insert_alert(alert)
        except sqlite3.Error as exc:
            raise AlertWriteError(f"alert_write_failed strategy_id={strategy.id} symbol={symbol}: {exc}") from exc
        logger.info(
            "alert_created alert_id=%s strategy_id=%s symbol=%s price=%.4f",
            stored.id,
            strategy.id,
            symbol,
            price,
        )
        return stored
