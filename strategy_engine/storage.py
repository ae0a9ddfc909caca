from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from typing import List, Optional

from .constants import STATUS_RUNNING, STRATEGY_STATUSES, TIMEFRAME_INTERVALS
from .indicators import InvalidCondition
from .models import Alert, CacheEntry, NotificationSettings, Strategy
from .strategies import normalize_symbols, parse_conditions

logger = logging.getLogger("strategy_engine.storage")


class StrategyLoadError(Exception):
    pass


class Storage:
    """SQLite-backed store shared by the engine and the dashboard.

    One connection is shared across threads; every statement runs under a
    lock so cache reads and writes from fetch workers are serialized.
    """

    def __init__(self, path: str = "strategy_engine.db") -> None:
        self.path = path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS strategies(
                    id TEXT NOT NULL PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    timeframe TEXT NOT NULL,
                    symbols TEXT NOT NULL,
                    conditions TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS alerts(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    strategy_id TEXT NOT NULL,
                    strategy_name TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    price REAL NOT NULL,
                    type TEXT NOT NULL,
                    data_timestamp INTEGER,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notification_settings(
                    user_id TEXT NOT NULL PRIMARY KEY,
                    bot_token TEXT NOT NULL,
                    chat_id TEXT NOT NULL,
                    enabled INTEGER NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS api_cache(
                    request_key TEXT NOT NULL PRIMARY KEY,
                    response_data TEXT NOT NULL,
                    expires_at INTEGER NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_alerts_user ON alerts(user_id, created_at)")
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # strategies

    def save_strategy(self, strategy: Strategy) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO strategies(id, user_id, name, description, status, timeframe, symbols, conditions, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id=excluded.user_id,
                    name=excluded.name,
                    description=excluded.description,
                    status=excluded.status,
                    timeframe=excluded.timeframe,
                    symbols=excluded.symbols,
                    conditions=excluded.conditions,
                    updated_at=excluded.updated_at
                """,
                (
                    strategy.id,
                    strategy.user_id,
                    strategy.name,
                    strategy.description,
                    strategy.status,
                    strategy.timeframe,
                    json.dumps(list(strategy.symbols)),
                    json.dumps([c.to_dict() for c in strategy.conditions]),
                    int(time.time()),
                ),
            )
            self._conn.commit()

    def get_strategy(self, strategy_id: str) -> Optional[Strategy]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM strategies WHERE id = ?", (strategy_id,)).fetchone()
        if not row:
            return None
        return _row_to_strategy(row)

    def list_strategies(self, user_id: Optional[str] = None) -> List[Strategy]:
        with self._lock:
            if user_id is None:
                rows = self._conn.execute("SELECT * FROM strategies ORDER BY name").fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM strategies WHERE user_id = ? ORDER BY name",
                    (user_id,),
                ).fetchall()
        return [_row_to_strategy(row) for row in rows]

    def list_running_strategies(self) -> List[Strategy]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT * FROM strategies WHERE status = ? ORDER BY rowid",
                    (STATUS_RUNNING,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StrategyLoadError(f"failed to load running strategies: {exc}") from exc
        return [_row_to_strategy(row) for row in rows]

    def set_strategy_status(self, strategy_id: str, status: str) -> bool:
        if status not in STRATEGY_STATUSES:
            raise ValueError(f"unsupported status: {status!r}")
        with self._lock:
            cur = self._conn.execute(
                "UPDATE strategies SET status = ?, updated_at = ? WHERE id = ?",
                (status, int(time.time()), strategy_id),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def delete_strategy(self, strategy_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM strategies WHERE id = ?", (strategy_id,))
            self._conn.commit()
        return cur.rowcount > 0

    # alerts

    def insert_alert(self, alert: Alert) -> Alert:
        created_at = alert.created_at or int(time.time())
        with self._lock:
            cur = self._conn.execute(
                """
                INSERT INTO alerts(user_id, strategy_id, strategy_name, symbol, price, type, data_timestamp, is_read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    alert.user_id,
                    alert.strategy_id,
                    alert.strategy_name,
                    alert.symbol,
                    alert.price,
                    alert.type,
                    alert.data_timestamp,
                    int(alert.is_read),
                    created_at,
                ),
            )
            self._conn.commit()
        return Alert(
            id=int(cur.lastrowid),
            user_id=alert.user_id,
            strategy_id=alert.strategy_id,
            strategy_name=alert.strategy_name,
            symbol=alert.symbol,
            price=alert.price,
            type=alert.type,
            data_timestamp=alert.data_timestamp,
            is_read=alert.is_read,
            created_at=created_at,
        )

    def list_alerts(self, user_id: str, unread_only: bool = False, limit: int = 200) -> List[Alert]:
        sql = "SELECT * FROM alerts WHERE user_id = ?"
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        with self._lock:
            rows = self._conn.execute(sql, (user_id, limit)).fetchall()
        return [_row_to_alert(row) for row in rows]

    def mark_alert_read(self, alert_id: int) -> bool:
        with self._lock:
            cur = self._conn.execute("UPDATE alerts SET is_read = 1 WHERE id = ?", (alert_id,))
            self._conn.commit()
        return cur.rowcount > 0

    def mark_all_alerts_read(self, user_id: str) -> int:
        with self._lock:
            cur = self._conn.execute(
                "UPDATE alerts SET is_read = 1 WHERE user_id = ? AND is_read = 0",
                (user_id,),
            )
            self._conn.commit()
        return cur.rowcount

    # notification settings

    def save_notification_settings(self, settings: NotificationSettings) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO notification_settings(user_id, bot_token, chat_id, enabled)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    bot_token=excluded.bot_token,
                    chat_id=excluded.chat_id,
                    enabled=excluded.enabled
                """,
                (settings.user_id, settings.bot_token, settings.chat_id, int(settings.enabled)),
            )
            self._conn.commit()

    def get_notification_settings(self, user_id: str) -> Optional[NotificationSettings]:
        with self._lock:
            row = self._conn.execute(
                "SELECT user_id, bot_token, chat_id, enabled FROM notification_settings WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return NotificationSettings(
            user_id=str(row["user_id"]),
            bot_token=str(row["bot_token"]),
            chat_id=str(row["chat_id"]),
            enabled=bool(row["enabled"]),
        )

    # api cache

    def get_cache_entry(self, request_key: str, now_ts: int) -> Optional[CacheEntry]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT request_key, response_data, expires_at FROM api_cache
                WHERE request_key = ? AND expires_at > ?
                """,
                (request_key, now_ts),
            ).fetchone()
        if not row:
            return None
        return CacheEntry(
            request_key=str(row["request_key"]),
            payload=json.loads(row["response_data"]),
            expires_at=int(row["expires_at"]),
        )

    def upsert_cache_entry(self, entry: CacheEntry) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO api_cache(request_key, response_data, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(request_key) DO UPDATE SET
                    response_data=excluded.response_data,
                    expires_at=excluded.expires_at
                """,
                (entry.request_key, json.dumps(entry.payload), entry.expires_at),
            )
            self._conn.commit()

    def purge_expired_cache(self, now_ts: int) -> int:
        with self._lock:
            cur = self._conn.execute("DELETE FROM api_cache WHERE expires_at <= ?", (now_ts,))
            self._conn.commit()
        return cur.rowcount


def _row_to_strategy(row: sqlite3.Row) -> Strategy:
    strategy_id = str(row["id"])
    timeframe = str(row["timeframe"])
    try:
        conditions = parse_conditions(json.loads(row["conditions"]))
    except (InvalidCondition, ValueError, TypeError) as exc:
        logger.warning("strategy_conditions_invalid strategy_id=%s error=%s", strategy_id, str(exc))
        conditions = ()
    try:
        symbols = normalize_symbols(json.loads(row["symbols"]))
    except (ValueError, TypeError) as exc:
        logger.warning("strategy_symbols_invalid strategy_id=%s error=%s", strategy_id, str(exc))
        symbols = ()
    if timeframe not in TIMEFRAME_INTERVALS:
        logger.warning("strategy_timeframe_invalid strategy_id=%s timeframe=%s", strategy_id, timeframe)
        conditions = ()
    return Strategy(
        id=strategy_id,
        user_id=str(row["user_id"]),
        name=str(row["name"]),
        description=str(row["description"]),
        status=str(row["status"]),
        timeframe=timeframe,
        symbols=symbols,
        conditions=conditions,
    )


def _row_to_alert(row: sqlite3.Row) -> Alert:
    data_ts = row["data_timestamp"]
    return Alert(
        id=int(row["id"]),
        user_id=str(row["user_id"]),
        strategy_id=str(row["strategy_id"]),
        strategy_name=str(row["strategy_name"]),
        symbol=str(row["symbol"]),
        price=float(row["price"]),
        type=str(row["type"]),
        data_timestamp=int(data_ts) if data_ts is not None else None,
        is_read=bool(row["is_read"]),
        created_at=int(row["created_at"]),
    )
