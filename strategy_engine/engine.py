from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any, Callable, Mapping, Optional, Protocol

from .alerts import AlertEmitter, AlertWriteError
from .cache import ResponseCache
from .config import ConfigError
from .evaluator import strategy_fires
from .models import EngineConfig, RunResult, Strategy
from .notifier import NotificationDispatcher
from .resolver import IndicatorResolver
from .storage import Storage
from .telegram import TelegramClient
from .twelvedata import TwelveDataClient

logger = logging.getLogger("strategy_engine.engine")


class DataClient(Protocol):
    def fetch(self, endpoint: str, params: Mapping[str, Any]) -> Optional[Any]:
        ...

    def market_state(self, exchange: str = "NYSE") -> Optional[str]:
        ...

    def close(self) -> None:
        ...


class Engine:
    """Evaluates every running strategy once per ``run_once`` call.

    Runs are stateless: nothing is remembered between runs except what lives
    in storage (strategies, cache, alerts, settings). Per-symbol failures are
    logged and counted; only a missing API key or a failed strategy load stops
    a run.
    """

    def __init__(
        self,
        config: EngineConfig,
        storage: Storage,
        data_client: Optional[DataClient] = None,
        telegram: Optional[TelegramClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not config.api_key:
            raise ConfigError("Missing Twelve Data API key")
        self.config = config
        self.storage = storage
        self.data_client = data_client or TwelveDataClient(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.request_timeout,
        )
        self.cache = ResponseCache(storage, ttl_seconds=config.cache_ttl_seconds, clock=clock)
        self.resolver = IndicatorResolver(self.cache, self.data_client.fetch, max_workers=config.max_workers)
        self.emitter = AlertEmitter(storage)
        self.telegram = telegram or TelegramClient(dry_run=config.dry_run)
        self.dispatcher = NotificationDispatcher(storage, self.telegram)

    def close(self) -> None:
        self.resolver.close()
        self.data_client.close()
        self.telegram.close()

    def run_once(self) -> RunResult:
        result = RunResult()
        try:
            self.cache.purge_expired()
        except sqlite3.Error as exc:
            logger.warning("cache_purge_failed error=%s", str(exc))

        strategies = self.storage.list_running_strategies()
        result.strategies = len(strategies)
        logger.info("engine_run_begin strategies=%d", len(strategies))

        for strategy in strategies:
            if strategy.is_inert:
                result.inert += 1
                logger.info(
                    "strategy_skipped strategy_id=%s reason=inert symbols=%d conditions=%d",
                    strategy.id,
                    len(strategy.symbols),
                    len(strategy.conditions),
                )
                continue

            logger.info(
                "strategy_begin strategy_id=%s name=%s timeframe=%s symbols=%d",
                strategy.id,
                strategy.name,
                strategy.timeframe,
                len(strategy.symbols),
            )
            for symbol in strategy.symbols:
                try:
                    self._process_symbol(strategy, symbol, result)
                except Exception:
                    result.errors += 1
                    logger.exception("symbol_failed strategy_id=%s symbol=%s", strategy.id, symbol)

        logger.info(
            "engine_run_end strategies=%d inert=%d evaluated=%d alerts=%d notified=%d notify_failed=%d skipped=%d errors=%d",
            result.strategies,
            result.inert,
            result.evaluated,
            result.alerts,
            result.notified,
            result.notify_failed,
            result.skipped,
            result.errors,
        )
        return result

    def market_status(self, exchange: str = "NYSE") -> Optional[str]:
        return self.data_client.market_state(exchange)

    def _process_symbol(self, strategy: Strategy, symbol: str, result: RunResult) -> None:
        resolution = self.resolver.resolve(symbol, strategy.timeframe, strategy.conditions)
        if resolution.price is None:
            result.skipped += 1
            logger.info("symbol_skipped strategy_id=%s symbol=%s reason=no_price", strategy.id, symbol)
            return

        result.evaluated += 1
        if not strategy_fires(resolution.price, resolution.values, strategy.conditions):
            logger.info("symbol_evaluated strategy_id=%s symbol=%s fired=false", strategy.id, symbol)
            return

        logger.info(
            "symbol_evaluated strategy_id=%s symbol=%s fired=true price=%.4f",
            strategy.id,
            symbol,
            resolution.price,
        )
        try:
            self.emitter.emit(strategy, symbol, resolution.price, resolution.data_timestamp)
        except AlertWriteError as exc:
            result.errors += 1
            logger.error("symbol_alert_failed error=%s", str(exc))
            return
        result.alerts += 1

        outcome = self.dispatcher.notify_user(strategy.user_id, strategy.name, symbol, resolution.price)
        if outcome.status == "sent":
            result.notified += 1
            logger.info("notify_sent strategy_id=%s symbol=%s", strategy.id, symbol)
        elif not outcome.ok:
            result.notify_failed += 1
            logger.error(
                "notify_failed strategy_id=%s symbol=%s error=%s",
                strategy.id,
                symbol,
                outcome.detail,
            )
        else:
            logger.info(
                "notify_skipped strategy_id=%s symbol=%s reason=%s",
                strategy.id,
                symbol,
                outcome.detail,
            )
