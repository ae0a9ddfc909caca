from __future__ import annotations

import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest

from strategy_engine.engine import Engine
from strategy_engine.models import EngineConfig, NotificationSettings
from strategy_engine.storage import Storage
from strategy_engine.strategies import build_strategy
from strategy_engine.telegram import TelegramSendError

LATEST_DT = "2024-01-02 15:30:00"
LATEST_TS = 1704209400
PREVIOUS_DT = "2024-01-02 14:30:00"


class FakeMarketData:
    """Records every provider call and answers from in-memory tables.

    ``series`` is keyed by (symbol, endpoint, time_period) where time_period is
    None for endpoints without one (stoch, macd).
    """

    def __init__(
        self,
        prices: Optional[Dict[str, Optional[float]]] = None,
        series: Optional[Dict[Tuple[str, str, Optional[str]], Optional[Dict[str, Any]]]] = None,
        datetimes: Optional[Dict[Tuple[str, str], str]] = None,
        market: Optional[bool] = True,
    ) -> None:
        self.prices = prices or {}
        self.series = series or {}
        self.datetimes = datetimes or {}
        self.market = market
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.Lock()
        self.closed = False

    def fetch(self, endpoint: str, params: Mapping[str, Any]) -> Optional[Any]:
        with self._lock:
            self.calls.append((endpoint, dict(params)))
        symbol = params["symbol"]
        if endpoint == "price":
            price = self.prices.get(symbol)
            return None if price is None else {"price": str(price)}

        fields = self.series.get((symbol, endpoint, params.get("time_period")))
        if fields is None:
            return None
        latest = {"datetime": self.datetimes.get((symbol, endpoint), LATEST_DT)}
        latest.update({k: str(v) for k, v in fields.items()})
        previous = {"datetime": PREVIOUS_DT}
        previous.update({k: "0" for k in fields})
        return {"status": "ok", "values": [latest, previous]}

    def market_state(self, exchange: str = "NYSE") -> Optional[str]:
        if self.market is None:
            return None
        return "Open" if self.market else "Closed"

    def close(self) -> None:
        self.closed = True

    def count(self, endpoint: str, symbol: Optional[str] = None, time_period: Optional[str] = None) -> int:
        return sum(
            1
            for ep, params in self.calls
            if ep == endpoint
            and (symbol is None or params.get("symbol") == symbol)
            and (time_period is None or params.get("time_period") == time_period)
        )


class FakeTelegram:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []
        self.closed = False

    def send_message(self, token: str, chat_id: str, text: str) -> None:
        self.sent.append((token, chat_id, text))
        if self.fail:
            raise TelegramSendError("telegram_send_failed status=403 detail=Forbidden: bot was blocked by the user")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def storage():
    store = Storage(":memory:")
    yield store
    store.close()


@pytest.fixture
def telegram():
    return FakeTelegram()


def add_strategy(storage: Storage, **overrides: Any):
    raw: Dict[str, Any] = {
        "id": "s1",
        "user_id": "u1",
        "name": "AAPL oversold",
        "status": "running",
        "timeframe": "1h",
        "symbols": ["AAPL"],
        "conditions": [{"indicator": "RSI", "operator": "<", "value": "30"}],
    }
    raw.update(overrides)
    strategy = build_strategy(raw)
    storage.save_strategy(strategy)
    return strategy


def enable_telegram(storage: Storage, user_id: str = "u1", enabled: bool = True) -> None:
    storage.save_notification_settings(
        NotificationSettings(user_id=user_id, bot_token="123:abc", chat_id="42", enabled=enabled)
    )


def make_engine(storage: Storage, market: FakeMarketData, telegram: FakeTelegram, clock=None) -> Engine:
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    return Engine(
        EngineConfig(api_key="test-key", max_workers=4),
        storage,
        data_client=market,
        telegram=telegram,  # type: ignore[arg-type]
        **kwargs,
    )
