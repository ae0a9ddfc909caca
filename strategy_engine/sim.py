from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

from .indicators import INDICATOR_SPECS, IndicatorSpec

logger = logging.getLogger("strategy_engine.sim")

DEFAULT_SIM_DATETIME = "2024-01-02 15:30:00"


class SimJSONSource:
    """Offline market data loaded from one JSON file.

    Layout::

        {
          "_market": {"is_market_open": true},
          "AAPL": {"datetime": "2024-01-02 15:30:00", "price": 150.0, "RSI": 25.4}
        }

    Indicator keys use the canonical names (RSI, SMA50, BB_UPPER, ...).
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._data: Dict[str, Dict[str, Any]] = {}
        self._market: Optional[Dict[str, Any]] = None
        self._load()

    def _load(self) -> None:
        with open(self.path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, dict):
            raise ValueError(f"{self.path}: expected an object keyed by symbol")
        for key, values in payload.items():
            if not isinstance(values, dict):
                continue
            if key == "_market":
                self._market = values
                continue
            self._data[str(key).strip().upper()] = values

    def snapshot(self, symbol: str) -> Optional[Dict[str, Any]]:
        return self._data.get(symbol.strip().upper())

    def market(self) -> Optional[Dict[str, Any]]:
        return self._market


class SimClient:
    """Drop-in replacement for TwelveDataClient that answers from a SimJSONSource."""

    def __init__(self, source: SimJSONSource) -> None:
        self.source = source

    def close(self) -> None:
        pass

    def fetch(self, endpoint: str, params: Mapping[str, Any]) -> Optional[Any]:
        snapshot = self.source.snapshot(str(params.get("symbol", "")))
        if snapshot is None:
            logger.info("sim_fetch endpoint=%s symbol=%s action=no_data", endpoint, params.get("symbol", ""))
            return None

        if endpoint == "price":
            if snapshot.get("price") is None:
                return None
            return {"price": str(snapshot["price"])}

        spec = _match_spec(endpoint, params)
        if spec is None:
            return None
        item: Dict[str, str] = {"datetime": str(snapshot.get("datetime", DEFAULT_SIM_DATETIME))}
        for name, field in spec.outputs:
            if snapshot.get(name) is not None:
                item[field] = str(snapshot[name])
        if len(item) == 1:
            return None
        return {"status": "ok", "values": [item]}

    def market_state(self, exchange: str = "NYSE") -> Optional[str]:
        market = self.source.market()
        if market is None:
            return None
        return "Open" if market.get("is_market_open") else "Closed"


def _match_spec(endpoint: str, params: Mapping[str, Any]) -> Optional[IndicatorSpec]:
    for spec in INDICATOR_SPECS.values():
        if spec.endpoint != endpoint:
            continue
        if all(str(params.get(k)) == v for k, v in spec.params):
            return spec
    return None
