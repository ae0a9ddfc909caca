from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .cache import Fetcher, ResponseCache
from .constants import DEFAULT_MAX_WORKERS, TIMEFRAME_INTERVALS
from .indicators import IndicatorSpec, referenced_indicators, required_specs, to_number
from .models import MISSING_POINT, Condition, IndicatorPoint, Resolution
from .twelvedata import parse_datetime

logger = logging.getLogger("strategy_engine.resolver")

PRICE_ENDPOINT = "price"


def parse_price(payload: Any) -> Optional[float]:
    if not isinstance(payload, dict):
        return None
    return to_number(payload.get("price"))


def extract_latest(payload: Any, spec: IndicatorSpec) -> Dict[str, IndicatorPoint]:
    """Read the newest item of a provider series for every output of ``spec``.

    Series are most-recent-first, so the newest item is ``values[0]``.
    """
    values = payload.get("values") if isinstance(payload, dict) else None
    if not isinstance(values, list) or not values or not isinstance(values[0], dict):
        return {name: MISSING_POINT for name in spec.names}

    latest = values[0]
    as_of = parse_datetime(str(latest.get("datetime", "")))
    return {
        name: IndicatorPoint(value=to_number(latest.get(field)), as_of=as_of)
        for name, field in spec.outputs
    }


class IndicatorResolver:
    """Fetches a symbol's price and indicators concurrently through the cache.

    The worker pool lives as long as the resolver; call ``close`` to stop it.
    """

    def __init__(
        self,
        cache: ResponseCache,
        fetcher: Fetcher,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.max_workers = max(1, max_workers)
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="fetch")

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def resolve(self, symbol: str, timeframe: str, conditions: Sequence[Condition]) -> Resolution:
        interval = TIMEFRAME_INTERVALS[timeframe]
        specs = required_specs(conditions)

        price_future = self._pool.submit(self._fetch, PRICE_ENDPOINT, {"symbol": symbol})
        pending: List[Tuple[IndicatorSpec, Future]] = [
            (spec, self._pool.submit(self._fetch, spec.endpoint, spec.request_params(symbol, interval)))
            for spec in specs
        ]
        price = parse_price(price_future.result())
        if price is None:
            for _, future in pending:
                future.cancel()
            wait([future for _, future in pending])
            logger.info("resolve_symbol symbol=%s action=no_price", symbol)
            return Resolution(price=None, values={}, data_timestamp=None)
        payloads = [(spec, future.result()) for spec, future in pending]

        points: Dict[str, IndicatorPoint] = {}
        for spec, payload in payloads:
            points.update(extract_latest(payload, spec))

        values: Dict[str, Optional[float]] = {}
        for name in referenced_indicators(conditions):
            values[name] = points.get(name, MISSING_POINT).value
        for name, point in points.items():
            values.setdefault(name, point.value)

        stamps = [p.as_of for p in points.values() if p.as_of is not None]
        data_timestamp = min(stamps) if stamps else None

        missing = sorted(name for name, value in values.items() if value is None)
        logger.info(
            "resolve_symbol symbol=%s action=resolved price=%.4f indicators=%d missing=%s",
            symbol,
            price,
            len(values),
            ",".join(missing) or "-",
        )
        return Resolution(price=price, values=values, data_timestamp=data_timestamp)

    def _fetch(self, endpoint: str, params: Mapping[str, Any]) -> Optional[Any]:
        try:
            return self.cache.get_or_fetch(endpoint, params, self.fetcher)
        except Exception:
            logger.exception("resolve_fetch_failed endpoint=%s symbol=%s", endpoint, params.get("symbol", ""))
            return None
