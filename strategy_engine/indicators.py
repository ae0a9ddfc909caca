"""Canonical indicator registry.

Every place that needs to know whether a string names an indicator (condition
parsing, fetch planning, evaluation) goes through this module.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .constants import (
    BBANDS_PERIOD,
    BBANDS_SD,
    MACD_FAST_PERIOD,
    MACD_SIGNAL_PERIOD,
    MACD_SLOW_PERIOD,
    RSI_PERIOD,
    STOCH_FAST_K_PERIOD,
    STOCH_SLOW_D_PERIOD,
    STOCH_SLOW_K_PERIOD,
)
from .models import Condition, IndicatorRef, Literal, Operand, Operator

PRICE = "Price"


class InvalidCondition(ValueError):
    pass


@dataclass(frozen=True)
class IndicatorSpec:
    """One provider call and the indicator names it populates."""

    endpoint: str
    params: Tuple[Tuple[str, str], ...]
    # indicator name -> field in each series item
    outputs: Tuple[Tuple[str, str], ...]

    def request_params(self, symbol: str, interval: str) -> Dict[str, str]:
        params = {"symbol": symbol, "interval": interval}
        params.update(dict(self.params))
        return params

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.outputs]


def _spec(endpoint: str, outputs: Mapping[str, str], **params: Any) -> IndicatorSpec:
    return IndicatorSpec(
        endpoint=endpoint,
        params=tuple(sorted((k, str(v)) for k, v in params.items())),
        outputs=tuple(outputs.items()),
    )


_BBANDS = _spec(
    "bbands",
    {"BB_UPPER": "upper_band", "BB_MIDDLE": "middle_band", "BB_LOWER": "lower_band"},
    time_period=BBANDS_PERIOD,
    sd=BBANDS_SD,
    ma_type="SMA",
    series_type="close",
)

INDICATOR_SPECS: Dict[str, IndicatorSpec] = {
    "RSI": _spec("rsi", {"RSI": "rsi"}, time_period=RSI_PERIOD, series_type="close"),
    "SMA50": _spec("sma", {"SMA50": "sma"}, time_period=50, series_type="close"),
    "SMA200": _spec("sma", {"SMA200": "sma"}, time_period=200, series_type="close"),
    "EMA20": _spec("ema", {"EMA20": "ema"}, time_period=20, series_type="close"),
    "EMA50": _spec("ema", {"EMA50": "ema"}, time_period=50, series_type="close"),
    "MACD": _spec(
        "macd",
        {"MACD": "macd"},
        fast_period=MACD_FAST_PERIOD,
        slow_period=MACD_SLOW_PERIOD,
        signal_period=MACD_SIGNAL_PERIOD,
        series_type="close",
    ),
    "STOCH": _spec(
        "stoch",
        {"STOCH": "slow_k"},
        fast_k_period=STOCH_FAST_K_PERIOD,
        slow_k_period=STOCH_SLOW_K_PERIOD,
        slow_d_period=STOCH_SLOW_D_PERIOD,
    ),
    "BB_UPPER": _BBANDS,
    "BB_MIDDLE": _BBANDS,
    "BB_LOWER": _BBANDS,
}

KNOWN_INDICATORS: Tuple[str, ...] = (PRICE,) + tuple(INDICATOR_SPECS)

_BY_UPPER = {name.upper(): name for name in KNOWN_INDICATORS}
# Spellings the strategy editor and chat parser have produced over time.
_ALIASES = {
    "BBANDS_UPPER": "BB_UPPER",
    "BBANDS_MIDDLE": "BB_MIDDLE",
    "BBANDS_LOWER": "BB_LOWER",
    "UPPER_BB": "BB_UPPER",
    "MIDDLE_BB": "BB_MIDDLE",
    "LOWER_BB": "BB_LOWER",
}


def canonical_indicator(name: str) -> Optional[str]:
    key = str(name).strip().upper().replace(" ", "_")
    if key in _BY_UPPER:
        return _BY_UPPER[key]
    return _ALIASES.get(key)


def resolve_operand(raw: Any) -> Operand:
    """Turn a condition's ``value`` into an indicator reference or a number."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return Literal(float(raw))
    text = str(raw).strip()
    name = canonical_indicator(text)
    if name is not None:
        return IndicatorRef(name)
    try:
        return Literal(float(text))
    except ValueError:
        raise InvalidCondition(f"value is neither a number nor an indicator: {raw!r}") from None


def parse_operator(raw: Any) -> Operator:
    text = str(raw).strip().lower().replace(" ", "_")
    try:
        return Operator(text)
    except ValueError:
        raise InvalidCondition(f"unsupported operator: {raw!r}") from None


def parse_condition(raw: Mapping[str, Any]) -> Condition:
    if not isinstance(raw, Mapping):
        raise InvalidCondition(f"condition must be a mapping, got {type(raw).__name__}")
    indicator = canonical_indicator(raw.get("indicator", ""))
    if indicator is None:
        raise InvalidCondition(f"unknown indicator: {raw.get('indicator')!r}")
    if "value" not in raw or raw["value"] is None:
        raise InvalidCondition("condition is missing a value")
    return Condition(
        indicator=indicator,
        operator=parse_operator(raw.get("operator", "")),
        rhs=resolve_operand(raw["value"]),
    )


def referenced_indicators(conditions: Iterable[Condition]) -> List[str]:
    """Indicator names (excluding Price) the conditions read, in first-seen order."""
    seen: List[str] = []
    for cond in conditions:
        names = [cond.indicator]
        if isinstance(cond.rhs, IndicatorRef):
            names.append(cond.rhs.name)
        for name in names:
            if name != PRICE and name not in seen:
                seen.append(name)
    return seen


def required_specs(conditions: Iterable[Condition]) -> List[IndicatorSpec]:
    specs: List[IndicatorSpec] = []
    for name in referenced_indicators(conditions):
        spec = INDICATOR_SPECS[name]
        if spec not in specs:
            specs.append(spec)
    return specs


def to_number(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    return value
