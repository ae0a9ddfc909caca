from __future__ import annotations

import uuid
from typing import Any, Iterable, List, Mapping, Tuple

import yaml

from .constants import DEFAULT_TIMEFRAME, STATUS_STOPPED, STRATEGY_STATUSES, TIMEFRAME_INTERVALS
from .indicators import InvalidCondition, parse_condition
from .models import Condition, Strategy


class InvalidStrategy(ValueError):
    pass


def normalize_symbols(raw: Any) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = raw.split(",")
    out: List[str] = []
    for item in raw:
        symbol = str(item).strip().upper()
        if symbol and symbol not in out:
            out.append(symbol)
    return tuple(out)


def parse_conditions(raw: Iterable[Mapping[str, Any]] | None) -> Tuple[Condition, ...]:
    return tuple(parse_condition(item) for item in (raw or []))


def build_strategy(raw: Mapping[str, Any]) -> Strategy:
    """Validate an editor/import payload into a Strategy.

    Raises InvalidStrategy for an unknown timeframe or status, or for any
    condition that cannot be parsed.
    """
    name = str(raw.get("name") or "").strip()
    if not name:
        raise InvalidStrategy("strategy name is required")
    user_id = str(raw.get("user_id") or "").strip()
    if not user_id:
        raise InvalidStrategy(f"strategy {name!r} has no user_id")

    timeframe = str(raw.get("timeframe") or DEFAULT_TIMEFRAME).strip()
    if timeframe not in TIMEFRAME_INTERVALS:
        raise InvalidStrategy(f"strategy {name!r} has unsupported timeframe {timeframe!r}")

    status = str(raw.get("status") or STATUS_STOPPED).strip().lower()
    if status not in STRATEGY_STATUSES:
        raise InvalidStrategy(f"strategy {name!r} has unsupported status {status!r}")

    try:
        conditions = parse_conditions(raw.get("conditions"))
    except InvalidCondition as exc:
        raise InvalidStrategy(f"strategy {name!r}: {exc}") from exc

    return Strategy(
        id=str(raw.get("id") or uuid.uuid4().hex),
        user_id=user_id,
        name=name,
        description=str(raw.get("description") or ""),
        status=status,
        timeframe=timeframe,
        symbols=normalize_symbols(raw.get("symbols")),
        conditions=conditions,
    )


def load_strategies_file(path: str) -> List[Strategy]:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    items = raw.get("strategies", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise InvalidStrategy(f"{path}: expected a list of strategies")
    return [build_strategy(item) for item in items]
