from __future__ import annotations

import math
from typing import Mapping, Optional, Sequence

from .indicators import PRICE
from .models import Condition, IndicatorRef, Operator


def _read(name: str, price: Optional[float], values: Mapping[str, Optional[float]]) -> Optional[float]:
    if name == PRICE:
        return price
    return values.get(name)


def evaluate(price: Optional[float], values: Mapping[str, Optional[float]], condition: Condition) -> bool:
    """Evaluate one condition against resolved data.

    Missing or NaN operands make the condition false. ``crosses_above`` and
    ``crosses_below`` compare the current levels only; a strategy keeps firing
    on every run while the relation holds.
    """
    left = _read(condition.indicator, price, values)
    if isinstance(condition.rhs, IndicatorRef):
        right = _read(condition.rhs.name, price, values)
    else:
        right = condition.rhs.value

    if left is None or right is None or math.isnan(left) or math.isnan(right):
        return False

    if condition.operator in (Operator.GT, Operator.CROSSES_ABOVE):
        return left > right
    if condition.operator in (Operator.LT, Operator.CROSSES_BELOW):
        return left < right
    return False


def strategy_fires(
    price: Optional[float],
    values: Mapping[str, Optional[float]],
    conditions: Sequence[Condition],
) -> bool:
    if not conditions:
        return False
    return all(evaluate(price, values, cond) for cond in conditions)
