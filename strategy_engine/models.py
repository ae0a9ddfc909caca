from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .constants import (
    ALERT_TYPE_SIGNAL,
    CACHE_TTL_SECONDS,
    DEFAULT_MAX_WORKERS,
    REQUEST_TIMEOUT_SECONDS,
    STATUS_RUNNING,
    TWELVEDATA_BASE_URL,
)


class Operator(str, Enum):
    GT = ">"
    LT = "<"
    # Level checks, not true crossings: no previous values are kept between runs.
    CROSSES_ABOVE = "crosses_above"
    CROSSES_BELOW = "crosses_below"


@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class IndicatorRef:
    name: str


Operand = Union[Literal, IndicatorRef]


@dataclass(frozen=True)
class Condition:
    indicator: str
    operator: Operator
    rhs: Operand

    def to_dict(self) -> dict[str, str]:
        if isinstance(self.rhs, IndicatorRef):
            value = self.rhs.name
        else:
            value = repr(self.rhs.value)
        return {"indicator": self.indicator, "operator": self.operator.value, "value": value}


@dataclass(frozen=True)
class Strategy:
    id: str
    user_id: str
    name: str
    description: str
    status: str
    timeframe: str
    symbols: Tuple[str, ...]
    conditions: Tuple[Condition, ...]

    @property
    def is_inert(self) -> bool:
        return not self.symbols or not self.conditions

    @property
    def is_running(self) -> bool:
        return self.status == STATUS_RUNNING


@dataclass(frozen=True)
class IndicatorPoint:
    value: Optional[float]
    as_of: Optional[int]


MISSING_POINT = IndicatorPoint(value=None, as_of=None)


@dataclass(frozen=True)
class Resolution:
    price: Optional[float]
    values: Dict[str, Optional[float]]
    data_timestamp: Optional[int]


@dataclass(frozen=True)
class CacheEntry:
    request_key: str
    payload: dict
    expires_at: int


@dataclass(frozen=True)
class Alert:
    id: Optional[int]
    user_id: str
    strategy_id: str
    strategy_name: str
    symbol: str
    price: float
    type: str = ALERT_TYPE_SIGNAL
    data_timestamp: Optional[int] = None
    is_read: bool = False
    created_at: int = 0


@dataclass(frozen=True)
class NotificationSettings:
    user_id: str
    bot_token: str
    chat_id: str
    enabled: bool

    @property
    def is_complete(self) -> bool:
        return bool(self.bot_token.strip() and self.chat_id.strip())


@dataclass(frozen=True)
class NotifyResult:
    ok: bool
    status: str
    detail: str = ""

    @classmethod
    def sent(cls) -> "NotifyResult":
        return cls(True, "sent")

    @classmethod
    def skipped(cls, reason: str) -> "NotifyResult":
        return cls(True, "skipped", reason)

    @classmethod
    def failed(cls, detail: str) -> "NotifyResult":
        return cls(False, "failed", detail)


@dataclass
class RunResult:
    strategies: int = 0
    inert: int = 0
    evaluated: int = 0
    alerts: int = 0
    notified: int = 0
    notify_failed: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "strategies": self.strategies,
            "inert": self.inert,
            "evaluated": self.evaluated,
            "alerts": self.alerts,
            "notified": self.notified,
            "notify_failed": self.notify_failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class EngineConfig:
    api_key: str
    base_url: str = TWELVEDATA_BASE_URL
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS
    dry_run: bool = False


@dataclass
class Config:
    dry_run: bool
    db_path: str
    twelvedata_api_key_env: str
    twelvedata_api_key: str
    twelvedata_base_url: str
    twelvedata_timeout_seconds: float
    engine_secret_env: str
    engine_secret: str
    cache_ttl_seconds: int
    max_workers: int
    interval_minutes: int
    telegram_api_base: str
    telegram_timeout_seconds: float
    server_host: str
    server_port: int
