from __future__ import annotations

SECONDS_PER_MINUTE = 60
CACHE_TTL_SECONDS = 5 * SECONDS_PER_MINUTE
REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_INTERVAL_MINUTES = 5
DEFAULT_MAX_WORKERS = 8

TWELVEDATA_BASE_URL = "https://api.twelvedata.com"
TELEGRAM_API_BASE = "https://api.telegram.org"

STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"
STATUS_DEGRADED = "degraded"
STRATEGY_STATUSES = (STATUS_RUNNING, STATUS_STOPPED, STATUS_DEGRADED)

DEFAULT_TIMEFRAME = "15m"
# Strategy timeframe -> Twelve Data interval.
TIMEFRAME_INTERVALS = {
    "1m": "1min",
    "5m": "5min",
    "15m": "15min",
    "1h": "1h",
    "4h": "4h",
    "1d": "1day",
}

ALERT_TYPE_SIGNAL = "Signal Triggered"

RSI_PERIOD = 14
STOCH_FAST_K_PERIOD = 14
STOCH_SLOW_K_PERIOD = 3
STOCH_SLOW_D_PERIOD = 3
MACD_FAST_PERIOD = 12
MACD_SLOW_PERIOD = 26
MACD_SIGNAL_PERIOD = 9
BBANDS_PERIOD = 20
BBANDS_SD = 2
