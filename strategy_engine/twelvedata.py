from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import requests

from .constants import REQUEST_TIMEOUT_SECONDS, TWELVEDATA_BASE_URL

logger = logging.getLogger("strategy_engine.twelvedata")

_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


def parse_datetime(dt_str: str) -> Optional[int]:
    for fmt in _DATETIME_FORMATS:
        try:
            dt = datetime.strptime(dt_str, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
        return int(dt.timestamp())
    return None


class TwelveDataClient:
    """Thin Twelve Data REST client.

    ``fetch`` never raises: any transport error, non-2xx status, unparseable
    body or provider-reported error is logged and returns ``None``. There are no
    retries.

    ``requests.Session`` is not documented as thread-safe, so each calling
    thread gets its own session unless one is injected.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = TWELVEDATA_BASE_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._injected = session
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        if self._injected is not None:
            return self._injected
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def fetch(self, endpoint: str, params: Mapping[str, Any]) -> Optional[Any]:
        query = {k: str(v) for k, v in params.items()}
        query["apikey"] = self.api_key
        query["format"] = "JSON"
        try:
            resp = self._session().get(
                f"{self.base_url}/{endpoint}",
                params=query,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.Timeout:
            self._fail(endpoint, params, "timeout")
            return None
        except requests.RequestException as exc:
            self._fail(endpoint, params, f"http_error:{_redact(str(exc), self.api_key)}")
            return None
        except ValueError:
            self._fail(endpoint, params, "invalid_json")
            return None

        if not isinstance(payload, (dict, list)):
            self._fail(endpoint, params, "unexpected_payload")
            return None

        if isinstance(payload, dict) and (payload.get("status") == "error" or _error_code(payload.get("code"))):
            code = payload.get("code")
            message = payload.get("message")
            details = []
            if code:
                details.append(str(code))
            if message:
                details.append(str(message))
            self._fail(endpoint, params, "api_error:" + (" | ".join(details) if details else "status_error"))
            return None

        return payload

    def market_state(self, exchange: str = "NYSE") -> Optional[str]:
        payload = self.fetch("market_state", {"exchange": exchange})
        if payload is None:
            return None
        # One entry per matching exchange.
        data = payload
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict) or "is_market_open" not in data:
            logger.warning("twelvedata_market_state_unexpected exchange=%s", exchange)
            return None
        return "Open" if data.get("is_market_open") else "Closed"

    def _fail(self, endpoint: str, params: Mapping[str, Any], reason: str) -> None:
        logger.warning(
            "twelvedata_fetch_failed endpoint=%s symbol=%s reason=%s",
            endpoint,
            params.get("symbol", ""),
            reason,
        )


def _error_code(code: Any) -> bool:
    try:
        return int(code) >= 400
    except (TypeError, ValueError):
        return False


def _redact(text: str, secret: str) -> str:
    if secret:
        return text.replace(secret, "***")
    return text
