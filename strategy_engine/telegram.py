from __future__ import annotations

import logging
from typing import Optional

import requests

from .constants import REQUEST_TIMEOUT_SECONDS, TELEGRAM_API_BASE

logger = logging.getLogger("strategy_engine.telegram")


class TelegramSendError(Exception):
    pass


class TelegramClient:
    """Sends plain-text messages through the Bot API.

    Credentials are passed per call since every user brings their own bot.
    One attempt per message; failures raise TelegramSendError.
    """

    def __init__(
        self,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        dry_run: bool = False,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.dry_run = dry_run
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def send_message(self, token: str, chat_id: str, text: str) -> None:
        if self.dry_run:
            logger.info("telegram_dry_run chat_id=%s text=%r", chat_id, text)
            return

        url = f"{self.api_base}/bot{token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text}
        try:
            resp = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TelegramSendError(f"telegram_send_failed error={_redact(str(exc), token)}") from exc

        if resp.status_code >= 400:
            detail = _telegram_error_detail(resp)
            raise TelegramSendError(
                f"telegram_send_failed status={resp.status_code} detail={detail}"
            )


def _telegram_error_detail(resp: requests.Response) -> str:
    try:
        payload = resp.json()
        description = payload.get("description")
        if isinstance(description, str) and description:
            return description
    except ValueError:
        pass
    text = (resp.text or "").strip()
    if text:
        return text
    return "unknown_error"


def _redact(text: str, secret: str) -> str:
    if secret:
        return text.replace(secret, "***")
    return text
