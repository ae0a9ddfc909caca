from __future__ import annotations

import threading

import requests

from strategy_engine.twelvedata import TwelveDataClient, parse_datetime


class FakeResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def json(self):
        if self._invalid_json:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


def make_client(session):
    return TwelveDataClient(api_key="secret-key", base_url="https://td.test/", timeout=3, session=session)


def test_fetch_returns_payload_and_sends_api_key():
    payload = {"status": "ok", "values": [{"datetime": "2024-01-02", "rsi": "25.4"}]}
    session = FakeSession(FakeResponse(payload=payload))

    assert make_client(session).fetch("rsi", {"symbol": "AAPL", "time_period": 14}) == payload
    url, params, timeout = session.requests[0]
    assert url == "https://td.test/rsi"
    assert params["apikey"] == "secret-key"
    assert params["time_period"] == "14"
    assert timeout == 3


def test_fetch_returns_none_on_provider_error():
    body = {"code": 429, "message": "You have run out of API credits", "status": "error"}
    assert make_client(FakeSession(FakeResponse(payload=body))).fetch("rsi", {"symbol": "AAPL"}) is None


def test_fetch_returns_none_on_http_error():
    assert make_client(FakeSession(FakeResponse(status_code=500))).fetch("price", {"symbol": "AAPL"}) is None


def test_fetch_returns_none_on_timeout():
    session = FakeSession(exc=requests.Timeout("read timed out"))
    assert make_client(session).fetch("rsi", {"symbol": "AAPL"}) is None


def test_fetch_returns_none_on_invalid_json():
    session = FakeSession(FakeResponse(invalid_json=True))
    assert make_client(session).fetch("price", {"symbol": "AAPL"}) is None


def test_market_state():
    session = FakeSession(FakeResponse(payload=[{"name": "NYSE", "is_market_open": False}]))
    assert make_client(session).market_state() == "Closed"
    session = FakeSession(FakeResponse(payload={"name": "NYSE", "is_market_open": True}))
    assert make_client(session).market_state() == "Open"
    session = FakeSession(FakeResponse(payload=[]))
    assert make_client(session).market_state() is None


def test_parse_datetime_formats():
    assert parse_datetime("2024-01-02 15:30:00") == 1704209400
    assert parse_datetime("2024-01-02") == 1704153600
    assert parse_datetime("yesterday") is None


def test_each_thread_gets_its_own_session():
    client = TwelveDataClient(api_key="secret-key")
    seen = []
    worker = threading.Thread(target=lambda: seen.append(client._session()))
    worker.start()
    worker.join()

    own = client._session()
    assert client._session() is own
    assert seen[0] is not own

    client.close()
    assert client._sessions == []


def test_injected_session_is_shared_and_left_open():
    session = FakeSession(FakeResponse(payload={"price": "1"}))
    client = make_client(session)
    seen = []
    worker = threading.Thread(target=lambda: seen.append(client._session()))
    worker.start()
    worker.join()

    assert seen == [session]
    client.close()
    assert client.fetch("price", {"symbol": "AAPL"}) == {"price": "1"}
