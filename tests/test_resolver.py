from __future__ import annotations

import pytest

from conftest import LATEST_TS, FakeMarketData
from strategy_engine.cache import ResponseCache
from strategy_engine.indicators import INDICATOR_SPECS, parse_condition
from strategy_engine.resolver import IndicatorResolver, extract_latest, parse_price


def cond(indicator, operator, value):
    return parse_condition({"indicator": indicator, "operator": operator, "value": value})


def make_resolver(storage, market):
    return IndicatorResolver(ResponseCache(storage), market.fetch, max_workers=4)


def test_rsi_referenced_twice_is_fetched_once(storage):
    market = FakeMarketData(prices={"AAPL": 150.0}, series={("AAPL", "rsi", "14"): {"rsi": 25.4}})
    resolver = make_resolver(storage, market)

    res = resolver.resolve("AAPL", "1h", [cond("RSI", ">", "20"), cond("Price", "<", "RSI")])

    assert market.count("rsi", "AAPL") == 1
    assert res.price == pytest.approx(150.0)
    assert list(res.values) == ["RSI"]
    assert res.values["RSI"] == pytest.approx(25.4)


def test_timeframe_maps_to_provider_interval(storage):
    market = FakeMarketData(prices={"AAPL": 150.0}, series={("AAPL", "rsi", "14"): {"rsi": 25.4}})
    make_resolver(storage, market).resolve("AAPL", "1d", [cond("RSI", "<", "30")])

    rsi_calls = [params for endpoint, params in market.calls if endpoint == "rsi"]
    assert rsi_calls[0]["interval"] == "1day"


def test_bollinger_triplet_is_populated_from_one_call(storage):
    market = FakeMarketData(
        prices={"AAPL": 95.0},
        series={("AAPL", "bbands", "20"): {"upper_band": 110.0, "middle_band": 100.0, "lower_band": 90.0}},
    )
    res = make_resolver(storage, market).resolve("AAPL", "15m", [cond("Price", "<", "BB_LOWER")])

    assert market.count("bbands", "AAPL") == 1
    assert res.values["BB_LOWER"] == pytest.approx(90.0)
    assert res.values["BB_MIDDLE"] == pytest.approx(100.0)
    assert res.values["BB_UPPER"] == pytest.approx(110.0)


def test_missing_price_returns_early(storage):
    market = FakeMarketData(prices={"AAPL": None}, series={("AAPL", "rsi", "14"): {"rsi": 25.4}})
    res = make_resolver(storage, market).resolve("AAPL", "1h", [cond("RSI", "<", "30")])

    assert res.price is None
    assert res.values == {}
    assert res.data_timestamp is None


def test_failed_indicator_resolves_to_none(storage):
    market = FakeMarketData(prices={"AAPL": 150.0}, series={("AAPL", "sma", "50"): {"sma": 140.0}})
    res = make_resolver(storage, market).resolve(
        "AAPL", "1h", [cond("RSI", "<", "30"), cond("Price", ">", "SMA50")]
    )

    assert res.values["RSI"] is None
    assert res.values["SMA50"] == pytest.approx(140.0)


def test_data_timestamp_is_earliest_as_of(storage):
    market = FakeMarketData(
        prices={"AAPL": 150.0},
        series={("AAPL", "rsi", "14"): {"rsi": 25.4}, ("AAPL", "sma", "50"): {"sma": 140.0}},
        datetimes={("AAPL", "sma"): "2024-01-02 14:30:00"},
    )
    res = make_resolver(storage, market).resolve(
        "AAPL", "1h", [cond("RSI", "<", "30"), cond("Price", ">", "SMA50")]
    )

    assert res.data_timestamp == LATEST_TS - 3600


def test_extract_latest_reads_first_item():
    payload = {
        "status": "ok",
        "values": [
            {"datetime": "2024-01-02 15:30:00", "rsi": "25.4"},
            {"datetime": "2024-01-02 14:30:00", "rsi": "31.0"},
        ],
    }
    point = extract_latest(payload, INDICATOR_SPECS["RSI"])["RSI"]
    assert point.value == pytest.approx(25.4)
    assert point.as_of == LATEST_TS


def test_extract_latest_handles_empty_and_bad_values():
    spec = INDICATOR_SPECS["RSI"]
    assert extract_latest(None, spec)["RSI"].value is None
    assert extract_latest({"values": []}, spec)["RSI"].value is None
    bad = extract_latest({"values": [{"datetime": "2024-01-02", "rsi": "n/a"}]}, spec)["RSI"]
    assert bad.value is None
    assert bad.as_of is not None


def test_parse_price():
    assert parse_price({"price": "150.00"}) == pytest.approx(150.0)
    assert parse_price({"price": "abc"}) is None
    assert parse_price(None) is None
    assert parse_price([]) is None


def test_cache_errors_degrade_to_none(storage, monkeypatch):
    market = FakeMarketData(prices={"AAPL": 150.0})
    resolver = make_resolver(storage, market)

    def _broken(*args, **kwargs):
        raise RuntimeError("cache unavailable")

    monkeypatch.setattr(resolver.cache, "get_or_fetch", _broken)
    res = resolver.resolve("AAPL", "1h", [cond("RSI", "<", "30")])
    assert res.price is None
