import asyncio

import pytest

from scalp_signal_bot.providers.twelvedata import ProviderError, TwelveDataProvider, parse_time_series


def test_values_reversed_to_chronological():
    payload = {
        "meta": {"symbol": "XAU/USD", "interval": "1min"},
        "values": [
            {"datetime": "2024-01-02 12:31:00", "open": "2050.1", "high": "2051", "low": "2049.5", "close": "2050.5"},
            {"datetime": "2024-01-02 12:30:00", "open": "2049.0", "high": "2050.2", "low": "2048.8", "close": "2050.1"},
        ],
        "status": "ok",
    }
    bars = parse_time_series(payload)

    assert [b.open_time_ms for b in bars] == [1_704_198_600_000, 1_704_198_660_000]
    assert bars[-1].close == 2050.5
    assert bars[0].volume == 0.0


def test_daily_datetime_format():
    payload = {"values": [{"datetime": "2024-01-02", "open": "1", "high": "2", "low": "0.5", "close": "1.5"}]}
    assert parse_time_series(payload)[0].open_time_ms == 1_704_153_600_000


def test_empty_values():
    assert parse_time_series({"status": "ok"}) == []


def test_error_body_raises():
    with pytest.raises(ProviderError, match="429"):
        parse_time_series({"status": "error", "code": 429, "message": "run out of API credits"})


def test_unknown_resolution_rejected_before_any_request():
    prov = TwelveDataProvider("key")
    with pytest.raises(ValueError):
        asyncio.run(prov.fetch_candles("XAU/USD", "15m", 10))
