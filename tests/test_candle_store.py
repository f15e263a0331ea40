import pytest

from scalp_signal_bot.candle_store import RES_1H, RES_1M, RES_5M, CandleStore
from scalp_signal_bot.models import Candle


def _c(idx: int, price: float = 10.0) -> Candle:
    return Candle(open_time_ms=idx * 60_000, open=price, high=price + 1, low=price - 1, close=price)


def test_push_evicts_oldest_beyond_capacity():
    store = CandleStore(capacity_1m=100)
    for i in range(105):
        store.push("XAU/USD", RES_1M, _c(i))

    bars = store.get("XAU/USD", RES_1M)
    assert len(bars) == 100
    assert bars[0].open_time_ms == 5 * 60_000
    assert store.latest("XAU/USD", RES_1M).open_time_ms == 104 * 60_000


def test_load_replaces_buffer_and_truncates_to_newest():
    store = CandleStore(capacity_5m=80)
    store.push("EUR/USD", RES_5M, _c(0, 1.0))
    store.load("EUR/USD", RES_5M, [_c(i) for i in range(1, 91)])

    bars = store.get("EUR/USD", RES_5M)
    assert store.count("EUR/USD", RES_5M) == 80
    assert bars[0].open_time_ms == 11 * 60_000
    assert bars[-1].open_time_ms == 90 * 60_000


def test_symbols_and_resolutions_are_isolated():
    store = CandleStore()
    store.push("XAU/USD", RES_1H, _c(1))

    assert store.count("XAU/USD", RES_1H) == 1
    assert store.count("XAU/USD", RES_1M) == 0
    assert store.count("EUR/USD", RES_1H) == 0
    assert store.latest("EUR/USD", RES_1H) is None


def test_get_returns_a_copy():
    store = CandleStore()
    store.push("XAU/USD", RES_1M, _c(1))
    bars = store.get("XAU/USD", RES_1M)
    bars.clear()
    assert store.count("XAU/USD", RES_1M) == 1


def test_unknown_resolution_rejected():
    store = CandleStore()
    with pytest.raises(ValueError):
        store.push("XAU/USD", "15m", _c(1))
