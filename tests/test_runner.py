import asyncio
import json
from datetime import datetime

from scalp_signal_bot.config import Config
from scalp_signal_bot.models import LOSS, Candle, Hold, SellSignal
from scalp_signal_bot.runner import ScalpRunner

from market_data import MINUTE_MS, SIGNAL_TS, bearish_1h, bearish_5m, ms, pullback_1m


class FakeProvider:
    def __init__(self, bars_1m=None, broken=()):
        self.bars = {"1m": bars_1m or pullback_1m(), "5m": bearish_5m(), "1h": bearish_1h()}
        self.broken = set(broken)
        self.calls = []

    async def fetch_candles(self, symbol, resolution, outputsize):
        self.calls.append((symbol, resolution))
        if symbol in self.broken:
            raise RuntimeError("boom")
        return list(self.bars[resolution])

    async def close(self):
        pass


class FakeDiscord:
    def __init__(self):
        self.sent = []

    def enabled(self):
        return True

    async def send(self, text):
        self.sent.append(text)


def _runner(provider, now_ms=SIGNAL_TS, symbols=("XAU/USD",), bridge_dir=None) -> ScalpRunner:
    cfg = Config()
    cfg.provider.symbols = list(symbols)
    cfg.provider.request_gap_s = 0
    if bridge_dir is not None:
        cfg.bridge.enabled = True
        cfg.bridge.signals_dir = str(bridge_dir)
    r = ScalpRunner(cfg, provider=provider, clock=lambda: now_ms / 1000.0)
    r.discord = FakeDiscord()
    return r


def test_process_symbol_emits_sell_and_alerts():
    r = _runner(FakeProvider())
    decision = asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0))

    assert isinstance(decision, SellSignal)
    assert r.engine.open_trade("XAU/USD") is decision.trade
    assert len(r.discord.sent) == 1
    assert "SCALP SELL XAU/USD" in r.discord.sent[0]


def test_new_bar_resolves_trade_before_next_decision():
    prov = FakeProvider()
    r = _runner(prov)
    first = asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0))
    stop = first.trade.stop_loss

    prov.bars["1m"] = pullback_1m() + [
        Candle(open_time_ms=SIGNAL_TS, open=stop - 0.5, high=stop + 0.2, low=stop - 0.6, close=stop - 0.1)
    ]
    second = asyncio.run(r.process_symbol("XAU/USD", (SIGNAL_TS + MINUTE_MS) / 1000.0))

    assert isinstance(second, Hold)
    assert second.reason.startswith("Cooldown")
    assert r.engine.open_trade("XAU/USD") is None
    assert r.engine.get_stats().overall.losses == 1
    assert any("| LOSS |" in m for m in r.discord.sent)


def test_same_bar_is_not_resolved_twice():
    prov = FakeProvider()
    r = _runner(prov)
    asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0))
    asyncio.run(r.process_symbol("XAU/USD", (SIGNAL_TS + 6 * MINUTE_MS) / 1000.0))

    assert r.engine.open_trade("XAU/USD") is not None
    assert r.engine.get_stats().closed == 0


def test_slow_timeframes_refreshed_only_when_stale():
    prov = FakeProvider()
    r = _runner(prov)
    asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0))
    asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0 + 60))

    resolutions = [res for _, res in prov.calls]
    assert resolutions.count("1m") == 2
    assert resolutions.count("5m") == 1
    assert resolutions.count("1h") == 1


def test_poll_outside_fetch_window_does_nothing():
    prov = FakeProvider()
    r = _runner(prov, now_ms=ms(datetime(2024, 1, 2, 15, 0)))
    asyncio.run(r.poll_once())
    assert prov.calls == []


def test_failing_symbol_does_not_stop_the_others():
    prov = FakeProvider(broken={"EUR/USD"})
    r = _runner(prov, symbols=("EUR/USD", "XAU/USD"))
    asyncio.run(r.poll_once())

    assert ("EUR/USD", "1m") in prov.calls
    assert r.engine.open_trade("XAU/USD") is not None


def test_sell_is_handed_to_mt5_when_enabled(tmp_path):
    r = _runner(FakeProvider(), bridge_dir=tmp_path)
    asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0))

    data = json.loads((tmp_path / "signal_XAUUSD.json").read_text(encoding="utf-8"))
    assert data["action"] == "SELL"
    assert data["sl"] == r.engine.open_trade("XAU/USD").stop_loss


def test_every_bar_since_last_poll_is_resolved():
    prov = FakeProvider()
    r = _runner(prov)
    trade = asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0)).trade
    stop, entry = trade.stop_loss, trade.entry_price

    prov.bars["1m"] = pullback_1m() + [
        Candle(open_time_ms=SIGNAL_TS, open=entry, high=stop + 0.2, low=entry - 0.1, close=stop - 0.1),
        Candle(open_time_ms=SIGNAL_TS + MINUTE_MS, open=entry, high=entry + 0.1, low=entry - 0.1, close=entry),
    ]
    asyncio.run(r.process_symbol("XAU/USD", (SIGNAL_TS + 2 * MINUTE_MS) / 1000.0))

    stats = r.engine.get_stats()
    assert stats.overall.losses == 1
    assert r.engine.open_trade("XAU/USD") is None


def test_resolution_stops_at_the_closing_bar():
    prov = FakeProvider()
    r = _runner(prov)
    trade = asyncio.run(r.process_symbol("XAU/USD", SIGNAL_TS / 1000.0)).trade
    target, stop, entry = trade.take_profit, trade.stop_loss, trade.entry_price

    prov.bars["1m"] = pullback_1m() + [
        Candle(open_time_ms=SIGNAL_TS, open=entry, high=entry + 0.1, low=target - 0.1, close=target),
        Candle(open_time_ms=SIGNAL_TS + MINUTE_MS, open=target, high=stop + 0.5, low=target, close=stop),
    ]
    asyncio.run(r.process_symbol("XAU/USD", (SIGNAL_TS + 2 * MINUTE_MS) / 1000.0))

    stats = r.engine.get_stats()
    assert (stats.overall.wins, stats.overall.losses) == (1, 0)
    assert sum("Trade closed" in m for m in r.discord.sent) == 1
