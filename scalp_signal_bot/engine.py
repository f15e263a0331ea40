from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from .candle_store import RES_1H, RES_1M, RES_5M, CandleStore
from .config import EngineConfig
from .lifecycle import InvalidTradeLevels, SymbolState, TradeLifecycle
from .models import BEARISH, BULLISH, Candle, Hold, SellSignal, Trade, TradeOutcome
from .setup_detector import SetupDetector
from .stats import StatsAggregator, StatsReport
from .timefilter import SessionGate, utc_dt
from .trend import TrendFilter

log = logging.getLogger("engine")

Decision = Union[Hold, SellSignal]


class ScalpEngine:
    """Sell-only pullback scalper: owns every per-symbol buffer, trade and counter.

    Not thread-safe. A host driving several symbols concurrently must keep at
    most one call in flight per symbol.
    """

    def __init__(self, cfg: Optional[EngineConfig] = None):
        self.cfg = cfg or EngineConfig()
        self.cfg.validate()

        self.store = CandleStore(self.cfg.capacity_1m, self.cfg.capacity_5m, self.cfg.capacity_1h)
        self.session = SessionGate(
            start_hour=self.cfg.session_start_hour,
            end_hour=self.cfg.session_end_hour,
            monday_open_hour=self.cfg.monday_open_hour,
            cooldown_min=self.cfg.cooldown_min,
        )
        self.trend = TrendFilter(self.cfg)
        self.detector = SetupDetector(self.cfg)
        self.lifecycle = TradeLifecycle(self.cfg.reward_risk, self.cfg.max_hold_min, self.cfg.expired_r)
        self.stats = StatsAggregator(self.cfg.reward_risk)
        self._states: Dict[str, SymbolState] = {}

    def _state(self, symbol: str) -> SymbolState:
        st = self._states.get(symbol)
        if st is None:
            st = SymbolState(symbol=symbol)
            self._states[symbol] = st
        return st

    # ── feeding bars ──

    def push_1m(self, symbol: str, candle: Candle) -> None:
        self.store.push(symbol, RES_1M, candle)

    def push_5m(self, symbol: str, candle: Candle) -> None:
        self.store.push(symbol, RES_5M, candle)

    def push_1h(self, symbol: str, candle: Candle) -> None:
        self.store.push(symbol, RES_1H, candle)

    def load_1m(self, symbol: str, candles: List[Candle]) -> None:
        self._state(symbol)
        self.store.load(symbol, RES_1M, candles)
        log.debug("loaded symbol=%s res=1m bars=%d", symbol, len(candles))

    def load_5m(self, symbol: str, candles: List[Candle]) -> None:
        self.store.load(symbol, RES_5M, candles)
        log.debug("loaded symbol=%s res=5m bars=%d", symbol, len(candles))

    def load_1h(self, symbol: str, candles: List[Candle]) -> None:
        self.store.load(symbol, RES_1H, candles)
        log.debug("loaded symbol=%s res=1h bars=%d", symbol, len(candles))

    # ── decisions ──

    def open_trade(self, symbol: str) -> Optional[Trade]:
        st = self._states.get(symbol)
        return st.open_trade if st else None

    def macro_trend(self, symbol: str) -> str:
        return self.trend.macro_trend(self.store.get(symbol, RES_1H), symbol)

    def intraday_trend(self, symbol: str) -> str:
        return self.trend.intraday_trend(self.store.get(symbol, RES_5M), symbol)

    def generate_signal(self, symbol: str, current_price: float, ts_ms: int) -> Decision:
        decision = self._decide(symbol, current_price, ts_ms)
        if isinstance(decision, Hold):
            log.debug("hold symbol=%s reason=%s", symbol, decision.reason)
        return decision

    def _decide(self, symbol: str, current_price: float, ts_ms: int) -> Decision:
        st = self._state(symbol)

        if not self.session.is_active_session(ts_ms):
            return Hold(
                f"Outside scalp session (need {self.cfg.session_start_hour}-{self.cfg.session_end_hour} UTC, "
                f"got {utc_dt(ts_ms).hour}h)"
            )

        ok, wait_min = self.session.check_cooldown(st.last_signal_ms, ts_ms)
        if not ok:
            return Hold(f"Cooldown: {wait_min}min remaining")

        if st.open_trade is not None:
            t = st.open_trade
            return Hold(
                f"Open trade: SELL @ {t.entry_price:.2f} | SL: {t.stop_loss:.2f} | TP: {t.take_profit:.2f}",
                open_trade=t,
            )

        macro = self.macro_trend(symbol)
        if macro == BULLISH:
            return Hold("1h macro BULLISH, SELL blocked")

        trend = self.intraday_trend(symbol)
        if trend != BEARISH:
            return Hold(f"5min trend: {trend} (need BEARISH)")

        setup, verdict = self.detector.evaluate(self.store.get(symbol, RES_1M), symbol)
        if setup is None:
            return Hold(f"No valid pullback setup on 1min ({verdict})")

        try:
            trade = self.lifecycle.open_trade(st, setup, current_price, ts_ms)
        except InvalidTradeLevels as e:
            return Hold(f"Setup levels invalid for current price: {e}")

        log.info(
            "signal_sell symbol=%s price=%.5f conf=%d macro=%s trend=%s reasons=%s",
            symbol,
            current_price,
            setup.confidence,
            macro,
            trend,
            "; ".join(setup.reasons),
        )
        return SellSignal(trade=trade, setup=setup, trend=trend)

    def resolve_open_trade(self, symbol: str, candle: Candle) -> Optional[TradeOutcome]:
        st = self._states.get(symbol)
        if st is None or st.open_trade is None:
            return None
        outcome = self.lifecycle.resolve(st, candle)
        if outcome is not None:
            self.stats.record(symbol, outcome)
        return outcome

    def get_stats(self) -> StatsReport:
        return self.stats.report()
