from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional, Tuple

from .config import EngineConfig
from .indicators import atr_series, ema_series, macd_series, rsi_series, stochastic_series
from .models import Candle, MarketSnapshot, Setup

log = logging.getLogger("setup")

OK = "ok"
INSUFFICIENT_DATA = "insufficient_data"
LOW_CONFIDENCE = "low_confidence"
ABNORMAL_RISK = "abnormal_risk"
ERROR = "error"


@dataclass(frozen=True)
class Rule:
    name: str
    check: Callable[[MarketSnapshot, EngineConfig], bool]


def _atr_floor(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.atr >= cfg.min_atr


def _pullback_tap(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    # The recent high must reach EMA21 and stay within the overshoot band above it.
    if s.pullback_high < s.ema21:
        return False
    if s.pullback_high > s.ema21 + s.atr * cfg.max_overshoot_atr:
        return False
    return s.pullback_distance <= s.atr * cfg.max_pullback_atr


def _below_ema8(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.price < s.ema8


def _turning_down(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.price < s.prev_price


def _rsi_not_oversold(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.rsi >= 35


def _rsi_falling(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.rsi < s.rsi_prev


def _ema_sloping_down(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.ema21 < s.ema21_prev and s.ema8 < s.ema8_prev


def _stoch_rolling_over(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    return s.stoch_k >= 25 and s.stoch_k < s.stoch_d


def _macd_fading(s: MarketSnapshot, cfg: EngineConfig) -> bool:
    if s.macd_hist <= 0:
        return True
    return s.macd_hist_prev is not None and s.macd_hist < s.macd_hist_prev


GATES: Tuple[Rule, ...] = (
    Rule("atr_floor", _atr_floor),
    Rule("pullback_tap", _pullback_tap),
    Rule("below_ema8", _below_ema8),
    Rule("turning_down", _turning_down),
    Rule("rsi_not_oversold", _rsi_not_oversold),
    Rule("rsi_falling", _rsi_falling),
    Rule("ema_sloping_down", _ema_sloping_down),
    Rule("stoch_rolling_over", _stoch_rolling_over),
    Rule("macd_fading", _macd_fading),
)


def build_snapshot(candles: List[Candle], pullback_lookback: int = 7) -> Optional[MarketSnapshot]:
    """Indicator view of the last two bars, or None while any indicator is still warming up."""
    if len(candles) < pullback_lookback + 2:
        return None
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]

    ema8 = ema_series(closes, 8)
    ema21 = ema_series(closes, 21)
    rsi = rsi_series(closes, 7)
    atr = atr_series(highs, lows, closes, 7)
    stoch = stochastic_series(highs, lows, closes, 5, 3)
    macd = macd_series(closes, 5, 13, 4)

    if len(ema8) < 2 or len(ema21) < 2 or len(rsi) < 2 or not atr:
        return None
    if len(stoch) < 2 or stoch[-1].d is None or stoch[-2].d is None:
        return None
    if not macd or macd[-1].histogram is None:
        return None

    lookback = candles[-(pullback_lookback + 1):-1]
    return MarketSnapshot(
        price=closes[-1],
        prev_price=closes[-2],
        ema8=ema8[-1],
        ema8_prev=ema8[-2],
        ema21=ema21[-1],
        ema21_prev=ema21[-2],
        rsi=rsi[-1],
        rsi_prev=rsi[-2],
        atr=atr[-1],
        stoch_k=stoch[-1].k,
        stoch_d=stoch[-1].d,
        stoch_k_prev=stoch[-2].k,
        stoch_d_prev=stoch[-2].d,
        macd_hist=macd[-1].histogram,
        macd_hist_prev=macd[-2].histogram if len(macd) >= 2 else None,
        pullback_high=max(c.high for c in lookback),
    )


def first_failed_gate(s: MarketSnapshot, cfg: EngineConfig) -> Optional[str]:
    for rule in GATES:
        if not rule.check(s, cfg):
            return rule.name
    return None


def score_snapshot(s: MarketSnapshot, cfg: EngineConfig) -> Tuple[int, List[str]]:
    """Heuristic confidence: 50 plus additive bonuses, capped. Returns (score, reasons)."""
    score = 50
    reasons: List[str] = []
    dist = s.pullback_distance
    atr = s.atr

    if dist < atr * 0.15:
        score += 20
        reasons.append("Perfect EMA21 tap (+20)")
    elif dist < atr * 0.30:
        score += 12
        reasons.append("Clean EMA21 pullback (+12)")
    elif dist < atr * 0.40:
        score += 5
        reasons.append("EMA21 pullback (+5)")

    if s.rsi > 60 and s.rsi < s.rsi_prev:
        score += 12
        reasons.append(f"RSI falling from overbought ({s.rsi:.0f}) (+12)")
    elif s.rsi > 50:
        score += 6
        reasons.append(f"RSI above 50 ({s.rsi:.0f}) (+6)")

    if s.fresh_stoch_cross:
        score += 12
        reasons.append("Fresh stoch bearish cross (+12)")
    elif s.stoch_k < s.stoch_d:
        score += 5
        reasons.append("Stoch already crossed down (+5)")

    if s.stoch_k > 65 and s.stoch_k < s.stoch_d:
        score += 5
        reasons.append("Stoch overbought rejection (+5)")

    if s.macd_hist < 0:
        score += 8
        reasons.append("MACD histogram negative (+8)")
        if s.macd_hist_prev is not None and s.macd_hist < s.macd_hist_prev:
            score += 6
            reasons.append("MACD accelerating down (+6)")

    if s.ema21 < s.ema21_prev:
        score += 5
        reasons.append("EMA21 sloping down (+5)")
    if s.ema8 < s.ema8_prev:
        score += 4
        reasons.append("EMA8 sloping down (+4)")

    return min(score, cfg.max_confidence), reasons


class SetupDetector:
    """Pullback-rejection sell setup on 1m bars."""

    def __init__(self, cfg: EngineConfig):
        self.cfg = cfg

    def detect(self, candles: List[Candle], symbol: str = "") -> Optional[Setup]:
        setup, _ = self.evaluate(candles, symbol)
        return setup

    def evaluate(self, candles: List[Candle], symbol: str = "") -> Tuple[Optional[Setup], str]:
        """Returns (setup, verdict); verdict is "ok" or names why there is no setup."""
        if len(candles) < self.cfg.setup_min_bars:
            return None, INSUFFICIENT_DATA
        try:
            return self._evaluate(candles, symbol)
        except Exception as e:
            log.warning("setup_eval_failed symbol=%s bars=%d err=%r", symbol, len(candles), e)
            return None, ERROR

    def _evaluate(self, candles: List[Candle], symbol: str) -> Tuple[Optional[Setup], str]:
        snap = build_snapshot(candles, self.cfg.pullback_lookback)
        if snap is None:
            return None, INSUFFICIENT_DATA

        failed = first_failed_gate(snap, self.cfg)
        if failed is not None:
            log.debug("setup_rejected symbol=%s gate=%s", symbol, failed)
            return None, failed

        confidence, reasons = score_snapshot(snap, self.cfg)
        if confidence < self.cfg.min_confidence:
            log.debug("setup_rejected symbol=%s gate=%s conf=%d", symbol, LOW_CONFIDENCE, confidence)
            return None, LOW_CONFIDENCE

        price = snap.price
        stop = price + snap.atr * self.cfg.atr_stop_mult
        risk = abs(price - stop)
        if risk <= 0 or risk > snap.atr * self.cfg.max_risk_atr:
            return None, ABNORMAL_RISK
        target = price - risk * self.cfg.reward_risk

        return Setup(
            price=price,
            stop_loss=stop,
            take_profit=target,
            risk_distance=risk,
            atr=snap.atr,
            confidence=confidence,
            snapshot=snap,
            reasons=tuple(reasons),
        ), OK
