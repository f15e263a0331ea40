from __future__ import annotations

import logging
from typing import List

from .config import EngineConfig
from .indicators import adx_series, ema_series
from .models import BEARISH, BULLISH, NEUTRAL, Candle

log = logging.getLogger("trend")


class TrendFilter:
    """Macro (1h) and intraday (5m) trend classification.

    Any missing indicator value or computation error resolves to NEUTRAL and is
    logged; it never raises and never reports a trend it could not compute.
    """

    def __init__(self, cfg: EngineConfig):
        self.cfg = cfg

    def macro_trend(self, candles: List[Candle], symbol: str = "") -> str:
        if len(candles) < self.cfg.macro_min_bars:
            return NEUTRAL
        try:
            return self._macro(candles)
        except Exception as e:
            log.warning("macro_trend_failed symbol=%s bars=%d err=%r -> NEUTRAL", symbol, len(candles), e)
            return NEUTRAL

    def intraday_trend(self, candles: List[Candle], symbol: str = "") -> str:
        if len(candles) < self.cfg.intraday_min_bars:
            return NEUTRAL
        try:
            return self._intraday(candles)
        except Exception as e:
            log.warning("intraday_trend_failed symbol=%s bars=%d err=%r -> NEUTRAL", symbol, len(candles), e)
            return NEUTRAL

    def _macro(self, candles: List[Candle]) -> str:
        closes = [c.close for c in candles]
        highs = [c.high for c in candles]
        lows = [c.low for c in candles]

        ema21 = ema_series(closes, 21)
        ema50 = ema_series(closes, 50)
        adx = adx_series(highs, lows, closes, 14)
        if not ema21 or not ema50 or not adx:
            return NEUTRAL

        e21 = ema21[-1]
        e50 = ema50[-1]
        price = closes[-1]
        if adx[-1] < self.cfg.macro_adx_min:
            return NEUTRAL
        if e21 > e50 and price > e21:
            return BULLISH
        if e21 < e50 and price < e21:
            return BEARISH
        return NEUTRAL

    def _intraday(self, candles: List[Candle]) -> str:
        closes = [c.close for c in candles]
        highs = [c.high for c in candles]
        lows = [c.low for c in candles]

        ema9 = ema_series(closes, 9)
        ema21 = ema_series(closes, 21)
        ema50 = ema_series(closes, 50)
        adx = adx_series(highs, lows, closes, 14)
        if not ema9 or not ema21 or not ema50 or not adx:
            return NEUTRAL

        e9, e21, e50 = ema9[-1], ema21[-1], ema50[-1]
        price = closes[-1]

        # Sell-only: a full bearish stack with a trending ADX, nothing else counts.
        if e9 < e21 < e50 and price < e9 and adx[-1] >= self.cfg.intraday_adx_min:
            return BEARISH
        return NEUTRAL
