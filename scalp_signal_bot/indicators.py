"""Pure indicator series.

Every *_series function returns values aligned to the END of its input and is
shorter than the input by the indicator's warm-up. Not enough data gives an
empty list (or None fields inside a point), never an exception.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class StochPoint:
    k: float
    d: Optional[float]


@dataclass(frozen=True)
class MacdPoint:
    macd: float
    signal: Optional[float]
    histogram: Optional[float]


def ema_next(prev_ema: Optional[float], x: float, length: int) -> float:
    if length <= 1:
        return x
    alpha = 2.0 / (length + 1.0)
    return x if prev_ema is None else (alpha * x + (1.0 - alpha) * prev_ema)


def rma_next(prev: Optional[float], x: float, length: int) -> float:
    """Wilder's smoothing (RSI / ATR / ADX)."""
    if length <= 1:
        return x
    if prev is None:
        return x
    alpha = 1.0 / float(length)
    return prev + alpha * (x - prev)


def sma(values: List[float], length: int) -> Optional[float]:
    if length <= 0 or len(values) < length:
        return None
    return sum(values[-length:]) / float(length)


def true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def ema_series(values: List[float], length: int) -> List[float]:
    """EMA seeded with the SMA of the first `length` values."""
    if length <= 0 or len(values) < length:
        return []
    out = [sum(values[:length]) / float(length)]
    for x in values[length:]:
        out.append(ema_next(out[-1], x, length))
    return out


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def rsi_series(closes: List[float], length: int = 14) -> List[float]:
    if length <= 0 or len(closes) < length + 1:
        return []
    gains: List[float] = []
    losses: List[float] = []
    for i in range(1, len(closes)):
        ch = closes[i] - closes[i - 1]
        gains.append(ch if ch > 0 else 0.0)
        losses.append(-ch if ch < 0 else 0.0)

    avg_gain = sum(gains[:length]) / length
    avg_loss = sum(losses[:length]) / length
    out = [_rsi_from_averages(avg_gain, avg_loss)]
    for g, l in zip(gains[length:], losses[length:]):
        avg_gain = rma_next(avg_gain, g, length)
        avg_loss = rma_next(avg_loss, l, length)
        out.append(_rsi_from_averages(avg_gain, avg_loss))
    return out


def atr_series(highs: List[float], lows: List[float], closes: List[float], length: int = 14) -> List[float]:
    if length <= 0 or len(closes) < length + 1:
        return []
    trs = [true_range(highs[i], lows[i], closes[i - 1]) for i in range(1, len(closes))]
    out = [sum(trs[:length]) / length]
    for tr in trs[length:]:
        out.append(rma_next(out[-1], tr, length))
    return out


def stochastic_series(
    highs: List[float],
    lows: List[float],
    closes: List[float],
    k_length: int = 14,
    d_length: int = 3,
) -> List[StochPoint]:
    if k_length <= 0 or d_length <= 0 or len(closes) < k_length:
        return []
    ks: List[float] = []
    out: List[StochPoint] = []
    for i in range(k_length - 1, len(closes)):
        hh = max(highs[i - k_length + 1: i + 1])
        ll = min(lows[i - k_length + 1: i + 1])
        # flat window: no position inside the range, report the midpoint
        k = 50.0 if hh == ll else (closes[i] - ll) / (hh - ll) * 100.0
        ks.append(k)
        out.append(StochPoint(k=k, d=sma(ks, d_length)))
    return out


def adx_series(highs: List[float], lows: List[float], closes: List[float], length: int = 14) -> List[float]:
    """Wilder ADX. First value needs 2 * length bars."""
    n = len(closes)
    if length <= 0 or n < 2 * length:
        return []

    plus_dm: List[float] = []
    minus_dm: List[float] = []
    trs: List[float] = []
    for i in range(1, n):
        up = highs[i] - highs[i - 1]
        down = lows[i - 1] - lows[i]
        plus_dm.append(up if (up > down and up > 0) else 0.0)
        minus_dm.append(down if (down > up and down > 0) else 0.0)
        trs.append(true_range(highs[i], lows[i], closes[i - 1]))

    s_tr = sum(trs[:length])
    s_plus = sum(plus_dm[:length])
    s_minus = sum(minus_dm[:length])

    def _dx() -> float:
        if s_tr == 0:
            return 0.0
        plus_di = 100.0 * s_plus / s_tr
        minus_di = 100.0 * s_minus / s_tr
        total = plus_di + minus_di
        return 0.0 if total == 0 else 100.0 * abs(plus_di - minus_di) / total

    dxs = [_dx()]
    for tr, p, m in zip(trs[length:], plus_dm[length:], minus_dm[length:]):
        s_tr = s_tr - s_tr / length + tr
        s_plus = s_plus - s_plus / length + p
        s_minus = s_minus - s_minus / length + m
        dxs.append(_dx())

    if len(dxs) < length:
        return []
    out = [sum(dxs[:length]) / length]
    for dx in dxs[length:]:
        out.append(rma_next(out[-1], dx, length))
    return out


def macd_series(values: List[float], fast: int = 12, slow: int = 26, signal: int = 9) -> List[MacdPoint]:
    if fast >= slow:
        raise ValueError(f"MACD fast period must be below slow period (fast={fast} slow={slow})")
    slow_ema = ema_series(values, slow)
    if not slow_ema:
        return []
    fast_ema = ema_series(values, fast)
    line = [f - s for f, s in zip(fast_ema[slow - fast:], slow_ema)]
    sig = ema_series(line, signal)

    out: List[MacdPoint] = []
    for i, m in enumerate(line):
        j = i - (signal - 1)
        if j >= 0 and j < len(sig):
            out.append(MacdPoint(macd=m, signal=sig[j], histogram=m - sig[j]))
        else:
            out.append(MacdPoint(macd=m, signal=None, histogram=None))
    return out
