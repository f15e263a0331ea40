from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

BULLISH = "BULLISH"
BEARISH = "BEARISH"
NEUTRAL = "NEUTRAL"

WIN = "WIN"
LOSS = "LOSS"
EXPIRED = "EXPIRED"

SELL = "SELL"
HOLD = "HOLD"


@dataclass(frozen=True)
class Candle:
    open_time_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class MarketSnapshot:
    """Indicator values of the last two 1m bars, as seen by the setup gates."""
    price: float
    prev_price: float
    ema8: float
    ema8_prev: float
    ema21: float
    ema21_prev: float
    rsi: float
    rsi_prev: float
    atr: float
    stoch_k: float
    stoch_d: float
    stoch_k_prev: float
    stoch_d_prev: float
    macd_hist: float
    macd_hist_prev: Optional[float]
    pullback_high: float

    @property
    def pullback_distance(self) -> float:
        return abs(self.pullback_high - self.ema21)

    @property
    def fresh_stoch_cross(self) -> bool:
        return self.stoch_k < self.stoch_d and self.stoch_k_prev >= self.stoch_d_prev


@dataclass(frozen=True)
class Setup:
    price: float
    stop_loss: float
    take_profit: float
    risk_distance: float
    atr: float
    confidence: int
    snapshot: MarketSnapshot
    reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Trade:
    symbol: str
    entry_price: float
    stop_loss: float
    take_profit: float
    risk_distance: float
    reward_risk_ratio: float
    confidence: int
    atr_at_entry: float
    opened_at_ms: int
    reasons: Tuple[str, ...] = ()
    side: str = SELL


@dataclass(frozen=True)
class TradeOutcome:
    trade: Trade
    result: str  # WIN, LOSS or EXPIRED
    realized_r: float
    close_price: float
    closed_at_ms: int


@dataclass(frozen=True)
class Hold:
    reason: str
    open_trade: Optional[Trade] = None

    @property
    def action(self) -> str:
        return HOLD


@dataclass(frozen=True)
class SellSignal:
    trade: Trade
    setup: Setup
    trend: str

    @property
    def action(self) -> str:
        return SELL
