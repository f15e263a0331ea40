from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from .models import EXPIRED, LOSS, WIN, Candle, Setup, Trade, TradeOutcome

log = logging.getLogger("lifecycle")


class TradeAlreadyOpen(RuntimeError):
    pass


class InvalidTradeLevels(ValueError):
    pass


@dataclass
class SymbolState:
    """Everything the engine tracks for one symbol."""
    symbol: str
    open_trade: Optional[Trade] = None
    last_signal_ms: Optional[int] = None


class TradeLifecycle:
    """NoTrade -> Open -> NoTrade, at most one open trade per symbol."""

    def __init__(self, reward_risk: float, max_hold_min: int, expired_r: float = -0.15):
        self.reward_risk = reward_risk
        self.max_hold_ms = int(max_hold_min) * 60_000
        self.expired_r = expired_r

    def open_trade(self, state: SymbolState, setup: Setup, current_price: float, ts_ms: int) -> Trade:
        if state.open_trade is not None:
            raise TradeAlreadyOpen(f"{state.symbol} already has an open trade")
        if not (setup.stop_loss > current_price > setup.take_profit):
            raise InvalidTradeLevels(
                f"{state.symbol} price {current_price} outside setup levels "
                f"sl={setup.stop_loss} tp={setup.take_profit}"
            )

        trade = Trade(
            symbol=state.symbol,
            entry_price=current_price,
            stop_loss=setup.stop_loss,
            take_profit=setup.take_profit,
            risk_distance=setup.stop_loss - current_price,
            reward_risk_ratio=self.reward_risk,
            confidence=setup.confidence,
            atr_at_entry=setup.atr,
            opened_at_ms=ts_ms,
            reasons=setup.reasons,
        )
        state.open_trade = trade
        state.last_signal_ms = ts_ms
        log.info(
            "trade_opened symbol=%s entry=%.5f sl=%.5f tp=%.5f conf=%d",
            trade.symbol,
            trade.entry_price,
            trade.stop_loss,
            trade.take_profit,
            trade.confidence,
        )
        return trade

    def resolve(self, state: SymbolState, candle: Candle) -> Optional[TradeOutcome]:
        trade = state.open_trade
        if trade is None:
            return None

        # Stop first: the intrabar path is unknown, so assume the worst.
        if candle.high >= trade.stop_loss:
            return self._close(state, LOSS, -1.0, trade.stop_loss, candle)
        if candle.low <= trade.take_profit:
            return self._close(state, WIN, trade.reward_risk_ratio, trade.take_profit, candle)
        if candle.open_time_ms - trade.opened_at_ms >= self.max_hold_ms:
            return self._close(state, EXPIRED, self.expired_r, candle.close, candle)
        return None

    def _close(self, state: SymbolState, result: str, r: float, price: float, candle: Candle) -> TradeOutcome:
        outcome = TradeOutcome(
            trade=state.open_trade,
            result=result,
            realized_r=r,
            close_price=price,
            closed_at_ms=candle.open_time_ms,
        )
        state.open_trade = None
        log.info("trade_closed symbol=%s result=%s r=%+.2f close=%.5f", state.symbol, result, r, price)
        return outcome
