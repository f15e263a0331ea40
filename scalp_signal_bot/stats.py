from __future__ import annotations

from dataclasses import dataclass, replace
import math
from typing import Dict

from .models import EXPIRED, LOSS, WIN, TradeOutcome


@dataclass
class SymbolStats:
    wins: int = 0
    losses: int = 0
    expired: int = 0
    total_r: float = 0.0

    @property
    def closed(self) -> int:
        return self.wins + self.losses

    def add(self, result: str, r: float) -> None:
        if result == WIN:
            self.wins += 1
        elif result == LOSS:
            self.losses += 1
        elif result == EXPIRED:
            self.expired += 1
        else:
            raise ValueError(f"Unknown trade result: {result}")
        self.total_r += r


@dataclass(frozen=True)
class StatsReport:
    overall: SymbolStats
    by_symbol: Dict[str, SymbolStats]
    win_rate: float
    profit_factor: float  # math.inf when there are no losses
    closed: int


class StatsAggregator:
    def __init__(self, reward_risk: float):
        self.reward_risk = reward_risk
        self.overall = SymbolStats()
        self.by_symbol: Dict[str, SymbolStats] = {}

    def record(self, symbol: str, outcome: TradeOutcome) -> None:
        self.overall.add(outcome.result, outcome.realized_r)
        self.by_symbol.setdefault(symbol, SymbolStats()).add(outcome.result, outcome.realized_r)

    def win_rate(self) -> float:
        closed = self.overall.closed
        return self.overall.wins / closed if closed > 0 else 0.0

    def profit_factor(self) -> float:
        if self.overall.losses == 0:
            return math.inf
        return (self.overall.wins * self.reward_risk) / self.overall.losses

    def report(self) -> StatsReport:
        return StatsReport(
            overall=replace(self.overall),
            by_symbol={sym: replace(st) for sym, st in self.by_symbol.items()},
            win_rate=self.win_rate(),
            profit_factor=self.profit_factor(),
            closed=self.overall.closed,
        )
