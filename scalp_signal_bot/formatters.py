from __future__ import annotations

from datetime import datetime, timezone
import math
from typing import Optional

from .models import EXPIRED, WIN, SellSignal, TradeOutcome
from .stats import StatsReport


def _fmt_ms(ts_ms: int) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:.2f}"


def _code(text: str) -> str:
    return f"`{text}`"


def _bold(text: str) -> str:
    return f"**{text}**"


def format_sell_signal(sig: SellSignal) -> str:
    """Discord markdown alert for a fresh SELL."""
    t = sig.trade
    snap = sig.setup.snapshot
    lines = [
        f"🔴 {_bold(f'SCALP SELL {t.symbol}')}",
        f"💰 Entry: {_code(_fmt_price(t.entry_price))} | SL: {_code(_fmt_price(t.stop_loss))} | TP: {_code(_fmt_price(t.take_profit))}",
        f"📊 RR: {t.reward_risk_ratio:g} | Risk: {t.risk_distance:.2f} pts | Confidence: {t.confidence}%",
        f"📈 ATR: {t.atr_at_entry:.2f} | RSI: {snap.rsi:.0f} | Stoch: {snap.stoch_k:.0f} | 5m: {sig.trend}",
    ]
    if t.reasons:
        lines.append("✅ " + " | ".join(t.reasons))
    lines.append(f"⏰ {_fmt_ms(t.opened_at_ms)}")
    return "\n".join(lines)


def format_outcome(outcome: TradeOutcome) -> str:
    if outcome.result == WIN:
        icon = "✅"
    elif outcome.result == EXPIRED:
        icon = "⏰"
    else:
        icon = "❌"
    return (
        f"{icon} Trade closed: {outcome.trade.symbol} | {outcome.result} | "
        f"{outcome.realized_r:+g}R @ {_fmt_price(outcome.close_price)}"
    )


def format_profit_factor(pf: float) -> str:
    return "∞" if math.isinf(pf) else f"{pf:.2f}"


def format_stats(report: StatsReport) -> str:
    o = report.overall
    line = (
        f"📊 Live Stats: {o.wins}W {o.losses}L {o.expired}E | WR: {report.win_rate * 100:.1f}% | "
        f"PF: {format_profit_factor(report.profit_factor)} | {o.total_r:+.1f}R"
    )
    per_symbol = [
        f"{sym}: {st.wins}W {st.losses}L {st.expired}E {st.total_r:+.1f}R"
        for sym, st in sorted(report.by_symbol.items())
    ]
    if per_symbol:
        line += "\n" + "\n".join(per_symbol)
    return line
