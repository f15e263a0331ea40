"""File hand-off to the MT5 expert advisor.

The bot drops ``signal_<SYMBOL>.json`` into a shared folder; the EA places the
order, sizes the lot from ``riskPercent`` and answers with
``result_<SYMBOL>.json``. Those results are bookkeeping only: the engine's own
resolution stays authoritative for realized R.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
import json
import logging
import os
import shutil
from typing import Awaitable, Callable, Dict, List, Optional

from .models import Trade

log = logging.getLogger("bridge")

EA_SOURCE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "mt5", "ScalpBridgeEA.mq5")


@dataclass(frozen=True)
class BridgeResult:
    symbol: str
    ticket: Optional[int]
    status: str
    entry_price: Optional[float]
    close_price: Optional[float]
    pnl: Optional[float]
    currency: str
    r_pnl: Optional[float]
    error: str
    raw: dict
    signal_id: str = ""
    lot_size: Optional[float] = None
    matched: bool = False


def export_ea(dest_dir: str) -> str:
    """Copy the ScalpBridgeEA source into dest_dir; returns the written path."""
    os.makedirs(dest_dir, exist_ok=True)
    dest = os.path.join(dest_dir, os.path.basename(EA_SOURCE))
    shutil.copyfile(EA_SOURCE, dest)
    return dest


def mt5_symbol(symbol: str) -> str:
    return symbol.replace("/", "")  # XAU/USD -> XAUUSD


def _opt_float(v) -> Optional[float]:
    return None if v is None or v == "" else float(v)


def parse_result(raw: dict) -> BridgeResult:
    ticket = raw.get("ticket")
    return BridgeResult(
        symbol=str(raw.get("symbol", "")),
        ticket=int(ticket) if ticket not in (None, "") else None,
        status=str(raw.get("status", "")),
        entry_price=_opt_float(raw.get("entryPrice")),
        close_price=_opt_float(raw.get("closePrice")),
        pnl=_opt_float(raw.get("pnl")),
        currency=str(raw.get("currency", "")),
        r_pnl=_opt_float(raw.get("rPnL")),
        error=str(raw.get("error", "")),
        raw=raw,
        signal_id=str(raw.get("id", "")),
        lot_size=_opt_float(raw.get("lotSize")),
    )


class MT5Bridge:
    def __init__(
        self,
        *,
        enabled: bool,
        signals_dir: str,
        risk_percent: float = 1.0,
        poll_s: float = 2.0,
        signal_ttl_s: int = 60,
    ):
        self.enabled = bool(enabled)
        self.signals_dir = signals_dir
        self.risk_percent = float(risk_percent)
        self.poll_s = float(poll_s)
        self.signal_ttl_s = int(signal_ttl_s)
        self.pending: Dict[str, str] = {}  # MT5 symbol -> id of the last signal sent

        if self.enabled:
            os.makedirs(self.signals_dir, exist_ok=True)
            log.info("mt5_bridge enabled dir=%s risk_pct=%.2f", self.signals_dir, self.risk_percent)

    def signal_payload(self, trade: Trade, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now(timezone.utc)
        return {
            "id": f"{trade.symbol}_{int(now.timestamp() * 1000)}",
            "symbol": mt5_symbol(trade.symbol),
            "action": trade.side,
            "entryPrice": trade.entry_price,
            "sl": trade.stop_loss,
            "tp": trade.take_profit,
            "riskPercent": self.risk_percent,
            "rr": trade.reward_risk_ratio,
            "confidence": trade.confidence,
            "reasons": list(trade.reasons),
            "timestamp": now.isoformat(),
            "expire": (now + timedelta(seconds=self.signal_ttl_s)).isoformat(),
        }

    def send_trade(self, trade: Trade, now: Optional[datetime] = None) -> bool:
        if not self.enabled:
            return False
        payload = self.signal_payload(trade, now)
        path = os.path.join(self.signals_dir, f"signal_{payload['symbol']}.json")
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            log.error("mt5_signal_write_failed symbol=%s path=%s err=%s", trade.symbol, path, e)
            return False
        self.pending[payload["symbol"]] = payload["id"]
        log.info(
            "mt5_signal_sent symbol=%s entry=%.5f sl=%.5f tp=%.5f risk_pct=%.2f",
            payload["symbol"],
            trade.entry_price,
            trade.stop_loss,
            trade.take_profit,
            self.risk_percent,
        )
        return True

    def poll_results(self) -> List[BridgeResult]:
        if not os.path.isdir(self.signals_dir):
            return []
        out: List[BridgeResult] = []
        for name in sorted(os.listdir(self.signals_dir)):
            if not (name.startswith("result_") and name.endswith(".json")):
                continue
            path = os.path.join(self.signals_dir, name)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    res = parse_result(json.load(f))
            except (OSError, ValueError, TypeError) as e:
                log.warning("mt5_result_unreadable path=%s err=%s", path, e)
                res = None
            try:
                os.remove(path)
            except OSError as e:
                log.warning("mt5_result_remove_failed path=%s err=%s", path, e)
            if res is None:
                continue
            res = self._match(res)
            log.info(
                "mt5_result symbol=%s id=%s matched=%s ticket=%s status=%s lots=%s entry=%s close=%s pnl=%s %s r=%s",
                res.symbol,
                res.signal_id or "-",
                res.matched,
                res.ticket,
                res.status,
                res.lot_size,
                res.entry_price,
                res.close_price,
                res.pnl,
                res.currency,
                res.r_pnl,
            )
            out.append(res)
        return out

    def _match(self, res: BridgeResult) -> BridgeResult:
        """Pair a result with the signal still pending for its symbol."""
        expected = self.pending.get(res.symbol)
        if expected is None or res.signal_id != expected:
            log.warning(
                "mt5_result_unmatched symbol=%s id=%s pending=%s", res.symbol, res.signal_id or "-", expected or "-"
            )
            return res
        del self.pending[res.symbol]
        return replace(res, matched=True)

    async def run(self, on_result: Callable[[BridgeResult], Awaitable[None]]) -> None:
        """Poll the result folder forever."""
        if not self.enabled:
            return
        while True:
            for res in self.poll_results():
                await on_result(res)
            await asyncio.sleep(self.poll_s)
