from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from .bridge import BridgeResult, MT5Bridge
from .candle_store import RES_1H, RES_1M, RES_5M
from .config import Config
from .engine import Decision, ScalpEngine
from .formatters import format_outcome, format_sell_signal, format_stats
from .models import Candle, SellSignal
from .notifier.discord import DiscordNotifier
from .providers.twelvedata import TwelveDataProvider
from .timefilter import utc_dt

log = logging.getLogger("runner")


class ScalpRunner:
    """Polls TwelveData once a minute and drives the engine for every watched symbol."""

    def __init__(self, cfg: Config, *, provider=None, clock: Callable[[], float] = time.time):
        self.cfg = cfg
        self.engine = ScalpEngine(cfg.engine)
        self.provider = provider or TwelveDataProvider(
            cfg.provider.api_key,
            rest_timeout_s=cfg.provider.rest_timeout_s,
        )
        self.discord = DiscordNotifier(
            webhook_url=cfg.discord.webhook_url,
            timeout_s=cfg.discord.timeout_s,
        )
        self.bridge = MT5Bridge(
            enabled=cfg.bridge.enabled,
            signals_dir=cfg.bridge.signals_dir,
            risk_percent=cfg.bridge.risk_percent,
            poll_s=cfg.bridge.poll_s,
            signal_ttl_s=cfg.bridge.signal_ttl_s,
        )
        self.clock = clock
        self.symbols = [s.strip() for s in (cfg.provider.symbols or []) if s.strip()]

        self._last_refresh: Dict[Tuple[str, str], float] = {}
        self._last_resolved: Dict[str, int] = {}
        self._last_stats_hour: Optional[int] = None

    def _outputsize(self, res: str) -> int:
        p = self.cfg.provider
        return {RES_1M: p.outputsize_1m, RES_5M: p.outputsize_5m, RES_1H: p.outputsize_1h}[res]

    def _loader(self, res: str):
        return {RES_1M: self.engine.load_1m, RES_5M: self.engine.load_5m, RES_1H: self.engine.load_1h}[res]

    async def _load(self, symbol: str, res: str, now_s: float) -> int:
        candles = await self.provider.fetch_candles(symbol, res, self._outputsize(res))
        if candles:
            self._loader(res)(symbol, candles)
        self._last_refresh[(symbol, res)] = now_s
        return len(candles)

    async def warmup(self) -> None:
        log.info("warmup_start symbols=%s", self.symbols)
        now_s = self.clock()
        failures = []
        for sym in self.symbols:
            for res in (RES_1M, RES_5M, RES_1H):
                try:
                    n = await self._load(sym, res, now_s)
                    log.info("warmup_loaded symbol=%s res=%s bars=%d", sym, res, n)
                except Exception as e:
                    failures.append((sym, res, repr(e)))
            # API rate limit
            await asyncio.sleep(self.cfg.provider.request_gap_s)
        for sym, res, err in failures:
            log.warning("warmup_failed symbol=%s res=%s err=%s", sym, res, err)
        log.info("warmup_done")

    def in_fetch_window(self, now_s: float) -> bool:
        h = utc_dt(int(now_s * 1000)).hour
        return self.cfg.provider.fetch_start_hour <= h < self.cfg.provider.fetch_end_hour

    def _unresolved_bars(self, symbol: str, candles: List[Candle]) -> List[Candle]:
        """Bars not yet offered to resolution, oldest first. The first poll only sees the latest bar."""
        last = self._last_resolved.get(symbol)
        if last is None:
            fresh = candles[-1:]
        else:
            fresh = [c for c in candles if c.open_time_ms > last]
        if fresh:
            self._last_resolved[symbol] = fresh[-1].open_time_ms
        return fresh

    async def _refresh_if_stale(self, symbol: str, res: str, period_s: float, now_s: float) -> None:
        last = self._last_refresh.get((symbol, res))
        if last is None or now_s - last >= period_s:
            await self._load(symbol, res, now_s)

    async def process_symbol(self, symbol: str, now_s: float) -> Optional[Decision]:
        candles = await self.provider.fetch_candles(symbol, RES_1M, self.cfg.provider.outputsize_1m)
        if not candles:
            log.warning("no_candles symbol=%s res=1m", symbol)
            return None
        latest = candles[-1]
        self.engine.load_1m(symbol, candles)
        self._last_refresh[(symbol, RES_1M)] = now_s

        await self._refresh_if_stale(symbol, RES_5M, self.cfg.provider.refresh_5m_s, now_s)
        await self._refresh_if_stale(symbol, RES_1H, self.cfg.provider.refresh_1h_s, now_s)

        for bar in self._unresolved_bars(symbol, candles):
            outcome = self.engine.resolve_open_trade(symbol, bar)
            if outcome is not None:
                await self.discord.send(format_outcome(outcome))
                break

        decision = self.engine.generate_signal(symbol, latest.close, int(now_s * 1000))
        log.info("tick symbol=%s price=%.5f action=%s", symbol, latest.close, decision.action)
        if isinstance(decision, SellSignal):
            await self.discord.send(format_sell_signal(decision))
            self.bridge.send_trade(decision.trade)
        return decision

    async def poll_once(self) -> None:
        now_s = self.clock()
        if not self.in_fetch_window(now_s):
            return
        for sym in self.symbols:
            try:
                await self.process_symbol(sym, now_s)
            except Exception as e:
                log.warning("symbol_failed symbol=%s err=%s", sym, e)
            await asyncio.sleep(self.cfg.provider.request_gap_s)
        self._maybe_log_stats(now_s)

    def _maybe_log_stats(self, now_s: float) -> None:
        dt = utc_dt(int(now_s * 1000))
        if dt.minute != 0 or self._last_stats_hour == dt.hour:
            return
        self._last_stats_hour = dt.hour
        log.info("%s", format_stats(self.engine.get_stats()))

    async def _on_bridge_result(self, res: BridgeResult) -> None:
        status = "MT5 Executed" if res.status == "OPENED" else "MT5 Failed"
        msg = f"{status}: {res.symbol} | Ticket: {res.ticket} | Lots: {res.lot_size} | Entry: {res.entry_price}"
        if res.error:
            msg += f" | Error: {res.error}"
        await self.discord.send(msg)

    async def run_forever(self) -> None:
        if not self.symbols:
            raise ValueError("No symbols configured.")

        await self.warmup()
        bridge_task = asyncio.create_task(self.bridge.run(self._on_bridge_result)) if self.bridge.enabled else None
        log.info("polling interval=%ss symbols=%d", self.cfg.provider.poll_interval_s, len(self.symbols))
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self.cfg.provider.poll_interval_s)
        finally:
            if bridge_task is not None:
                bridge_task.cancel()
