from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..models import Candle

log = logging.getLogger("twelvedata")

BASE_URL = "https://api.twelvedata.com"
INTERVALS = {"1m": "1min", "5m": "5min", "1h": "1h"}


class ProviderError(RuntimeError):
    pass


def _parse_datetime_ms(raw: str) -> int:
    raw = raw.strip()
    fmt = "%Y-%m-%d %H:%M:%S" if " " in raw else "%Y-%m-%d"
    dt = datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_time_series(payload: Dict[str, Any]) -> List[Candle]:
    """TwelveData /time_series body -> chronological candles (the API sends newest first)."""
    if payload.get("status") == "error":
        raise ProviderError(f"TwelveData error {payload.get('code')}: {payload.get('message')}")
    values = payload.get("values")
    if not values:
        return []

    out: List[Candle] = []
    for row in reversed(values):
        out.append(Candle(
            open_time_ms=_parse_datetime_ms(row["datetime"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume") or 0.0),
        ))
    return out


class TwelveDataProvider:
    def __init__(
        self,
        api_key: str,
        *,
        rest_timeout_s: int = 20,
        rest_max_retries: int = 4,
        rest_backoff_s: float = 0.8,
    ):
        self.api_key = api_key
        self.rest_timeout_s = rest_timeout_s
        self.rest_max_retries = rest_max_retries
        self.rest_backoff_s = rest_backoff_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        """Close the shared aiohttp session (best-effort)."""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.rest_timeout_s,
            connect=min(10, self.rest_timeout_s),
            sock_read=max(10, int(self.rest_timeout_s * 0.75)),
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout())
        return self._session

    async def fetch_candles(self, symbol: str, resolution: str, outputsize: int) -> List[Candle]:
        interval = INTERVALS.get(resolution)
        if interval is None:
            raise ValueError(f"Unsupported resolution: {resolution}")
        params = {
            "symbol": symbol,
            "interval": interval,
            "outputsize": int(outputsize),
            "timezone": "UTC",
            "apikey": self.api_key,
        }

        sess = await self._get_session()

        backoff = float(self.rest_backoff_s)
        last_err: Optional[BaseException] = None
        data: Dict[str, Any] = {}
        for attempt in range(1, int(self.rest_max_retries) + 1):
            try:
                async with sess.get(BASE_URL + "/time_series", params=params) as resp:
                    if resp.status == 429:
                        log.warning(
                            "rest_rate_limited symbol=%s res=%s sleep=%.1fs",
                            symbol,
                            resolution,
                            backoff,
                        )
                        await asyncio.sleep(backoff)
                        backoff = min(backoff * 2.0, 20.0)
                        continue

                    if resp.status != 200:
                        txt = await resp.text()
                        raise ProviderError(f"TwelveData time_series failed: {resp.status} {txt[:500]}")

                    data = await resp.json(content_type=None)

                last_err = None
                break

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_err = e
                if attempt >= int(self.rest_max_retries):
                    break
                log.warning(
                    "rest_timeout_or_client_err attempt=%d/%d symbol=%s res=%s backoff=%.1fs err=%s",
                    attempt,
                    self.rest_max_retries,
                    symbol,
                    resolution,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2.0, 20.0)

        if last_err is not None:
            raise last_err
        return parse_time_series(data)
