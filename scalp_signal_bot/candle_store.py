from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from .models import Candle

RES_1M = "1m"
RES_5M = "5m"
RES_1H = "1h"


class CandleStore:
    """Bounded per (symbol, resolution) candle buffers; the oldest bar is evicted first.

    Callers hand bars over in chronological order; nothing here re-sorts them.
    """

    def __init__(self, capacity_1m: int = 100, capacity_5m: int = 80, capacity_1h: int = 100) -> None:
        self.capacities: Dict[str, int] = {
            RES_1M: max(1, int(capacity_1m)),
            RES_5M: max(1, int(capacity_5m)),
            RES_1H: max(1, int(capacity_1h)),
        }
        self._series: Dict[Tuple[str, str], Deque[Candle]] = {}

    def _buffer(self, symbol: str, resolution: str) -> Deque[Candle]:
        cap = self.capacities.get(resolution)
        if cap is None:
            raise ValueError(f"Unsupported resolution: {resolution}")
        key = (symbol, resolution)
        buf = self._series.get(key)
        if buf is None:
            buf = deque(maxlen=cap)
            self._series[key] = buf
        return buf

    def push(self, symbol: str, resolution: str, candle: Candle) -> None:
        self._buffer(symbol, resolution).append(candle)

    def load(self, symbol: str, resolution: str, candles: Iterable[Candle]) -> None:
        buf = self._buffer(symbol, resolution)
        buf.clear()
        # maxlen keeps only the most recent `capacity` entries
        buf.extend(candles)

    def get(self, symbol: str, resolution: str) -> List[Candle]:
        return list(self._buffer(symbol, resolution))

    def count(self, symbol: str, resolution: str) -> int:
        return len(self._buffer(symbol, resolution))

    def latest(self, symbol: str, resolution: str) -> Optional[Candle]:
        buf = self._buffer(symbol, resolution)
        return buf[-1] if buf else None
