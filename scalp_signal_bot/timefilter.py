from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import math
from typing import Optional, Tuple


def utc_dt(ts_ms: int) -> datetime:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)


@dataclass
class SessionGate:
    """Weekday / UTC-hour trading window plus per-symbol signal cooldown."""
    start_hour: int = 12
    end_hour: int = 13
    monday_open_hour: int = 10
    cooldown_min: int = 5

    def is_active_session(self, ts_ms: int) -> bool:
        dt = utc_dt(ts_ms)
        day = dt.weekday()  # 0=Mon .. 6=Sun
        h = dt.hour

        if day >= 5:
            return False
        # Monday and Friday edge rules only ever narrow the window.
        if day == 0 and h < self.monday_open_hour:
            return False
        if day == 4 and h >= self.end_hour:
            return False
        return self.start_hour <= h < self.end_hour

    def check_cooldown(self, last_signal_ms: Optional[int], ts_ms: int) -> Tuple[bool, int]:
        """Returns (ok, minutes_remaining)."""
        if last_signal_ms is None:
            return True, 0
        cooldown_ms = self.cooldown_min * 60_000
        elapsed = ts_ms - last_signal_ms
        if elapsed >= cooldown_ms:
            return True, 0
        return False, int(math.ceil((cooldown_ms - elapsed) / 60_000))
