from datetime import datetime

import pytest

from scalp_signal_bot.timefilter import SessionGate

from market_data import MINUTE_MS, ms


@pytest.mark.parametrize(
    "dt,active",
    [
        (datetime(2024, 1, 2, 12, 0), True),  # Tue
        (datetime(2024, 1, 2, 12, 59), True),
        (datetime(2024, 1, 2, 11, 59), False),
        (datetime(2024, 1, 2, 13, 0), False),
        (datetime(2024, 1, 1, 12, 30), True),  # Mon, after the 10h open
        (datetime(2024, 1, 1, 9, 30), False),
        (datetime(2024, 1, 5, 12, 30), True),  # Fri
        (datetime(2024, 1, 5, 13, 30), False),
        (datetime(2024, 1, 6, 12, 30), False),  # Sat
        (datetime(2024, 1, 7, 12, 30), False),  # Sun
    ],
)
def test_session_window(dt, active):
    assert SessionGate().is_active_session(ms(dt)) is active


def test_monday_rule_never_widens_the_window():
    gate = SessionGate(start_hour=8, end_hour=13, monday_open_hour=10)
    assert gate.is_active_session(ms(datetime(2024, 1, 1, 9, 0))) is False
    assert gate.is_active_session(ms(datetime(2024, 1, 2, 9, 0))) is True


def test_cooldown_without_previous_signal():
    assert SessionGate().check_cooldown(None, 0) == (True, 0)


def test_cooldown_reports_remaining_minutes_rounded_up():
    gate = SessionGate(cooldown_min=5)
    t0 = ms(datetime(2024, 1, 2, 12, 30))

    assert gate.check_cooldown(t0, t0 + 3 * MINUTE_MS) == (False, 2)
    assert gate.check_cooldown(t0, t0 + 30_000) == (False, 5)
    assert gate.check_cooldown(t0, t0 + 4 * MINUTE_MS + 1) == (False, 1)
    assert gate.check_cooldown(t0, t0 + 5 * MINUTE_MS) == (True, 0)
