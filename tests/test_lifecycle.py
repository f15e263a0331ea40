import pytest

from scalp_signal_bot.lifecycle import InvalidTradeLevels, SymbolState, TradeAlreadyOpen, TradeLifecycle
from scalp_signal_bot.models import EXPIRED, LOSS, WIN, Candle, MarketSnapshot, Setup

T0 = 1_704_198_600_000  # 2024-01-02 12:30 UTC


def _c(minute: int, o: float, h: float, l: float, c: float) -> Candle:
    return Candle(open_time_ms=T0 + minute * 60_000, open=o, high=h, low=l, close=c)


def _setup(price: float = 100.0, atr: float = 1.0) -> Setup:
    snap = MarketSnapshot(
        price=price, prev_price=price + 0.5, ema8=price + 0.2, ema8_prev=price + 0.3,
        ema21=price + 0.5, ema21_prev=price + 0.6, rsi=45.0, rsi_prev=50.0, atr=atr,
        stoch_k=40.0, stoch_d=55.0, stoch_k_prev=60.0, stoch_d_prev=55.0,
        macd_hist=-0.1, macd_hist_prev=0.0, pullback_high=price + 0.6,
    )
    return Setup(
        price=price,
        stop_loss=price + atr,
        take_profit=price - atr * 1.8,
        risk_distance=atr,
        atr=atr,
        confidence=80,
        snapshot=snap,
        reasons=("Clean EMA21 pullback (+12)",),
    )


def _opened():
    lc = TradeLifecycle(reward_risk=1.8, max_hold_min=20)
    st = SymbolState(symbol="XAU/USD")
    trade = lc.open_trade(st, _setup(), 100.0, T0)
    return lc, st, trade


def test_open_sets_levels_and_cooldown_anchor():
    _, st, trade = _opened()

    assert st.open_trade is trade
    assert st.last_signal_ms == T0
    assert trade.stop_loss == pytest.approx(101.0)
    assert trade.take_profit == pytest.approx(98.2)
    assert trade.risk_distance == pytest.approx(1.0)
    assert trade.reward_risk_ratio == 1.8
    assert trade.side == "SELL"


def test_second_open_raises():
    lc, st, _ = _opened()
    with pytest.raises(TradeAlreadyOpen):
        lc.open_trade(st, _setup(), 100.0, T0 + 60_000)


@pytest.mark.parametrize("price", [101.0, 101.5, 98.0, 97.0])
def test_price_outside_levels_rejected(price):
    lc = TradeLifecycle(reward_risk=1.8, max_hold_min=20)
    st = SymbolState(symbol="XAU/USD")
    with pytest.raises(InvalidTradeLevels):
        lc.open_trade(st, _setup(), price, T0)
    assert st.open_trade is None
    assert st.last_signal_ms is None


def test_untouched_bar_keeps_trade_open():
    lc, st, trade = _opened()
    assert lc.resolve(st, _c(1, 100.0, 100.9, 98.3, 99.5)) is None
    assert st.open_trade is trade


def test_stop_hit():
    lc, st, _ = _opened()
    out = lc.resolve(st, _c(1, 100.0, 101.0, 99.8, 100.6))
    assert out.result == LOSS
    assert out.realized_r == -1.0
    assert out.close_price == pytest.approx(101.0)
    assert out.closed_at_ms == T0 + 60_000
    assert st.open_trade is None


def test_target_hit():
    lc, st, _ = _opened()
    out = lc.resolve(st, _c(1, 99.0, 99.2, 98.0, 98.5))
    assert out.result == WIN
    assert out.realized_r == 1.8
    assert out.close_price == pytest.approx(98.2)


def test_stop_and_target_in_one_bar_counts_as_loss():
    lc, st, _ = _opened()
    out = lc.resolve(st, _c(1, 100.0, 101.5, 97.5, 99.0))
    assert out.result == LOSS


def test_expiry_measured_from_bar_open_time():
    lc, st, _ = _opened()
    assert lc.resolve(st, _c(19, 100.0, 100.5, 99.5, 99.9)) is None
    out = lc.resolve(st, _c(20, 100.0, 100.5, 99.5, 99.7))
    assert out.result == EXPIRED
    assert out.realized_r == -0.15
    assert out.close_price == 99.7


def test_resolve_without_trade():
    lc = TradeLifecycle(reward_risk=1.8, max_hold_min=20)
    assert lc.resolve(SymbolState(symbol="XAU/USD"), _c(1, 1, 2, 0, 1)) is None
