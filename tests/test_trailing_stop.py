"""Trailing-stop engine tests: gap, ratchet, clamp, force close and closed-trade reporting."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backbot.config import TrailingConfig
from backbot.market import Ticker
from backbot.order_controller import OrderController
from backbot.orders import Order, OrderType, Side
from backbot.position import Position
from backbot.trailing_stop import (
    ATRTrailingParams,
    TrailingStopEngine,
    calculate_atr_trailing_stop,
    calculate_trailing_gap,
)

from helpers import candle, candles_from_closes

SOL = "SOL_USDC_PERP"
LIQUID = Decimal("1000000")


def rising_candles(first_low=100, count=5):
    """Strictly increasing lows and highs, 5-minute spacing."""
    return [candle(first_low + i + 1, ts=i * 300) for i in range(count)]


def long_position(entry="100", mark="110", break_even="112", qty="1", symbol=SOL):
    return Position(
        symbol=symbol,
        net_quantity=Decimal(qty),
        entry_price=Decimal(entry),
        mark_price=Decimal(mark),
        break_even_price=Decimal(break_even),
    )


def stop_order(oid, price, side=Side.ASK, symbol=SOL, created_at=None):
    return Order(
        order_id=oid,
        symbol=symbol,
        side=side,
        order_type=OrderType.LIMIT,
        quantity=Decimal("1"),
        created_at=created_at or datetime(2026, 3, 2, tzinfo=timezone.utc),
        price=Decimal(price),
        trigger_price=Decimal(price) - Decimal("0.01"),
        reduce_only=True,
    )


def setup_market(exchange, candles, *, price="110", volume_24h=LIQUID, symbol=SOL):
    exchange.set_candles(symbol, candles)
    exchange.set_ticker(Ticker(symbol=symbol, last_price=Decimal(price), volume_24h=volume_24h))


@pytest.fixture
def engine(exchange, orders, risk_manager):
    return TrailingStopEngine(exchange, orders, risk_manager)


class TestNewStop:

    @pytest.mark.asyncio
    async def test_rising_lows_set_stop_at_swing_low(self, engine, exchange):
        """Lows 100..104, mark 110: gap 10, stop at 100, below mark and break-even."""
        exchange.positions = [long_position()]
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()

        assert report.updated == {SOL: Decimal("100")}
        spec = exchange.placed[0]
        assert spec.price == Decimal("100.00")
        assert spec.trigger_price == Decimal("99.99")
        assert spec.side == Side.ASK
        assert spec.reduce_only and spec.post_only
        assert spec.quantity == Decimal("1.00")
        assert spec.price < Decimal("110")
        assert spec.price <= Decimal("112")

    @pytest.mark.asyncio
    async def test_long_stop_clamped_at_break_even(self, engine, exchange):
        exchange.positions = [long_position(break_even="95")]
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("95")}
        assert exchange.placed[0].price == Decimal("95.00")

    @pytest.mark.asyncio
    async def test_short_stop_uses_swing_high(self, engine, exchange):
        short = Position(
            symbol=SOL, net_quantity=Decimal("-2"), entry_price=Decimal("120"),
            mark_price=Decimal("110"), break_even_price=Decimal("108"),
        )
        exchange.positions = [short]
        # highs 112..116
        setup_market(exchange, [candle(111 + i, ts=i * 300) for i in range(5)])

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("116")}
        spec = exchange.placed[0]
        assert spec.side == Side.BID
        assert spec.trigger_price == Decimal("116.01")
        assert spec.quantity == Decimal("2.00")

    @pytest.mark.asyncio
    async def test_short_stop_clamped_at_break_even(self, engine, exchange):
        short = Position(
            symbol=SOL, net_quantity=Decimal("-1"), entry_price=Decimal("120"),
            mark_price=Decimal("110"), break_even_price=Decimal("119"),
        )
        exchange.positions = [short]
        setup_market(exchange, [candle(111 + i, ts=i * 300) for i in range(5)])

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("119")}


class TestRatchet:

    @pytest.mark.asyncio
    async def test_better_existing_stop_is_kept(self, engine, exchange):
        exchange.positions = [long_position()]
        exchange.add_order(stop_order("s1", "102"))
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        assert report.covered == [SOL]
        assert exchange.placed == []
        assert exchange.cancelled == []

    @pytest.mark.asyncio
    async def test_worse_existing_stop_is_replaced(self, engine, exchange):
        exchange.positions = [long_position()]
        exchange.add_order(stop_order("s1", "97"))
        exchange.add_order(stop_order("s2", "96"))
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("100")}
        assert sorted(exchange.cancelled) == ["s1", "s2"]
        assert len(exchange.placed) == 1
        assert exchange.placed[0].price == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_resting_take_profit_is_not_a_stop_level(self, engine, exchange):
        """A take-profit above mark must not pull a losing long's stop above mark."""
        exchange.positions = [long_position(mark="110", break_even="112")]
        exchange.add_order(stop_order("tp1", "130"))
        setup_market(exchange, rising_candles(first_low=102))

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("102")}
        assert exchange.placed[0].price == Decimal("102.00")
        assert exchange.placed[0].price < Decimal("110")
        assert exchange.cancelled == ["tp1"]

    @pytest.mark.asyncio
    async def test_short_take_profit_below_mark_is_ignored(self, engine, exchange):
        short = Position(
            symbol=SOL, net_quantity=Decimal("-1"), entry_price=Decimal("120"),
            mark_price=Decimal("110"), break_even_price=Decimal("108"),
        )
        exchange.positions = [short]
        exchange.add_order(stop_order("tp1", "90", side=Side.BID))
        # highs 112..116
        setup_market(exchange, [candle(111 + i, ts=i * 300) for i in range(5)])

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("116")}
        assert exchange.placed[0].price > Decimal("110")

    @pytest.mark.asyncio
    async def test_stop_within_tolerance_is_covered(self, engine, exchange):
        exchange.positions = [long_position()]
        # 0.1% of 110 = 0.11
        exchange.add_order(stop_order("s1", "99.95"))
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        assert report.covered == [SOL]
        assert exchange.placed == []

    @pytest.mark.asyncio
    async def test_repeated_cycles_never_retreat(self, engine, exchange):
        exchange.positions = [long_position(break_even="200")]
        setup_market(exchange, rising_candles(first_low=100))
        await engine.run_cycle()

        # price dips: the raw candidate would be lower
        exchange.positions = [long_position(mark="104", break_even="200")]
        setup_market(exchange, rising_candles(first_low=95), price="104")
        report = await engine.run_cycle()

        assert report.covered == [SOL]
        assert len(exchange.placed) == 1

        # price rallies: the stop moves up
        exchange.positions = [long_position(mark="130", break_even="200")]
        setup_market(exchange, rising_candles(first_low=120), price="130")
        report = await engine.run_cycle()

        assert report.updated == {SOL: Decimal("120")}
        assert [s.price for s in exchange.placed] == [Decimal("100.00"), Decimal("120.00")]


class TestSkips:

    @pytest.mark.asyncio
    async def test_illiquid_market_is_force_closed(self, engine, exchange):
        exchange.positions = [long_position()]
        # min_trade_volume 200 * 0.1 = 20
        setup_market(exchange, rising_candles(), volume_24h=Decimal("19.99"))

        report = await engine.run_cycle()
        assert report.force_closed == [SOL]
        spec = exchange.placed[0]
        assert spec.order_type == OrderType.MARKET
        assert spec.reduce_only
        assert spec.side == Side.ASK

    @pytest.mark.asyncio
    async def test_zero_gap_places_nothing(self, engine, exchange):
        exchange.positions = [long_position(mark="99")]
        setup_market(exchange, rising_candles(), price="99")

        report = await engine.run_cycle()
        assert report.skipped == {SOL: "Zero trailing gap"}
        assert exchange.placed == []

    @pytest.mark.asyncio
    async def test_too_few_candles(self, engine, exchange):
        exchange.positions = [long_position()]
        setup_market(exchange, rising_candles(count=4))

        report = await engine.run_cycle()
        assert report.skipped == {SOL: "Zero trailing gap"}

    @pytest.mark.asyncio
    async def test_missing_market_data(self, engine, exchange):
        exchange.positions = [long_position()]
        report = await engine.run_cycle()
        assert report.skipped == {SOL: "No market data"}

    @pytest.mark.asyncio
    async def test_non_positive_stop_never_cancels_existing(self, engine, exchange):
        exchange.positions = [long_position(entry="10", mark="1", break_even="10")]
        exchange.add_order(stop_order("s1", "0.5"))
        setup_market(exchange, [candle(2, low=-5, ts=i * 300) for i in range(5)], price="1")

        report = await engine.run_cycle()
        # candidate -5 is ratcheted up to the existing 0.5 and found covered
        assert report.covered == [SOL]
        assert exchange.cancelled == []

    @pytest.mark.asyncio
    async def test_non_positive_stop_is_rejected(self, engine, exchange):
        exchange.positions = [long_position(entry="10", mark="1", break_even="10")]
        setup_market(exchange, [candle(2, low=-5, ts=i * 300) for i in range(5)], price="1")

        report = await engine.run_cycle()
        assert "Invalid stop price" in report.skipped[SOL]
        assert exchange.placed == []


class TestIsolationAndReporting:

    @pytest.mark.asyncio
    async def test_failure_on_one_position_does_not_block_others(self, engine, exchange):
        exchange.positions = [long_position(symbol="DOGE_USDC_PERP"), long_position()]
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        assert report.skipped == {"DOGE_USDC_PERP": "Market DOGE_USDC_PERP not found"}
        assert report.updated == {SOL: Decimal("100")}

    @pytest.mark.asyncio
    async def test_closed_position_reported_to_ledger(self, engine, exchange, risk_manager):
        exchange.positions = [long_position()]
        setup_market(exchange, rising_candles())
        await engine.run_cycle()

        exchange.positions = []
        report = await engine.run_cycle()

        # gross 10, fees 0.02 open + 0.002 close
        assert report.closed == {SOL: Decimal("9.978")}
        history = risk_manager.get_daily_pnl_history()
        assert history[0].total_pnl == Decimal("9.978")
        assert history[0].trade_count == 1

        again = await engine.run_cycle()
        assert again.closed == {}

    @pytest.mark.asyncio
    async def test_simulation_mode_places_nothing(self, exchange):
        engine = TrailingStopEngine(exchange, OrderController(exchange, simulation_mode=True))
        exchange.positions = [long_position()]
        exchange.add_order(stop_order("s1", "97"))
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        assert report.updated == {SOL: Decimal("100")}
        assert exchange.placed == []
        assert exchange.cancelled == []

    @pytest.mark.asyncio
    async def test_custom_window(self, exchange, orders):
        engine = TrailingStopEngine(exchange, orders, settings=TrailingConfig(window=2))
        exchange.positions = [long_position()]
        setup_market(exchange, rising_candles())

        report = await engine.run_cycle()
        # last two lows are 103 and 104
        assert report.updated == {SOL: Decimal("103")}


class TestGapHelpers:

    def test_long_gap_from_lowest_low(self):
        candles = rising_candles()
        assert calculate_trailing_gap(candles, Decimal("110"), True) == Decimal("10")

    def test_short_gap_from_highest_high(self):
        candles = rising_candles()
        # highest high is 106
        assert calculate_trailing_gap(candles, Decimal("100"), False) == Decimal("6")

    def test_gap_never_negative(self):
        assert calculate_trailing_gap(rising_candles(), Decimal("90"), True) == Decimal("0")

    def test_short_series(self):
        assert calculate_trailing_gap(rising_candles(count=3), Decimal("110"), True) == Decimal("0")


class TestATRTrailing:

    params = ATRTrailingParams(
        atr_value=Decimal("2"),
        trail_multiplier=Decimal("1.5"),
        partial_exit_rr=Decimal("0.5"),
        partial_exit_pct=Decimal("50"),
    )

    def test_long_with_enough_history(self):
        levels = calculate_atr_trailing_stop(
            candles_from_closes([100] * 14), Decimal("100"), Decimal("110"), True, self.params
        )
        assert levels.partial_target == Decimal("101")
        assert levels.trailing_stop == Decimal("107")

    def test_short_with_enough_history(self):
        levels = calculate_atr_trailing_stop(
            candles_from_closes([100] * 20), Decimal("100"), Decimal("90"), False, self.params
        )
        assert levels.partial_target == Decimal("99")
        assert levels.trailing_stop == Decimal("93")

    def test_short_history_falls_back_to_price_distance(self):
        levels = calculate_atr_trailing_stop(
            candles_from_closes([100] * 5), Decimal("100"), Decimal("110"), True, self.params
        )
        # 10 * 0.02 * 0.5
        assert levels.partial_target == Decimal("100.1")
        assert levels.trailing_stop == Decimal("107")
