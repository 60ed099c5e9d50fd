from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backbot.exchange import InMemoryExchange
from backbot.market import AccountSnapshot, MarketSpec
from backbot.order_controller import OrderController
from backbot.risk_manager import RiskLimits, RiskManager


class FakeClock:
    """Settable clock for time-dependent behavior."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def btc_market():
    return MarketSpec(
        symbol="BTC_USDC_PERP",
        base_symbol="BTC",
        quote_symbol="USDC",
        tick_size=Decimal("0.1"),
        step_size=Decimal("0.0001"),
        min_notional=Decimal("5"),
    )


@pytest.fixture
def sol_market():
    return MarketSpec(
        symbol="SOL_USDC_PERP",
        base_symbol="SOL",
        quote_symbol="USDC",
        tick_size=Decimal("0.01"),
        step_size=Decimal("0.01"),
        min_notional=Decimal("5"),
    )


@pytest.fixture
def account(btc_market, sol_market):
    return AccountSnapshot(
        capital_available=Decimal("10000"),
        leverage=Decimal("1"),
        maker_fee=Decimal("0.0002"),
        max_open_orders=5,
        min_trade_volume=Decimal("200"),
        markets=(btc_market, sol_market),
    )


@pytest.fixture
def exchange(account, clock):
    return InMemoryExchange(account, clock=clock)


@pytest.fixture
def orders(exchange, clock):
    return OrderController(exchange, clock=clock)


@pytest.fixture
def risk_manager(clock):
    return RiskManager(RiskLimits(), clock=clock)
