"""
Market data and account snapshot value types.

These are the read-only inputs the engines receive from the exchange
collaborator every cycle. All prices, quantities and notionals are Decimal.

Examples:
    >>> from decimal import Decimal
    >>> spec = MarketSpec(
    ...     symbol="SOL_USDC_PERP",
    ...     base_symbol="SOL",
    ...     quote_symbol="USDC",
    ...     tick_size=Decimal("0.01"),
    ...     step_size=Decimal("0.001"),
    ... )
    >>> spec.price_decimals, spec.quantity_decimals
    (2, 3)
"""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any, List, Optional, Tuple

from .errors import MarketNotFoundError


def to_decimal(value: Any) -> Decimal:
    """Convert exchange numerics (str/int/float/Decimal) to Decimal."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _decimals_of(increment: Decimal) -> int:
    exponent = increment.normalize().as_tuple().exponent
    return max(0, -exponent)


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar. Sequences are ordered oldest-first.

    ``timestamp`` is the bar open time as an epoch number (seconds or
    milliseconds, consistent within a series). ``volume`` may be None when
    the exchange omitted it.
    """

    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Optional[Decimal]
    timestamp: int

    @classmethod
    def from_raw(cls, raw: dict) -> "Candle":
        """Build a candle from an exchange payload with string numerics."""
        volume = raw.get("volume")
        return cls(
            open=to_decimal(raw["open"]),
            high=to_decimal(raw["high"]),
            low=to_decimal(raw["low"]),
            close=to_decimal(raw["close"]),
            volume=to_decimal(volume) if volume is not None else None,
            timestamp=int(raw["timestamp"]),
        )


@dataclass(frozen=True)
class MarketSpec:
    """Static trading rules for one symbol."""

    symbol: str
    base_symbol: str
    quote_symbol: str
    tick_size: Decimal
    step_size: Decimal
    min_notional: Decimal = Decimal("0")

    @property
    def price_decimals(self) -> int:
        return _decimals_of(self.tick_size)

    @property
    def quantity_decimals(self) -> int:
        return _decimals_of(self.step_size)

    def format_price(self, value: Decimal) -> Decimal:
        """Round a price to the market's tick precision."""
        quantum = Decimal(1).scaleb(-self.price_decimals)
        return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)

    def format_quantity(self, value: Decimal) -> Decimal:
        """Round a quantity down to the market's step precision."""
        quantum = Decimal(1).scaleb(-self.quantity_decimals)
        return to_decimal(value).quantize(quantum, rounding=ROUND_DOWN)


@dataclass(frozen=True)
class Ticker:
    """Latest price and rolling volume for a symbol."""

    symbol: str
    last_price: Optional[Decimal] = None
    mark_price: Optional[Decimal] = None
    volume_24h: Decimal = Decimal("0")

    @property
    def price(self) -> Decimal:
        """Last traded price, falling back to mark price, else zero."""
        return self.last_price or self.mark_price or Decimal("0")


def derive_min_trade_volume(
    capital_available: Decimal,
    max_volume_usd: Decimal,
    max_risk_per_trade: Decimal,
) -> Decimal:
    """Smallest notional worth trading: the configured cap or the risk budget, whichever is lower."""
    risk_based = capital_available * max_risk_per_trade
    return min(max_volume_usd, risk_based)


@dataclass(frozen=True)
class AccountSnapshot:
    """Account state recomputed by the collaborator every decision cycle.

    Attributes:
        capital_available: Net equity available multiplied by leverage
        leverage: Account leverage multiplier
        maker_fee: Maker fee as a fraction (e.g. Decimal("0.0002"))
        max_open_orders: Concurrency limit for positions and scheduled orders
        min_trade_volume: Minimum per-trade notional
        markets: Tradable markets
    """

    capital_available: Decimal
    leverage: Decimal
    maker_fee: Decimal
    max_open_orders: int
    min_trade_volume: Decimal
    markets: Tuple[MarketSpec, ...] = field(default_factory=tuple)

    @property
    def symbols(self) -> List[str]:
        return [m.symbol for m in self.markets]

    def market(self, symbol: str) -> MarketSpec:
        """Look up a tradable market.

        Raises:
            MarketNotFoundError: If the symbol is not tradable
        """
        for spec in self.markets:
            if spec.symbol == symbol:
                return spec
        raise MarketNotFoundError(f"Market {symbol} not found")
