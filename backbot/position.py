"""
Exchange position snapshot and stop ratchet helpers.

Positions are owned by the exchange. The engines read a fresh list every
cycle and never mutate it; changes happen only through reduce-only orders.

The ratchet helpers implement the trailing invariant: a protective stop only
moves in the position's favor and never crosses the break-even price.

Examples:
    >>> from decimal import Decimal
    >>> pos = Position(
    ...     symbol="BTC_USDC_PERP",
    ...     net_quantity=Decimal("0.5"),
    ...     entry_price=Decimal("50000"),
    ...     mark_price=Decimal("51000"),
    ...     break_even_price=Decimal("50050"),
    ... )
    >>> pos.is_long, pos.quantity
    (True, Decimal('0.5'))
    >>> clamp_to_break_even(Decimal("50500"), Decimal("50050"), is_long=True)
    Decimal('50050')
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional


@dataclass(frozen=True)
class Position:
    """Read-only view of an open exchange position.

    Attributes:
        symbol: Market symbol
        net_quantity: Signed quantity (positive = long, negative = short)
        entry_price: Average entry price
        mark_price: Current mark price
        break_even_price: Price at which closing nets zero after fees
        net_cost: Notional cost of the position (unsigned)
    """

    symbol: str
    net_quantity: Decimal
    entry_price: Decimal
    mark_price: Decimal
    break_even_price: Optional[Decimal] = None
    net_cost: Optional[Decimal] = None
    position_id: Optional[str] = None

    @property
    def is_long(self) -> bool:
        return self.net_quantity > 0

    @property
    def direction(self) -> int:
        return 1 if self.is_long else -1

    @property
    def quantity(self) -> Decimal:
        return abs(self.net_quantity)

    @property
    def exposure(self) -> Decimal:
        """Entry notional: |qty| * entry price."""
        return self.quantity * self.entry_price

    @property
    def break_even(self) -> Decimal:
        """Break-even price, falling back to entry when the exchange omits it."""
        if self.break_even_price is not None:
            return self.break_even_price
        return self.entry_price

    @property
    def cost(self) -> Decimal:
        if self.net_cost is not None:
            return abs(self.net_cost)
        return self.exposure


def total_exposure(positions: Iterable[Position]) -> Decimal:
    """Sum of entry notionals over all positions."""
    return sum((p.exposure for p in positions), Decimal("0"))


def ratchet_stop(candidate: Decimal, previous: Optional[Decimal], is_long: bool) -> Decimal:
    """Never let a stop retreat: keep the more favorable of candidate and previous."""
    if previous is None:
        return candidate
    if is_long:
        return max(candidate, previous)
    return min(candidate, previous)


def clamp_to_break_even(stop: Decimal, break_even: Decimal, is_long: bool) -> Decimal:
    """Cap a long stop at break-even from above, a short stop from below."""
    if is_long and stop > break_even:
        return break_even
    if not is_long and stop < break_even:
        return break_even
    return stop
