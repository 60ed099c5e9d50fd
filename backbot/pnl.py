"""P&L calculator for open positions."""
from dataclasses import dataclass
from decimal import Decimal

from .position import Position


@dataclass(frozen=True)
class PositionPnL:
    """Direction-adjusted unrealized P&L of one position, net of fees."""
    symbol: str
    is_long: bool
    quantity: Decimal
    entry_price: Decimal
    mark_price: Decimal
    break_even_price: Decimal
    gross_pnl: Decimal
    fees: Decimal
    net_pnl: Decimal
    net_pnl_percent: Decimal

    @property
    def in_profit(self) -> bool:
        return self.net_pnl > 0

    @property
    def volume(self) -> Decimal:
        """Current notional at mark price."""
        return self.quantity * self.mark_price


def calculate_position_pnl(position: Position, maker_fee: Decimal) -> PositionPnL:
    """Calculate unrealized P&L for an open position.

    gross = (mark - entry) * direction * qty
    fees  = entry * qty * fee (open) + |gross| * fee (close estimate)

    Args:
        position: Exchange position snapshot
        maker_fee: Maker fee as a fraction

    Returns:
        PositionPnL with gross, fee and net figures
    """
    qty = position.quantity
    gross = (position.mark_price - position.entry_price) * position.direction * qty
    open_fee = position.entry_price * qty * maker_fee
    close_fee = abs(gross) * maker_fee
    fees = open_fee + close_fee
    net = gross - fees

    cost = position.cost
    net_pct = (net / cost * Decimal('100')) if cost > 0 else Decimal('0')

    return PositionPnL(
        symbol=position.symbol,
        is_long=position.is_long,
        quantity=qty,
        entry_price=position.entry_price,
        mark_price=position.mark_price,
        break_even_price=position.break_even,
        gross_pnl=gross,
        fees=fees,
        net_pnl=net,
        net_pnl_percent=net_pct,
    )
