"""
Strategy contract and verdict types.

A strategy turns a candle series plus the account/position snapshot into a
``Verdict``: LONG, SHORT or NEUTRAL, with entry, stop, targets, suggested
volume and trailing parameters. Strategies never do network I/O; ``analyze``
is a coroutine only so implementations can share the engines' event loop.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

from .market import AccountSnapshot, Candle, MarketSpec
from .position import Position


class Action(Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class TrailingParams:
    """ATR context handed to the trailing-stop engine."""
    atr_value: Decimal
    trail_multiplier: Decimal

    @property
    def trail_offset(self) -> Decimal:
        return self.atr_value * self.trail_multiplier


@dataclass(frozen=True)
class Verdict:
    """Per-symbol strategy output for one cycle.

    Attributes:
        action: LONG, SHORT or NEUTRAL
        symbol: Market symbol
        market_price: Last close seen by the strategy
        entry: Proposed entry price
        stop_loss: Protective stop price
        take_profit_1: Partial target (closes ``partial_close_pct`` of size)
        take_profit_2: Final target
        volume: Suggested notional in quote currency
        partial_close_pct: Percent of the position closed at take_profit_1
        trailing: ATR trailing parameters
        reason: Human-readable explanation for logs
    """

    action: Action
    symbol: str
    market_price: Decimal
    entry: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    take_profit_1: Optional[Decimal] = None
    take_profit_2: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    partial_close_pct: Optional[Decimal] = None
    trailing: Optional[TrailingParams] = None
    reason: str = ""

    @classmethod
    def neutral(cls, symbol: str, market_price: Decimal, reason: str) -> "Verdict":
        return cls(action=Action.NEUTRAL, symbol=symbol, market_price=market_price, reason=reason)

    @property
    def is_neutral(self) -> bool:
        return self.action == Action.NEUTRAL

    @property
    def is_long(self) -> bool:
        return self.action == Action.LONG


class Strategy(ABC):
    """Base class for trading strategies."""

    name: str = ""

    @abstractmethod
    async def analyze(
        self,
        candles: Sequence[Candle],
        market: MarketSpec,
        account: AccountSnapshot,
        open_positions_for_symbol: Sequence[Position],
        all_open_positions: Sequence[Position],
    ) -> Optional[Verdict]:
        """Analyze market data and decide on a trading action."""
        pass
