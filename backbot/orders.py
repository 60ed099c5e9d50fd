"""
Order types shared by the order controller and the exchange collaborator.

``Order`` is a resting order as reported by the exchange. ``OrderSpec`` is
what the engine asks the exchange to place; ``OrderResult`` is the reply.

Order Roles:
    ENTRY:       limit order opening a position, may carry stop-loss/take-profit
    PROTECTIVE:  reduce-only limit order with a trigger (the trailing stop)
    FORCE CLOSE: reduce-only market order for the full position size
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class Side(Enum):
    """Order side: BID buys, ASK sells."""

    BID = "Bid"
    ASK = "Ask"


class OrderType(Enum):
    MARKET = "Market"
    LIMIT = "Limit"


class TimeInForce(Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"


class TriggerBy(Enum):
    LAST_PRICE = "LastPrice"
    MARK_PRICE = "MarkPrice"


class OrderStatus(Enum):
    NEW = "New"
    PARTIALLY_FILLED = "PartiallyFilled"
    FILLED = "Filled"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class Order:
    """A resting order reported by the exchange.

    Attributes:
        order_id: Exchange-assigned order ID
        symbol: Market symbol
        side: BID or ASK
        order_type: MARKET or LIMIT
        quantity: Order quantity
        created_at: Creation time (timezone-aware)
        price: Limit price, if any
        trigger_price: Trigger price, if any
        reduce_only: True for protective/closing orders
        status: Current OrderStatus
    """

    order_id: str
    symbol: str
    side: Side
    order_type: OrderType
    quantity: Decimal
    created_at: datetime
    price: Optional[Decimal] = None
    trigger_price: Optional[Decimal] = None
    reduce_only: bool = False
    status: OrderStatus = OrderStatus.NEW

    def age_minutes(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds() / 60.0

    @property
    def is_protective(self) -> bool:
        """Reduce-only order carrying a trigger, i.e. a stop."""
        return self.reduce_only and self.trigger_price is not None


@dataclass(frozen=True)
class OrderSpec:
    """Placement request handed to ``ExchangeClient.place_order``."""

    symbol: str
    side: Side
    order_type: OrderType
    quantity: Decimal
    client_id: int
    price: Optional[Decimal] = None
    trigger_price: Optional[Decimal] = None
    trigger_quantity: Optional[Decimal] = None
    trigger_by: Optional[TriggerBy] = None
    stop_loss_trigger_price: Optional[Decimal] = None
    stop_loss_limit_price: Optional[Decimal] = None
    stop_loss_trigger_by: Optional[TriggerBy] = None
    take_profit_trigger_price: Optional[Decimal] = None
    take_profit_limit_price: Optional[Decimal] = None
    take_profit_trigger_by: Optional[TriggerBy] = None
    time_in_force: Optional[TimeInForce] = None
    post_only: bool = False
    reduce_only: bool = False


@dataclass(frozen=True)
class OrderResult:
    """Placement outcome."""

    order_id: Optional[str]
    success: bool
    error: Optional[str] = None
