"""
Exchange collaborator contract.

The engines never talk HTTP. They consume an ``ExchangeClient``: snapshots of
candles, tickers, account, positions and open orders, plus order
placement/cancellation primitives. Request signing and wire formats belong to
the concrete client.

``InMemoryExchange`` is a paper implementation that records calls and lets
tests (and the demo) drive market state directly.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from .errors import DataUnavailableError
from .market import AccountSnapshot, Candle, Ticker
from .orders import Order, OrderResult, OrderSpec, OrderStatus, OrderType
from .position import Position


T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def bounded(awaitable: Awaitable[T], timeout: Optional[float], what: str) -> T:
    """Await an exchange call, mapping a timeout to a transient data failure.

    Raises:
        DataUnavailableError: If the call does not finish within ``timeout`` seconds
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise DataUnavailableError(f"{what} timed out after {timeout}s") from e


class ExchangeClient(ABC):
    """Abstract exchange client consumed by the decision and trailing-stop engines.

    All price/qty values use Decimal for precision and consistency. Methods
    returning ``Optional`` signal a transient fetch failure with None.
    """

    @abstractmethod
    async def get_open_positions(self) -> Optional[List[Position]]:
        """Return all open positions, or None if the fetch failed."""
        pass

    @abstractmethod
    async def get_account_snapshot(self) -> AccountSnapshot:
        """Return capital, leverage, fees and tradable markets.

        Raises:
            DataUnavailableError: If account, collateral or markets cannot be fetched
        """
        pass

    @abstractmethod
    async def get_candles(self, symbol: str, interval: str, limit: int) -> Optional[List[Candle]]:
        """Return up to ``limit`` most recent candles, oldest-first."""
        pass

    @abstractmethod
    async def get_ticker(self, symbol: str) -> Optional[Ticker]:
        pass

    @abstractmethod
    async def get_open_orders(self, symbol: Optional[str] = None) -> Optional[List[Order]]:
        """Return resting orders for ``symbol`` (all symbols when None)."""
        pass

    @abstractmethod
    async def cancel_open_orders(self, symbol: str) -> bool:
        """Cancel every resting order for ``symbol``."""
        pass

    @abstractmethod
    async def cancel_open_order(self, symbol: str, order_id: str) -> bool:
        pass

    @abstractmethod
    async def place_order(self, spec: OrderSpec) -> Optional[OrderResult]:
        """Place an order; None means the request failed outright."""
        pass


class InMemoryExchange(ExchangeClient):
    """A paper exchange that records calls and lets tests drive market state."""

    def __init__(
        self,
        account: AccountSnapshot,
        *,
        positions: Optional[List[Position]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.account = account
        self.positions: List[Position] = list(positions or [])
        self.candles: Dict[str, List[Candle]] = {}
        self.tickers: Dict[str, Ticker] = {}
        self.orders: Dict[str, Order] = {}
        self.placed: List[OrderSpec] = []
        self.cancelled: List[str] = []
        self.clock = clock
        self._ids = itertools.count(1)

    def _gen_id(self) -> str:
        return f"m{next(self._ids)}"

    def set_candles(self, symbol: str, candles: List[Candle]) -> None:
        self.candles[symbol] = list(candles)

    def set_ticker(self, ticker: Ticker) -> None:
        self.tickers[ticker.symbol] = ticker

    def add_order(self, order: Order) -> None:
        self.orders[order.order_id] = order

    async def get_open_positions(self) -> Optional[List[Position]]:
        return list(self.positions)

    async def get_account_snapshot(self) -> AccountSnapshot:
        return self.account

    async def get_candles(self, symbol: str, interval: str, limit: int) -> Optional[List[Candle]]:
        series = self.candles.get(symbol)
        if series is None:
            return None
        return series[-limit:]

    async def get_ticker(self, symbol: str) -> Optional[Ticker]:
        return self.tickers.get(symbol)

    async def get_open_orders(self, symbol: Optional[str] = None) -> Optional[List[Order]]:
        return [
            o
            for o in self.orders.values()
            if o.status in (OrderStatus.NEW, OrderStatus.PARTIALLY_FILLED)
            and (symbol is None or o.symbol == symbol)
        ]

    async def cancel_open_orders(self, symbol: str) -> bool:
        found = False
        for oid, order in list(self.orders.items()):
            if order.symbol == symbol and order.status == OrderStatus.NEW:
                self.orders[oid] = replace(order, status=OrderStatus.CANCELLED)
                self.cancelled.append(oid)
                found = True
        return found

    async def cancel_open_order(self, symbol: str, order_id: str) -> bool:
        order = self.orders.get(order_id)
        if order is None or order.symbol != symbol:
            return False
        self.orders[order_id] = replace(order, status=OrderStatus.CANCELLED)
        self.cancelled.append(order_id)
        return True

    async def place_order(self, spec: OrderSpec) -> Optional[OrderResult]:
        oid = self._gen_id()
        self.placed.append(spec)
        self.orders[oid] = Order(
            order_id=oid,
            symbol=spec.symbol,
            side=spec.side,
            order_type=spec.order_type,
            quantity=spec.quantity,
            created_at=self.clock(),
            price=spec.price,
            trigger_price=spec.trigger_price,
            reduce_only=spec.reduce_only,
            status=OrderStatus.FILLED if spec.order_type == OrderType.MARKET else OrderStatus.NEW,
        )
        return OrderResult(order_id=oid, success=True)
