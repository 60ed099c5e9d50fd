"""
Order construction and placement on top of the exchange collaborator.

Builds three kinds of orders from engine decisions:
    entry        limit order at the entry price, triggered 0.1% on the protective
                 side, carrying attached stop-loss and take-profit legs
    protective   reduce-only, post-only GTC limit order with a trigger one tick
                 beyond the limit price (the trailing stop)
    force close  reduce-only market order for the full position size

When simulation mode is on, placements and cancellations are logged and
answered with a synthetic success without touching the exchange.
"""

import random
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from .errors import InvalidOrderError
from .exchange import ExchangeClient, bounded, utc_now
from .logging_setup import logger
from .market import MarketSpec
from .orders import Order, OrderResult, OrderSpec, OrderType, Side, TimeInForce, TriggerBy
from .position import Position

TRIGGER_OFFSET_PCT = Decimal("0.001")


def _client_id() -> int:
    return random.randint(0, 999_999)


def build_entry_order(
    market: MarketSpec,
    is_long: bool,
    entry: Decimal,
    volume: Decimal,
    stop: Optional[Decimal] = None,
    target: Optional[Decimal] = None,
) -> OrderSpec:
    """Build the limit entry order for a verdict.

    Args:
        market: Market rules used for rounding
        is_long: True for a long entry (BID)
        entry: Entry limit price
        volume: Notional in quote currency; quantity = volume / entry
        stop: Optional stop-loss limit price
        target: Optional take-profit limit price

    Raises:
        InvalidOrderError: If entry or the resulting quantity is not positive
    """
    if entry <= 0:
        raise InvalidOrderError(f"Invalid entry price for {market.symbol}: {entry}")
    quantity = market.format_quantity(volume / entry)
    if quantity <= 0:
        raise InvalidOrderError(
            f"Order quantity rounds to zero for {market.symbol} | volume={volume} entry={entry}"
        )

    offset = entry * TRIGGER_OFFSET_PCT
    fields = dict(
        symbol=market.symbol,
        side=Side.BID if is_long else Side.ASK,
        order_type=OrderType.LIMIT,
        quantity=quantity,
        client_id=_client_id(),
        price=market.format_price(entry),
        trigger_price=market.format_price(entry - offset if is_long else entry + offset),
        trigger_quantity=quantity,
        trigger_by=TriggerBy.MARK_PRICE,
        time_in_force=TimeInForce.GTC,
        post_only=False,
    )
    if stop is not None:
        fields.update(
            stop_loss_trigger_price=market.format_price(stop + offset if is_long else stop - offset),
            stop_loss_limit_price=market.format_price(stop),
            stop_loss_trigger_by=TriggerBy.MARK_PRICE,
        )
    if target is not None:
        fields.update(
            take_profit_trigger_price=market.format_price(target - offset if is_long else target + offset),
            take_profit_limit_price=market.format_price(target),
            take_profit_trigger_by=TriggerBy.LAST_PRICE,
        )
    return OrderSpec(**fields)


def build_protective_stop(market: MarketSpec, price: Decimal, is_long: bool, quantity: Decimal) -> OrderSpec:
    """Build a reduce-only trailing stop closing ``quantity`` at ``price``.

    Raises:
        InvalidOrderError: If price or quantity is not positive
    """
    if price <= 0:
        raise InvalidOrderError(f"Invalid stop price for {market.symbol}: must be > 0, got {price}")
    qty = market.format_quantity(quantity)
    if qty <= 0:
        raise InvalidOrderError(f"Invalid stop quantity for {market.symbol}: {quantity}")
    trigger = price - market.tick_size if is_long else price + market.tick_size
    return OrderSpec(
        symbol=market.symbol,
        side=Side.ASK if is_long else Side.BID,
        order_type=OrderType.LIMIT,
        quantity=qty,
        client_id=_client_id(),
        price=market.format_price(price),
        trigger_price=market.format_price(trigger),
        trigger_quantity=qty,
        trigger_by=TriggerBy.LAST_PRICE,
        time_in_force=TimeInForce.GTC,
        post_only=True,
        reduce_only=True,
    )


def build_force_close(market: MarketSpec, position: Position) -> OrderSpec:
    """Reduce-only market order for the whole position."""
    qty = market.format_quantity(position.quantity)
    if qty <= 0:
        raise InvalidOrderError(f"Nothing to close for {position.symbol}: quantity={position.quantity}")
    return OrderSpec(
        symbol=position.symbol,
        side=Side.ASK if position.is_long else Side.BID,
        order_type=OrderType.MARKET,
        quantity=qty,
        client_id=_client_id(),
        reduce_only=True,
    )


class OrderController:
    """Places and cancels orders for the engines, honoring simulation mode."""

    def __init__(
        self,
        exchange: ExchangeClient,
        *,
        simulation_mode: bool = False,
        call_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.exchange = exchange
        self.simulation_mode = simulation_mode
        self.call_timeout = call_timeout
        self.clock = clock

    def _simulated(self, kind: str) -> OrderResult:
        return OrderResult(order_id=f"sim_{kind}{int(time.time() * 1000)}", success=True)

    async def _place(self, spec: OrderSpec) -> OrderResult:
        result = await bounded(self.exchange.place_order(spec), self.call_timeout, f"place_order {spec.symbol}")
        if result is None:
            return OrderResult(order_id=None, success=False, error="No response from exchange")
        return result

    async def open_order(
        self,
        market: MarketSpec,
        is_long: bool,
        entry: Decimal,
        volume: Decimal,
        stop: Optional[Decimal] = None,
        target: Optional[Decimal] = None,
    ) -> OrderResult:
        spec = build_entry_order(market, is_long, entry, volume, stop, target)
        side = "LONG" if is_long else "SHORT"
        if self.simulation_mode:
            logger.info(
                f"SIMULATION - would open order | symbol={market.symbol} side={side} "
                f"entry={spec.price} stop={stop} target={target} volume={volume:.2f}"
            )
            return self._simulated("")
        result = await self._place(spec)
        logger.info(
            f"Entry order placed | symbol={market.symbol} side={side} price={spec.price} "
            f"qty={spec.quantity} order_id={result.order_id} success={result.success}"
        )
        return result

    async def force_close(self, market: MarketSpec, position: Position) -> OrderResult:
        spec = build_force_close(market, position)
        if self.simulation_mode:
            logger.info(f"SIMULATION - would force close | symbol={position.symbol} qty={spec.quantity}")
            return self._simulated("close_")
        result = await self._place(spec)
        logger.warning(
            f"Force close sent | symbol={position.symbol} qty={spec.quantity} "
            f"order_id={result.order_id} success={result.success}"
        )
        return result

    async def create_stop(self, market: MarketSpec, price: Decimal, is_long: bool, quantity: Decimal) -> OrderResult:
        spec = build_protective_stop(market, price, is_long, quantity)
        if self.simulation_mode:
            logger.info(
                f"SIMULATION - would create stop | symbol={market.symbol} price={spec.price} "
                f"side={'LONG' if is_long else 'SHORT'} qty={spec.quantity}"
            )
            return self._simulated("stop_")
        return await self._place(spec)

    async def cancel_stop(self, symbol: str, order_id: str) -> bool:
        if self.simulation_mode:
            logger.info(f"SIMULATION - would cancel order | symbol={symbol} order_id={order_id}")
            return True
        return await bounded(
            self.exchange.cancel_open_order(symbol, order_id), self.call_timeout, f"cancel_open_order {symbol}"
        )

    async def cancel_all(self, symbol: str) -> bool:
        if self.simulation_mode:
            logger.info(f"SIMULATION - would cancel all orders | symbol={symbol}")
            return True
        cancelled = await bounded(
            self.exchange.cancel_open_orders(symbol), self.call_timeout, f"cancel_open_orders {symbol}"
        )
        logger.info(f"Cancelled open orders | symbol={symbol} result={cancelled}")
        return cancelled

    def age_minutes(self, order: Order) -> float:
        return order.age_minutes(self.clock())

    async def _open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        orders = await bounded(
            self.exchange.get_open_orders(symbol), self.call_timeout, f"get_open_orders {symbol or '*'}"
        )
        return sorted(orders or [], key=lambda o: o.created_at)

    async def get_recent_open_orders(self, symbol: str) -> List[Order]:
        """Open orders for ``symbol``, oldest first."""
        return await self._open_orders(symbol)

    async def get_scheduled_orders(self, open_symbols: Iterable[str]) -> List[Order]:
        """Unfilled entry orders for symbols without an open position, oldest first."""
        excluded = set(open_symbols)
        return [
            o for o in await self._open_orders()
            if o.symbol not in excluded and not o.reduce_only
        ]

    async def get_protective_orders(self, symbol: str) -> List[Order]:
        return [o for o in await self._open_orders(symbol) if o.is_protective]
