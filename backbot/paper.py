"""Random-walk paper market for dry runs and demos."""
import random
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .exchange import InMemoryExchange
from .market import AccountSnapshot, Candle, MarketSpec, Ticker, derive_min_trade_volume
from .orders import OrderResult, OrderSpec, OrderStatus, OrderType, Side
from .position import Position
from .risk_manager import RiskLimits

BAR_SECONDS = 300


def random_walk_candles(
    start_price: Decimal,
    count: int,
    *,
    rng: random.Random,
    step_pct: float = 0.004,
    start_ts: int = 0,
) -> List[Candle]:
    """Generate ``count`` 5-minute candles following a random walk."""
    candles = []
    price = start_price
    for i in range(count):
        open_ = price
        close = max(open_ * Decimal(str(1 + rng.uniform(-step_pct, step_pct))), Decimal("0.01"))
        wick = Decimal(str(rng.uniform(0, step_pct / 2)))
        candles.append(
            Candle(
                open=open_.quantize(Decimal("0.01")),
                high=(max(open_, close) * (1 + wick)).quantize(Decimal("0.01")),
                low=(min(open_, close) * (1 - wick)).quantize(Decimal("0.01")),
                close=close.quantize(Decimal("0.01")),
                volume=Decimal(rng.randint(100, 5000)),
                timestamp=start_ts + i * BAR_SECONDS,
            )
        )
        price = close
    return candles


class PaperExchange(InMemoryExchange):
    """In-memory exchange whose markets follow a seeded random walk."""

    def __init__(self, account: AccountSnapshot, *, rng: random.Random, **kwargs):
        super().__init__(account, **kwargs)
        self.rng = rng

    async def place_order(self, spec: OrderSpec) -> Optional[OrderResult]:
        result = await super().place_order(spec)
        if spec.order_type == OrderType.MARKET and spec.reduce_only:
            self.positions = [p for p in self.positions if p.symbol != spec.symbol]
        return result

    def advance(self, bars: int = 1) -> None:
        """Append new bars and refresh tickers and position marks."""
        for symbol, candles in self.candles.items():
            last = candles[-1]
            fresh = random_walk_candles(last.close, bars, rng=self.rng, start_ts=last.timestamp + BAR_SECONDS)
            self.set_candles(symbol, candles + fresh)
            self.set_ticker(_ticker(symbol, self.candles[symbol]))
            for bar in fresh:
                self._match(symbol, bar)
        self.positions = [
            replace(p, mark_price=self.tickers[p.symbol].price) if p.symbol in self.tickers else p
            for p in self.positions
        ]

    def _match(self, symbol: str, bar: Candle) -> None:
        """Fill resting limit orders whose price traded inside ``bar``."""
        for oid, order in list(self.orders.items()):
            if order.symbol != symbol or order.status != OrderStatus.NEW or order.price is None:
                continue
            if not bar.low <= order.price <= bar.high:
                continue
            self.orders[oid] = replace(order, status=OrderStatus.FILLED)
            signed = order.quantity if order.side == Side.BID else -order.quantity
            if order.reduce_only:
                self.positions = [p for p in self.positions if p.symbol != symbol]
            else:
                self.positions.append(
                    Position(
                        symbol=symbol,
                        net_quantity=signed,
                        entry_price=order.price,
                        mark_price=bar.close,
                        position_id=oid,
                    )
                )


def build_paper_exchange(
    prices: Optional[Dict[str, Decimal]] = None,
    *,
    capital: Decimal = Decimal("10000"),
    limits: Optional[RiskLimits] = None,
    history: int = 120,
    seed: Optional[int] = None,
) -> PaperExchange:
    """Paper exchange preloaded with random-walk history for each symbol."""
    rng = random.Random(seed)
    limits = limits or RiskLimits()
    prices = prices or {"BTC_USDC_PERP": Decimal("50000"), "SOL_USDC_PERP": Decimal("150")}
    markets = tuple(
        MarketSpec(
            symbol=symbol,
            base_symbol=symbol.split("_")[0],
            quote_symbol="USDC",
            tick_size=Decimal("0.01"),
            step_size=Decimal("0.0001"),
            min_notional=Decimal("5"),
        )
        for symbol in prices
    )
    account = AccountSnapshot(
        capital_available=capital,
        leverage=Decimal("1"),
        maker_fee=Decimal("0.0002"),
        max_open_orders=limits.max_open_positions,
        min_trade_volume=derive_min_trade_volume(capital, limits.max_volume_usd, limits.max_risk_per_trade),
        markets=markets,
    )
    exchange = PaperExchange(account, rng=rng)
    for symbol, price in prices.items():
        candles = random_walk_candles(price, history, rng=rng)
        exchange.set_candles(symbol, candles)
        exchange.set_ticker(_ticker(symbol, candles))
    return exchange


def _ticker(symbol: str, candles: Iterable[Candle]) -> Ticker:
    candles = list(candles)
    last = candles[-1].close
    volume = sum((c.volume or Decimal("0")) * c.close for c in candles[-288:])
    return Ticker(symbol=symbol, last_price=last, mark_price=last, volume_24h=volume)

