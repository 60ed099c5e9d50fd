"""
Trailing-stop engine.

Runs on its own short cadence. For every open position:
    1. compute net unrealized P&L (kept to report the trade when it closes)
    2. force-close when 24h volume is below a fraction of the minimum trade size
    3. gap = mark - lowest low (long) or highest high - mark (short) over the
       last ``window`` candles, floored at zero; a zero gap means no update
    4. candidate stop = mark -/+ gap, ratcheted against the best existing stop
       and clamped at break-even
    5. no-op when an existing stop is within ``covered_tolerance`` of the
       candidate, otherwise cancel all protective orders and place one new stop

Failures are isolated per position.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from .config import TrailingConfig
from .errors import BackbotError, InvalidOrderError
from .exchange import ExchangeClient, bounded
from .logging_setup import engine_logger
from .market import AccountSnapshot, Candle
from .order_controller import OrderController
from .orders import Order, Side
from .pnl import calculate_position_pnl
from .position import Position, clamp_to_break_even, ratchet_stop
from .risk_manager import RiskManager

ATR_MIN_CANDLES = 14
ATR_FALLBACK_PCT = Decimal("0.02")

logger = engine_logger("trailing_stop")


def calculate_trailing_gap(candles: Sequence[Candle], mark_price: Decimal, is_long: bool, window: int = 5) -> Decimal:
    """Distance from the mark price to the recent swing extreme, never negative.

    Returns zero when fewer than ``window`` candles are available.
    """
    if len(candles) < window:
        return Decimal("0")
    recent = candles[-window:]
    if is_long:
        gap = mark_price - min(c.low for c in recent)
    else:
        gap = max(c.high for c in recent) - mark_price
    return max(gap, Decimal("0"))


@dataclass(frozen=True)
class ATRTrailingParams:
    atr_value: Decimal
    trail_multiplier: Decimal
    partial_exit_rr: Decimal
    partial_exit_pct: Decimal


@dataclass(frozen=True)
class ATRTrailingLevels:
    partial_target: Decimal
    trailing_stop: Decimal


def calculate_atr_trailing_stop(
    candles: Sequence[Candle],
    entry_price: Decimal,
    current_price: Decimal,
    is_long: bool,
    params: ATRTrailingParams,
) -> ATRTrailingLevels:
    """ATR-distance partial target and trailing stop.

    With fewer than 14 candles the partial target falls back to 2% of the
    distance travelled since entry, scaled by ``partial_exit_rr``.
    """
    direction = 1 if is_long else -1
    trail_distance = params.atr_value * params.trail_multiplier
    if len(candles) < ATR_MIN_CANDLES:
        partial_distance = abs(current_price - entry_price) * ATR_FALLBACK_PCT * params.partial_exit_rr
    else:
        partial_distance = params.atr_value * params.partial_exit_rr
    return ATRTrailingLevels(
        partial_target=entry_price + direction * partial_distance,
        trailing_stop=current_price - direction * trail_distance,
    )


def _stop_level(order: Order) -> Decimal:
    return order.price if order.price is not None else order.trigger_price


def _is_stop_side(order: Order, level: Decimal, mark: Decimal, is_long: bool) -> bool:
    """Stop legs sit on the losing side of mark; take-profit legs do not."""
    if is_long:
        return order.side is Side.ASK and level < mark
    return order.side is Side.BID and level > mark


@dataclass
class TrailingReport:
    updated: Dict[str, Decimal] = field(default_factory=dict)
    covered: List[str] = field(default_factory=list)
    force_closed: List[str] = field(default_factory=list)
    closed: Dict[str, Decimal] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


class TrailingStopEngine:
    """Keeps one favorable-only protective stop per open position."""

    def __init__(
        self,
        exchange: ExchangeClient,
        orders: OrderController,
        risk_manager: Optional[RiskManager] = None,
        *,
        settings: Optional[TrailingConfig] = None,
        call_timeout: Optional[float] = None,
    ):
        self.exchange = exchange
        self.orders = orders
        self.risk_manager = risk_manager
        self.settings = settings or TrailingConfig()
        self.call_timeout = call_timeout
        self._last_net_pnl: Dict[str, Decimal] = {}

    async def run_cycle(self) -> TrailingReport:
        report = TrailingReport()
        try:
            await self._run(report)
        except Exception as e:
            logger.exception(f"Trailing stop cycle failed | error={e}")
            report.error = str(e)
        return report

    async def _run(self, report: TrailingReport) -> None:
        positions = await bounded(self.exchange.get_open_positions(), self.call_timeout, "get_open_positions")
        if positions is None:
            report.error = "Open positions unavailable"
            return
        self._report_closed(positions, report)
        if not positions:
            return

        account = await bounded(self.exchange.get_account_snapshot(), self.call_timeout, "get_account_snapshot")
        for position in positions:
            try:
                await self._process(position, account, report)
            except BackbotError as e:
                report.skipped[position.symbol] = str(e)
                logger.warning(f"Trailing stop skipped | symbol={position.symbol} reason={e}")
            except Exception as e:
                report.skipped[position.symbol] = f"error: {e}"
                logger.exception(f"Trailing stop failed | symbol={position.symbol}")

    def _report_closed(self, positions: Sequence[Position], report: TrailingReport) -> None:
        """Positions seen last cycle and gone now are reported as closed trades."""
        current = {p.symbol for p in positions}
        for symbol in list(self._last_net_pnl):
            if symbol in current:
                continue
            pnl = self._last_net_pnl.pop(symbol)
            report.closed[symbol] = pnl
            logger.info(f"Position closed | symbol={symbol} last_net_pnl={pnl:.2f}")
            if self.risk_manager is not None:
                self.risk_manager.update_daily_pnl(pnl)

    async def _process(self, position: Position, account: AccountSnapshot, report: TrailingReport) -> None:
        symbol = position.symbol
        pnl = calculate_position_pnl(position, account.maker_fee)
        self._last_net_pnl[symbol] = pnl.net_pnl

        market = account.market(symbol)
        candles = await bounded(
            self.exchange.get_candles(symbol, self.settings.candle_interval, self.settings.candle_limit),
            self.call_timeout,
            f"get_candles {symbol}",
        )
        ticker = await bounded(self.exchange.get_ticker(symbol), self.call_timeout, f"get_ticker {symbol}")
        if not candles or ticker is None:
            report.skipped[symbol] = "No market data"
            logger.info(f"Trailing stop skipped | symbol={symbol} reason=no market data")
            return

        mark = position.mark_price if position.mark_price > 0 else ticker.price

        min_volume = account.min_trade_volume * self.settings.illiquid_volume_fraction
        if ticker.volume_24h < min_volume:
            logger.warning(
                f"Low volume, force closing | symbol={symbol} volume_24h={ticker.volume_24h} min={min_volume}"
            )
            await self.orders.force_close(market, position)
            report.force_closed.append(symbol)
            return

        gap = calculate_trailing_gap(candles, mark, position.is_long, self.settings.window)
        if gap == 0:
            report.skipped[symbol] = "Zero trailing gap"
            return

        candidate = mark - gap if position.is_long else mark + gap
        protective = await self.orders.get_protective_orders(symbol)
        levels = [_stop_level(o) for o in protective]
        stop_levels = [
            level for o, level in zip(protective, levels)
            if _is_stop_side(o, level, mark, position.is_long)
        ]
        best = (max(stop_levels) if position.is_long else min(stop_levels)) if stop_levels else None
        candidate = ratchet_stop(candidate, best, position.is_long)
        candidate = clamp_to_break_even(candidate, position.break_even, position.is_long)

        tolerance = mark * self.settings.covered_tolerance
        if any(abs(level - candidate) < tolerance for level in levels):
            report.covered.append(symbol)
            logger.debug(f"Trailing stop already covered | symbol={symbol} stop={candidate}")
            return

        if candidate <= 0:
            raise InvalidOrderError(f"Invalid stop price for {symbol}: {candidate}")

        for order in protective:
            await self.orders.cancel_stop(symbol, order.order_id)
        result = await self.orders.create_stop(market, candidate, position.is_long, position.quantity)
        if not result.success:
            report.skipped[symbol] = f"Stop placement failed: {result.error}"
            logger.error(f"Failed to create trailing stop | symbol={symbol} error={result.error}")
            return
        report.updated[symbol] = candidate
        logger.info(
            f"Updated trailing stop | symbol={symbol} stop={candidate:.4f} "
            f"net_pnl={pnl.net_pnl:.2f} ({pnl.net_pnl_percent:.2f}%)"
        )
