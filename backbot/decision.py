"""
Decision engine: one evaluation cycle over the tradable markets.

Cycle outline:
    1. Fetch positions and the account snapshot; stop if the daily-loss halt trips.
    2. Log risk metrics; stop if the open-position cap is reached.
    3. Candidates = tradable markets minus open positions minus pending entries.
    4. Cancel scheduled entry orders older than ``stale_schedule_minutes``.
    5. Continue only if positions and scheduled orders are within ``limit_order``
       (checked once against the snapshot taken at the start of the cycle).
    6. Per candidate: candles + ticker, strategy verdict, sizing, risk validation
       with a single retry at the suggested volume, then order placement.

Per-symbol failures skip the symbol. A cycle-level failure is logged and ends
the cycle; ``run_cycle`` never raises.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from .config import DecisionConfig
from .errors import BackbotError
from .exchange import ExchangeClient, bounded
from .logging_setup import engine_logger
from .market import AccountSnapshot
from .order_controller import OrderController
from .position import Position
from .risk_manager import RiskManager, RiskMetrics
from .strategies import Strategy, Verdict

logger = engine_logger("decision")


@dataclass
class CycleReport:
    """Outcome of one decision cycle."""
    placed: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    cancelled: List[str] = field(default_factory=list)
    halted: bool = False
    error: Optional[str] = None

    def skip(self, symbol: str, reason: str) -> None:
        self.skipped[symbol] = reason
        logger.info(f"Symbol skipped | symbol={symbol} reason={reason}")


class DecisionEngine:
    """Orchestrates strategy, risk validation and entry placement."""

    def __init__(
        self,
        exchange: ExchangeClient,
        strategy: Strategy,
        risk_manager: RiskManager,
        orders: OrderController,
        *,
        settings: Optional[DecisionConfig] = None,
        limit_order: int = 1,
        call_timeout: Optional[float] = None,
    ):
        self.exchange = exchange
        self.strategy = strategy
        self.risk_manager = risk_manager
        self.orders = orders
        self.settings = settings or DecisionConfig()
        self.limit_order = limit_order
        self.call_timeout = call_timeout

    async def run_cycle(self) -> CycleReport:
        report = CycleReport()
        try:
            await self._run(report)
        except Exception as e:
            logger.exception(f"Decision cycle failed | error={e}")
            report.error = str(e)
        return report

    async def _run(self, report: CycleReport) -> None:
        positions = await bounded(self.exchange.get_open_positions(), self.call_timeout, "get_open_positions")
        if positions is None:
            report.error = "Open positions unavailable"
            logger.warning("Decision cycle skipped | reason=open positions unavailable")
            return
        account = await bounded(self.exchange.get_account_snapshot(), self.call_timeout, "get_account_snapshot")
        capital = account.capital_available

        halt = self.risk_manager.should_halt_trading(capital)
        if halt.halt:
            report.halted = True
            logger.warning(f"Trading halted | reason={halt.reason}")
            return

        metrics = self.risk_manager.get_risk_metrics(positions, capital)
        logger.info(
            f"Risk metrics | positions={metrics.total_positions}/{account.max_open_orders} "
            f"exposure={metrics.exposure_percentage:.1f}% daily_pnl={metrics.daily_pnl_percentage:+.2f}% "
            f"can_open={metrics.can_open_new_position}"
        )
        if not metrics.can_open_new_position:
            logger.info("Cannot open new positions | reason=open position limit reached")
            return

        open_symbols = {p.symbol for p in positions}
        scheduled = await self.orders.get_scheduled_orders(open_symbols)
        scheduled_symbols = {o.symbol for o in scheduled}
        candidates = [s for s in account.symbols if s not in open_symbols and s not in scheduled_symbols]

        for order in scheduled:
            age = self.orders.age_minutes(order)
            if age > self.settings.stale_schedule_minutes and order.symbol not in report.cancelled:
                logger.info(f"Cancelling stale scheduled orders | symbol={order.symbol} age_min={age:.1f}")
                await self.orders.cancel_all(order.symbol)
                report.cancelled.append(order.symbol)

        if len(positions) > self.limit_order or len(scheduled) > self.limit_order:
            logger.info(
                f"Concurrency limit reached | positions={len(positions)} "
                f"scheduled={len(scheduled)} limit={self.limit_order}"
            )
            return

        logger.info(f"Markets available | count={len(candidates)}")
        for symbol in candidates:
            try:
                await self._evaluate_symbol(symbol, account, positions, report)
            except BackbotError as e:
                report.skip(symbol, str(e))
            except Exception as e:
                logger.exception(f"Unexpected error evaluating symbol | symbol={symbol}")
                report.skipped[symbol] = f"error: {e}"

    async def _evaluate_symbol(
        self,
        symbol: str,
        account: AccountSnapshot,
        positions: Sequence[Position],
        report: CycleReport,
    ) -> None:
        market = account.market(symbol)
        candles = await bounded(
            self.exchange.get_candles(symbol, self.settings.candle_interval, self.settings.candle_limit),
            self.call_timeout,
            f"get_candles {symbol}",
        )
        if not candles:
            report.skip(symbol, "No candle data")
            return
        ticker = await bounded(self.exchange.get_ticker(symbol), self.call_timeout, f"get_ticker {symbol}")
        if ticker is None or ticker.price <= 0:
            report.skip(symbol, "No market price")
            return
        price = ticker.price

        symbol_positions = [p for p in positions if p.symbol == symbol]
        verdict = await self.strategy.analyze(candles, market, account, symbol_positions, positions)
        if verdict is None or verdict.is_neutral:
            report.skip(symbol, verdict.reason if verdict else "No verdict")
            return

        entry = verdict.entry or price
        volume = verdict.volume or self._fallback_volume(verdict, price, account)

        validation = self.risk_manager.validate_new_position(
            symbol, volume, entry, verdict.stop_loss, account.capital_available, positions, account.leverage
        )
        if not validation.is_valid:
            suggested = validation.suggested_volume
            if suggested is None or suggested <= account.min_trade_volume:
                report.skip(symbol, f"Rejected: {validation.reason}")
                return
            logger.info(f"Using suggested volume | symbol={symbol} volume={suggested:.2f}")
            volume = suggested
            validation = self.risk_manager.validate_new_position(
                symbol, volume, entry, verdict.stop_loss, account.capital_available, positions, account.leverage
            )
            if not validation.is_valid:
                report.skip(symbol, f"Re-validation failed: {validation.reason}")
                return

        recent = await self.orders.get_recent_open_orders(symbol)
        if recent and self.orders.age_minutes(recent[0]) > self.settings.replace_order_minutes:
            await self.orders.cancel_all(symbol)

        result = await self.orders.open_order(
            market,
            verdict.is_long,
            entry,
            volume,
            stop=verdict.stop_loss,
            target=verdict.take_profit_2,
        )
        if result.success:
            report.placed.append(symbol)
            logger.info(
                f"Entry placed | symbol={symbol} action={verdict.action.value} volume={volume:.2f} "
                f"risk={validation.risk_percentage:.2f}% reason={verdict.reason}"
            )
        else:
            report.skip(symbol, f"Order placement failed: {result.error}")

    def _fallback_volume(self, verdict: Verdict, price: Decimal, account: AccountSnapshot) -> Decimal:
        """Risk-based size when the strategy did not suggest one."""
        stop = verdict.stop_loss
        if stop is None:
            pct = self.settings.default_stop_pct
            stop = price * (1 - pct) if verdict.is_long else price * (1 + pct)
        safe = self.risk_manager.calculate_safe_position_size(price, stop, account.capital_available)
        return max(safe, account.min_trade_volume)

    def update_trade_result(self, pnl: Decimal) -> None:
        """Record a closed trade's realized P&L in the daily ledger."""
        self.risk_manager.update_daily_pnl(pnl)

    async def get_current_risk_metrics(self) -> RiskMetrics:
        positions = await bounded(self.exchange.get_open_positions(), self.call_timeout, "get_open_positions")
        account = await bounded(self.exchange.get_account_snapshot(), self.call_timeout, "get_account_snapshot")
        return self.risk_manager.get_risk_metrics(positions or [], account.capital_available)
