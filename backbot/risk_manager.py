"""
Risk gatekeeper: position validation ladder and daily P&L ledger.

Every candidate position runs through the same ladder; the first failing
check returns a rejection carrying a reason and, where one exists, a volume
that satisfies that specific constraint:

    1. size bounds          [min_volume_usd, max_volume_usd]
    2. per-trade risk       volume <= capital * max_risk_per_trade
    3. stop-loss required   (no suggestion)
    4. daily loss halt      today's loss / capital >= max_daily_loss
    5. position counts      total and per-symbol
    6. total exposure       (existing + new) / capital <= max_total_exposure
    7. leverage             requested <= max_leverage

The ledger keeps one entry per UTC calendar date for the most recent 30
dates. It changes only through ``update_daily_pnl`` (trade-close
notifications) and ``reset_daily_pnl``. All ledger access is serialized by a
lock so the decision and trailing-stop loops may both report closes.

Examples:
    >>> from decimal import Decimal
    >>> rm = RiskManager(RiskLimits(max_volume_usd=Decimal("10000")))
    >>> rm.calculate_safe_position_size(
    ...     Decimal("50000"), Decimal("48000"), Decimal("10000"), Decimal("0.02")
    ... )
    Decimal('5000.00')
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError
from .logging_setup import logger
from .position import Position, total_exposure

LEDGER_DAYS = 30
# Risk assumed when a position is validated without a stop.
NO_STOP_RISK_FRACTION = Decimal("0.05")


class RiskLimits(BaseModel):
    """Configured risk limits. Fractions are expressed as 0.02 for 2%."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_risk_per_trade: Decimal = Field(Decimal("0.02"), gt=0)
    max_daily_loss: Decimal = Field(Decimal("0.05"), gt=0)
    max_total_exposure: Decimal = Field(Decimal("0.80"), gt=0)
    max_positions_per_market: int = Field(1, ge=1)
    max_open_positions: int = Field(5, ge=1)
    min_volume_usd: Decimal = Field(Decimal("100"), ge=0)
    max_volume_usd: Decimal = Field(Decimal("10000"), gt=0)
    stop_loss_required: bool = True
    max_leverage: Decimal = Field(Decimal("10"), gt=0)

    @model_validator(mode="after")
    def _check_volume_range(self) -> "RiskLimits":
        if self.min_volume_usd > self.max_volume_usd:
            raise ValueError("min_volume_usd must not exceed max_volume_usd")
        return self


def build_risk_limits(**values) -> RiskLimits:
    """Construct RiskLimits, mapping validation failures to ConfigurationError."""
    try:
        return RiskLimits(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid risk limits: {e}") from e


@dataclass(frozen=True)
class RiskValidationResult:
    is_valid: bool
    reason: Optional[str] = None
    suggested_volume: Optional[Decimal] = None
    risk_percentage: Optional[Decimal] = None


@dataclass
class DailyPnL:
    date: str  # ISO date, UTC
    total_pnl: Decimal
    trade_count: int


@dataclass(frozen=True)
class RiskMetrics:
    total_positions: int
    total_exposure: Decimal
    exposure_percentage: Decimal
    daily_pnl: Decimal
    daily_pnl_percentage: Decimal
    remaining_risk_capacity: Decimal
    can_open_new_position: bool


@dataclass(frozen=True)
class HaltCheck:
    halt: bool
    reason: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _floor(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def _pct(value: Decimal) -> str:
    return f"{value * 100:.2f}%"


class RiskManager:
    """Validate candidate positions and track the rolling daily P&L ledger."""

    def __init__(
        self,
        limits: Optional[RiskLimits] = None,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._limits = limits or RiskLimits()
        self._clock = clock
        self._ledger: List[DailyPnL] = []
        self._lock = threading.RLock()
        lim = self._limits
        logger.info(
            "RiskManager initialized | "
            f"max_risk_per_trade={_pct(lim.max_risk_per_trade)} "
            f"max_daily_loss={_pct(lim.max_daily_loss)} "
            f"max_total_exposure={_pct(lim.max_total_exposure)} "
            f"max_open_positions={lim.max_open_positions} "
            f"volume_range=${lim.min_volume_usd}-${lim.max_volume_usd} "
            f"stop_loss_required={lim.stop_loss_required} "
            f"max_leverage={lim.max_leverage}x"
        )

    # --- ledger -----------------------------------------------------------

    def _today(self) -> str:
        return self._clock().astimezone(timezone.utc).date().isoformat()

    def _today_entry(self) -> Optional[DailyPnL]:
        today = self._today()
        for entry in self._ledger:
            if entry.date == today:
                return entry
        return None

    def _daily_loss_fraction(self, capital_available: Decimal) -> Optional[Decimal]:
        """Today's loss as a fraction of capital, or None if today is not negative."""
        with self._lock:
            entry = self._today_entry()
            if entry is None or entry.total_pnl >= 0:
                return None
            loss = abs(entry.total_pnl)
        if capital_available <= 0:
            return Decimal("Infinity")
        return loss / capital_available

    def update_daily_pnl(self, pnl: Decimal) -> None:
        """Record a closed trade's realized P&L against today's ledger entry."""
        with self._lock:
            entry = self._today_entry()
            if entry is not None:
                entry.total_pnl += pnl
                entry.trade_count += 1
            else:
                self._ledger.append(DailyPnL(date=self._today(), total_pnl=pnl, trade_count=1))
            # Entries are appended in call order, so the tail is the newest.
            self._ledger = self._ledger[-LEDGER_DAYS:]
        sign = "+" if pnl >= 0 else ""
        logger.info(f"Daily P&L updated | pnl={sign}{pnl:.2f}")

    def reset_daily_pnl(self) -> None:
        """Drop today's ledger entry."""
        today = self._today()
        with self._lock:
            self._ledger = [e for e in self._ledger if e.date != today]
        logger.info(f"Daily P&L reset | date={today}")

    def get_daily_pnl_history(self) -> List[DailyPnL]:
        with self._lock:
            return [replace(e) for e in self._ledger]

    # --- limits -----------------------------------------------------------

    def get_risk_limits(self) -> RiskLimits:
        return self._limits

    def update_risk_limits(self, **changes) -> RiskLimits:
        """Replace selected limits; the result is re-validated."""
        merged = {**self._limits.model_dump(), **changes}
        self._limits = build_risk_limits(**merged)
        logger.info(f"Risk limits updated | {changes}")
        return self._limits

    # --- validation ladder ------------------------------------------------

    def validate_new_position(
        self,
        symbol: str,
        volume: Decimal,
        entry_price: Decimal,
        stop_loss: Optional[Decimal],
        capital_available: Decimal,
        existing_positions: Sequence[Position] = (),
        leverage: Decimal = Decimal("1"),
    ) -> RiskValidationResult:
        """Run the full validation ladder for a candidate position.

        Returns:
            RiskValidationResult; on success ``risk_percentage`` holds the
            realized risk as a percentage of capital
        """
        logger.debug(f"Validating position | symbol={symbol} volume={volume:.2f}")

        checks = (
            lambda: self.validate_position_size(volume, capital_available),
            lambda: self._check_stop_loss(stop_loss),
            lambda: self.check_daily_loss_limit(capital_available),
            lambda: self.check_position_limits(symbol, existing_positions),
            lambda: self.check_total_exposure(volume, existing_positions, capital_available),
            lambda: self.validate_leverage(leverage),
        )
        for check in checks:
            result = check()
            if not result.is_valid:
                logger.info(f"Position rejected | symbol={symbol} reason={result.reason}")
                return result

        if stop_loss and entry_price > 0:
            risk_amount = abs(entry_price - stop_loss) * (volume / entry_price)
        else:
            risk_amount = volume * NO_STOP_RISK_FRACTION
        risk_pct = risk_amount / capital_available * 100

        logger.info(f"Position validated | symbol={symbol} risk={risk_pct:.2f}%")
        return RiskValidationResult(
            is_valid=True,
            suggested_volume=volume,
            risk_percentage=risk_pct,
        )

    def validate_position_size(self, volume: Decimal, capital_available: Decimal) -> RiskValidationResult:
        """Size bounds first, then the per-trade risk cap."""
        lim = self._limits
        if volume < lim.min_volume_usd:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Position size too small. Minimum: ${lim.min_volume_usd}",
                suggested_volume=lim.min_volume_usd,
            )
        if volume > lim.max_volume_usd:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Position size too large. Maximum: ${lim.max_volume_usd}",
                suggested_volume=lim.max_volume_usd,
            )

        max_risk_amount = capital_available * lim.max_risk_per_trade
        if volume > max_risk_amount:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Position exceeds {_pct(lim.max_risk_per_trade)} risk limit",
                suggested_volume=_floor(max_risk_amount),
                risk_percentage=(volume / capital_available * 100) if capital_available > 0 else None,
            )

        return RiskValidationResult(
            is_valid=True,
            risk_percentage=(volume / capital_available * 100) if capital_available > 0 else None,
        )

    def _check_stop_loss(self, stop_loss: Optional[Decimal]) -> RiskValidationResult:
        if self._limits.stop_loss_required and not stop_loss:
            return RiskValidationResult(is_valid=False, reason="Stop loss is required for all trades")
        return RiskValidationResult(is_valid=True)

    def check_daily_loss_limit(self, capital_available: Decimal) -> RiskValidationResult:
        loss = self._daily_loss_fraction(capital_available)
        if loss is not None and loss >= self._limits.max_daily_loss:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Daily loss limit reached: {_pct(loss)}",
            )
        return RiskValidationResult(is_valid=True)

    def check_position_limits(self, symbol: str, existing_positions: Sequence[Position]) -> RiskValidationResult:
        lim = self._limits
        if len(existing_positions) >= lim.max_open_positions:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Maximum open positions reached: {lim.max_open_positions}",
            )
        in_market = sum(1 for p in existing_positions if p.symbol == symbol)
        if in_market >= lim.max_positions_per_market:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Maximum positions in {symbol} reached: {lim.max_positions_per_market}",
            )
        return RiskValidationResult(is_valid=True)

    def check_total_exposure(
        self,
        new_volume: Decimal,
        existing_positions: Iterable[Position],
        capital_available: Decimal,
    ) -> RiskValidationResult:
        lim = self._limits
        current = total_exposure(existing_positions)
        if capital_available <= 0:
            return RiskValidationResult(
                is_valid=False,
                reason="No capital available",
                suggested_volume=Decimal("0"),
            )

        exposure = (current + new_volume) / capital_available
        if exposure > lim.max_total_exposure:
            headroom = capital_available * lim.max_total_exposure - current
            return RiskValidationResult(
                is_valid=False,
                reason=f"Total exposure would exceed {_pct(lim.max_total_exposure)}",
                suggested_volume=max(Decimal("0"), _floor(headroom)),
            )
        return RiskValidationResult(is_valid=True)

    def validate_leverage(self, leverage: Decimal) -> RiskValidationResult:
        if leverage > self._limits.max_leverage:
            return RiskValidationResult(
                is_valid=False,
                reason=f"Leverage {leverage}x exceeds maximum allowed: {self._limits.max_leverage}x",
            )
        return RiskValidationResult(is_valid=True)

    # --- sizing, metrics, halt --------------------------------------------

    def calculate_safe_position_size(
        self,
        entry_price: Decimal,
        stop_loss: Optional[Decimal],
        capital_available: Decimal,
        risk_fraction: Optional[Decimal] = None,
    ) -> Decimal:
        """Largest notional whose loss at the stop stays within ``risk_fraction`` of capital.

        Capped at max_volume_usd. Without a usable stop, returns
        ``capital * risk_fraction`` directly.
        """
        if risk_fraction is None:
            risk_fraction = self._limits.max_risk_per_trade
        max_risk_amount = capital_available * risk_fraction

        if not stop_loss or stop_loss == entry_price:
            return max_risk_amount

        risk_per_unit = abs(entry_price - stop_loss)
        max_volume = max_risk_amount / risk_per_unit * entry_price
        return min(max_volume, self._limits.max_volume_usd)

    def get_risk_metrics(self, existing_positions: Sequence[Position], capital_available: Decimal) -> RiskMetrics:
        exposure = total_exposure(existing_positions)
        with self._lock:
            entry = self._today_entry()
            daily = entry.total_pnl if entry else Decimal("0")

        has_capital = capital_available > 0
        return RiskMetrics(
            total_positions=len(existing_positions),
            total_exposure=exposure,
            exposure_percentage=(exposure / capital_available * 100) if has_capital else Decimal("0"),
            daily_pnl=daily,
            daily_pnl_percentage=(daily / capital_available * 100) if has_capital else Decimal("0"),
            remaining_risk_capacity=max(Decimal("0"), capital_available * self._limits.max_risk_per_trade),
            can_open_new_position=len(existing_positions) < self._limits.max_open_positions,
        )

    def should_halt_trading(self, capital_available: Decimal) -> HaltCheck:
        """Halt new entries for the rest of the day once the daily loss limit is hit."""
        loss = self._daily_loss_fraction(capital_available)
        if loss is not None and loss >= self._limits.max_daily_loss:
            return HaltCheck(halt=True, reason=f"Daily loss limit exceeded: {_pct(loss)}")
        return HaltCheck(halt=False)
