"""
Bollinger-Band + dual-EMA trend/pullback strategy.

Entry conditions (long side; short is symmetric):
    trend     EMA-fast rising, close above the upper band and above EMA-fast
    pullback  EMA-fast rising, close crosses over the Bollinger basis
    range     (optional) close crosses back up through the lower band

An optional volume filter requires the current bar's volume rank over the
lookback window to exceed a threshold. When the current volume is missing
the gate stays closed.

Risk parameters:
    stop distance = max(ATR * stop_mult, 3 * tick)
    contracts     = max(floor(capital * risk_perc% / stop distance), 1)
    targets       = entry +/- stop distance * partial_rr / reward_rr

Per-symbol state holds only the bar index of the last entry, used to keep
``min_bars_between`` bars between consecutive entries.
"""

import threading
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import indicators
from .errors import ConfigurationError
from .logging_setup import logger
from .market import AccountSnapshot, Candle, MarketSpec
from .position import Position
from .strategies import Action, Strategy, TrailingParams, Verdict

MAX_PYRAMIDING = 2
MIN_WARMUP_BARS = 25


class BBEMAParams(BaseModel):
    """Tunables of the BB/EMA strategy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    risk_perc: Decimal = Field(Decimal("0.5"), gt=0)  # percent of capital risked per trade
    bb_len: int = Field(20, gt=0)
    bb_mult: Decimal = Field(Decimal("2.0"), gt=0)
    ema_fast_len: int = Field(21, gt=0)
    ema_slow_len: int = Field(55, gt=0)
    atr_len: int = Field(14, gt=0)
    stop_mult: Decimal = Field(Decimal("1.1"), gt=0)
    partial_rr: Decimal = Field(Decimal("0.7"), gt=0)
    reward_rr: Decimal = Field(Decimal("2.5"), gt=0)
    trail_atr_mult: Decimal = Field(Decimal("1.5"), gt=0)
    partial_pct: Decimal = Field(Decimal("40"), gt=0, le=100)
    min_bars_between: int = Field(5, ge=0)
    use_range_trades: bool = False
    use_vol_filter: bool = False
    vol_lookback: int = Field(50, gt=0)
    vol_thresh: Decimal = Field(Decimal("0.6"), ge=0, le=1)


@dataclass
class StrategyState:
    last_entry_bar_index: Optional[int] = None


def _bar_index(candles: Sequence[Candle]) -> int:
    """Absolute index of the last bar, stable across cycles with a sliding window.

    Derived from the candle timestamps (timestamp // bar spacing) so the same
    bar keeps the same index when the fetched window slides forward.
    """
    if len(candles) >= 2:
        step = candles[-1].timestamp - candles[-2].timestamp
        if step > 0:
            return candles[-1].timestamp // step
    return len(candles) - 1


class BBEMAVolumeFarmerStrategy(Strategy):
    name = "BBEMA_VOLUME_FARMER"

    def __init__(self, params: Optional[BBEMAParams] = None, **overrides):
        if params is None:
            try:
                params = BBEMAParams(**overrides)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid {self.name} parameters: {e}") from e
        self.params = params
        self._states: Dict[str, StrategyState] = {}
        self._lock = threading.Lock()
        logger.info(f"{self.name} strategy initialized | {params.model_dump()}")

    @property
    def min_data_required(self) -> int:
        p = self.params
        return max(p.bb_len, p.ema_slow_len, p.atr_len, p.vol_lookback, MIN_WARMUP_BARS)

    def last_entry_bar(self, symbol: str) -> Optional[int]:
        with self._lock:
            state = self._states.get(symbol)
            return state.last_entry_bar_index if state else None

    def _spacing_ok(self, symbol: str, bar_index: int) -> bool:
        last = self.last_entry_bar(symbol)
        return last is None or bar_index - last >= self.params.min_bars_between

    def _record_entry(self, symbol: str, bar_index: int) -> None:
        with self._lock:
            self._states.setdefault(symbol, StrategyState()).last_entry_bar_index = bar_index

    def _volume_gate(self, volumes: List[Optional[Decimal]]) -> bool:
        if not self.params.use_vol_filter:
            return True
        current = volumes[-1]
        if current is None:
            return False
        window = [v for v in volumes[-self.params.vol_lookback:] if v is not None]
        vol_min, vol_max = min(window), max(window)
        if vol_max != vol_min:
            rank = (current - vol_min) / (vol_max - vol_min)
        else:
            rank = Decimal("0.5")
        return rank > self.params.vol_thresh

    async def analyze(
        self,
        candles: Sequence[Candle],
        market: MarketSpec,
        account: AccountSnapshot,
        open_positions_for_symbol: Sequence[Position],
        all_open_positions: Sequence[Position],
    ) -> Optional[Verdict]:
        p = self.params
        symbol = market.symbol

        if len(candles) < self.min_data_required:
            last = candles[-1].close if candles else Decimal("0")
            return Verdict.neutral(symbol, last, "Insufficient data")

        closes = [c.close for c in candles]
        volumes = [c.volume for c in candles]
        price = closes[-1]
        bar_index = _bar_index(candles)

        basis_s = indicators.sma(closes, p.bb_len)
        dev_s = indicators.stdev(closes, p.bb_len)
        ema_fast_s = indicators.ema(closes, p.ema_fast_len)
        ema_slow_s = indicators.ema(closes, p.ema_slow_len)
        atr_s = indicators.atr(candles, p.atr_len)

        basis, dev = basis_s[-1], dev_s[-1]
        ema_fast, ema_fast_prev = ema_fast_s[-1], ema_fast_s[-3]
        ema_slow, atr_val = ema_slow_s[-1], atr_s[-1]
        if any(v is None for v in (basis, dev, ema_fast, ema_fast_prev, ema_slow, atr_val)):
            return Verdict.neutral(symbol, price, "Indicator calculation resulted in undefined value")

        upper_s = [
            b + p.bb_mult * d if b is not None and d is not None else None
            for b, d in zip(basis_s, dev_s)
        ]
        lower_s = [
            b - p.bb_mult * d if b is not None and d is not None else None
            for b, d in zip(basis_s, dev_s)
        ]
        upper, lower = upper_s[-1], lower_s[-1]

        stop_dist = max(atr_val * p.stop_mult, market.tick_size * 3)
        if stop_dist <= 0:
            return Verdict.neutral(symbol, price, "Zero stop distance")

        risk_cash = account.capital_available * p.risk_perc / 100
        contracts = max((risk_cash / stop_dist).to_integral_value(rounding=ROUND_FLOOR), Decimal(1))
        volume = contracts * price

        up_slope = ema_fast > ema_fast_prev
        dn_slope = ema_fast < ema_fast_prev

        long_trend = up_slope and price > upper and price > ema_fast
        short_trend = dn_slope and price < lower and price < ema_fast

        long_pull = up_slope and indicators.crossover(closes[-2:], basis_s[-2:])
        short_pull = dn_slope and indicators.crossunder(closes[-2:], basis_s[-2:])

        long_range = p.use_range_trades and indicators.crossover(closes[-2:], lower_s[-2:])
        short_range = p.use_range_trades and indicators.crossunder(closes[-2:], upper_s[-2:])

        vol_gate = self._volume_gate(volumes)
        long_sig = vol_gate and (long_trend or long_pull or long_range)
        short_sig = vol_gate and (short_trend or short_pull or short_range)

        if len(open_positions_for_symbol) >= MAX_PYRAMIDING:
            return Verdict.neutral(symbol, price, "Max positions reached")
        if not self._spacing_ok(symbol, bar_index):
            return Verdict.neutral(symbol, price, "Min bars between entries not met")

        if long_sig:
            action = Action.LONG
            kind = "trend" if long_trend else "pullback" if long_pull else "range"
            direction = 1
        elif short_sig:
            action = Action.SHORT
            kind = "trend" if short_trend else "pullback" if short_pull else "range"
            direction = -1
        else:
            reason = "No signal" if vol_gate else "Volume filter closed"
            return Verdict.neutral(symbol, price, reason)

        self._record_entry(symbol, bar_index)
        entry = price
        return Verdict(
            action=action,
            symbol=symbol,
            market_price=price,
            entry=entry,
            stop_loss=entry - direction * stop_dist,
            take_profit_1=entry + direction * stop_dist * p.partial_rr,
            take_profit_2=entry + direction * stop_dist * p.reward_rr,
            volume=volume,
            partial_close_pct=p.partial_pct,
            trailing=TrailingParams(atr_value=atr_val, trail_multiplier=p.trail_atr_mult),
            reason=f"{action.value} signal: {kind}",
        )
