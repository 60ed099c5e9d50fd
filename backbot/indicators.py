"""
Technical indicators over Decimal time series.

Every function is pure and returns a list the same length as its input.
Positions before the warm-up window hold None ("no value yet"), never zero.

Examples:
    >>> from decimal import Decimal
    >>> sma([Decimal(1), Decimal(2), Decimal(3)], 2)
    [None, Decimal('1.5'), Decimal('2.5')]
    >>> crossover([Decimal(1), Decimal(3)], [Decimal(2), Decimal(2)])
    True
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from .errors import InvalidPeriodError
from .market import Candle, to_decimal

Series = List[Optional[Decimal]]


def _check_period(period: int) -> None:
    if period <= 0:
        raise InvalidPeriodError(f"Period must be positive, got {period}")


def _as_decimals(data: Sequence) -> List[Decimal]:
    return [to_decimal(v) for v in data]


def sma(data: Sequence, period: int) -> Series:
    """Simple moving average of the trailing ``period`` window."""
    _check_period(period)
    values = _as_decimals(data)
    result: Series = []
    for i in range(len(values)):
        if i < period - 1:
            result.append(None)
        else:
            window = values[i - period + 1:i + 1]
            result.append(sum(window) / Decimal(period))
    return result


def ema(data: Sequence, period: int) -> Series:
    """Exponential moving average seeded with the SMA of the first ``period`` values.

    ema[i] = value[i] * k + ema[i-1] * (1 - k), with k = 2 / (period + 1)
    """
    _check_period(period)
    values = _as_decimals(data)
    result: Series = [None] * len(values)
    if len(values) < period:
        return result

    result[period - 1] = sum(values[:period]) / Decimal(period)

    k = Decimal(2) / Decimal(period + 1)
    for i in range(period, len(values)):
        result[i] = values[i] * k + result[i - 1] * (1 - k)
    return result


def stdev(data: Sequence, period: int) -> Series:
    """Population standard deviation (divides by ``period``) over the trailing window."""
    _check_period(period)
    values = _as_decimals(data)
    result: Series = []
    for i in range(len(values)):
        if i < period - 1:
            result.append(None)
            continue
        window = values[i - period + 1:i + 1]
        mean = sum(window) / Decimal(period)
        variance = sum((v - mean) ** 2 for v in window) / Decimal(period)
        result.append(variance.sqrt())
    return result


def true_range(candle: Candle, prev: Optional[Candle] = None) -> Decimal:
    """max(high-low, |high-prevClose|, |low-prevClose|); high-low for the first bar."""
    tr = candle.high - candle.low
    if prev is not None:
        tr = max(tr, abs(candle.high - prev.close), abs(candle.low - prev.close))
    return tr


def atr(candles: Sequence[Candle], period: int) -> Series:
    """Average True Range using Wilder's running average.

    Seeded at index ``period - 1`` with the mean of the first ``period`` true
    ranges, then atr[i] = (atr[i-1] * (period - 1) + tr[i]) / period.
    """
    _check_period(period)
    result: Series = [None] * len(candles)
    if len(candles) < period:
        return result

    trs = [
        true_range(candle, candles[i - 1] if i > 0 else None)
        for i, candle in enumerate(candles)
    ]
    result[period - 1] = sum(trs[:period]) / Decimal(period)
    for i in range(period, len(candles)):
        result[i] = (result[i - 1] * (period - 1) + trs[i]) / Decimal(period)
    return result


def highest(data: Sequence, period: int) -> Series:
    """Trailing-window maximum."""
    _check_period(period)
    values = _as_decimals(data)
    return [
        None if i < period - 1 else max(values[i - period + 1:i + 1])
        for i in range(len(values))
    ]


def lowest(data: Sequence, period: int) -> Series:
    """Trailing-window minimum."""
    _check_period(period)
    values = _as_decimals(data)
    return [
        None if i < period - 1 else min(values[i - period + 1:i + 1])
        for i in range(len(values))
    ]


def _last_two(a: Sequence, b: Sequence):
    if len(a) < 2 or len(b) < 2:
        return None
    points = (a[-2], a[-1], b[-2], b[-1])
    if any(p is None for p in points):
        return None
    return points


def crossover(a: Sequence, b: Sequence) -> bool:
    """True when ``a`` was <= ``b`` on the previous point and is now strictly above."""
    points = _last_two(a, b)
    if points is None:
        return False
    a_prev, a_cur, b_prev, b_cur = points
    return a_prev <= b_prev and a_cur > b_cur


def crossunder(a: Sequence, b: Sequence) -> bool:
    """True when ``a`` was >= ``b`` on the previous point and is now strictly below."""
    points = _last_two(a, b)
    if points is None:
        return False
    a_prev, a_cur, b_prev, b_cur = points
    return a_prev >= b_prev and a_cur < b_cur
