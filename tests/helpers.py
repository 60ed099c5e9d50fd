"""Builders shared by the test modules."""
from decimal import Decimal
from typing import Iterable, List, Optional

from backbot.market import Candle

BAR = 300


def D(value) -> Decimal:
    return Decimal(str(value))


def candle(close, *, high=None, low=None, open_=None, volume=1000, ts: int = 0) -> Candle:
    close = D(close)
    return Candle(
        open=D(open_) if open_ is not None else close,
        high=D(high) if high is not None else close + 1,
        low=D(low) if low is not None else close - 1,
        close=close,
        volume=D(volume) if volume is not None else None,
        timestamp=ts,
    )


def candles_from_closes(closes: Iterable, *, start_ts: int = 0, volumes: Optional[List] = None) -> List[Candle]:
    """One candle per close, high/low one unit around the close, 5-minute spacing."""
    closes = list(closes)
    volumes = volumes or [1000] * len(closes)
    return [
        candle(c, volume=v, ts=start_ts + i * BAR)
        for i, (c, v) in enumerate(zip(closes, volumes))
    ]
