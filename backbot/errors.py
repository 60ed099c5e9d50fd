"""Exception hierarchy for the trading engine.

Risk rejections are not errors: they come back as ``RiskValidationResult``
values. Everything here is either a configuration problem (fatal at startup),
an order invariant violation (never reaches the exchange), or a transient
data problem (the affected symbol or cycle is skipped).
"""


class BackbotError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigurationError(BackbotError, ValueError):
    """Invalid configuration detected at initialization."""
    pass


class InvalidPeriodError(ConfigurationError):
    """Indicator period must be a positive integer."""
    pass


class UnknownStrategyError(ConfigurationError, KeyError):
    """Strategy name is not present in the registry."""

    def __str__(self) -> str:
        # KeyError wraps its message in quotes; keep it readable in logs.
        return str(self.args[0]) if self.args else ""


class InvalidOrderError(BackbotError, ValueError):
    """Order parameters violate an invariant (e.g. stop price <= 0)."""
    pass


class MarketNotFoundError(BackbotError, LookupError):
    """Symbol is not part of the tradable market list."""
    pass


class DataUnavailableError(BackbotError):
    """Candles, ticker or account data could not be fetched."""
    pass
