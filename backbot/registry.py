"""
Strategy registry.

Variants are registered once at import time under an upper-case string key.
``create_strategy`` is the only construction path used by the application.

Examples:
    >>> available_strategies()
    ['BBEMA_VOLUME_FARMER']
"""

from typing import Callable, Dict, List

from .bb_ema_strategy import BBEMAVolumeFarmerStrategy
from .errors import UnknownStrategyError
from .strategies import Strategy

StrategyFactory = Callable[..., Strategy]

STRATEGY_REGISTRY: Dict[str, StrategyFactory] = {
    BBEMAVolumeFarmerStrategy.name: BBEMAVolumeFarmerStrategy,
}

DEFAULT_STRATEGY = BBEMAVolumeFarmerStrategy.name


def available_strategies() -> List[str]:
    return sorted(STRATEGY_REGISTRY)


def create_strategy(name: str, **params) -> Strategy:
    """Instantiate a registered strategy.

    Args:
        name: Registry key (case-insensitive)
        **params: Strategy tunables passed to the constructor

    Raises:
        UnknownStrategyError: If no strategy is registered under ``name``
        ConfigurationError: If the tunables fail validation
    """
    key = name.strip().upper()
    factory = STRATEGY_REGISTRY.get(key)
    if factory is None:
        raise UnknownStrategyError(
            f"Unknown strategy '{name}'. Available: {', '.join(available_strategies())}"
        )
    return factory(**params)
