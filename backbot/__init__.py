"""
Risk-Gated Derivatives Trading Bot.

A polling trading bot for perpetual futures markets featuring:
- Bollinger-Band + dual-EMA trend/pullback signals on 5-minute candles
- Risk-gated entries (per-trade risk, exposure, position count, leverage, daily-loss halt)
- Single-shot resize retry using the risk manager's suggested volume
- Favorable-only trailing stops clamped at break-even, on a faster independent loop
- Force-close of positions in markets too illiquid to protect
- Simulation mode that short-circuits every order placement
- Structured logging via loguru
- Configuration-driven (YAML)

Core Modules:
    indicators: SMA, EMA, stdev, ATR, highest/lowest, crossover/crossunder
    strategies: Verdict types and the Strategy contract
    registry: Strategy registry keyed by name
    bb_ema_strategy: Bollinger-Band + dual-EMA reference strategy
    risk_manager: Risk limits, validation ladder and daily P&L ledger
    decision: Decision engine (one entry evaluation cycle)
    trailing_stop: Trailing-stop engine
    order_controller: Entry, protective-stop and force-close order construction
    scheduler: Non-overlapping periodic loops
    config: Configuration loading and validation

Example:
    >>> from backbot.config import BotConfig
    >>> from backbot.app import build_app
    >>> from backbot.paper import build_paper_exchange
    >>>
    >>> config = BotConfig(simulation_mode=True)
    >>> app = build_app(config, build_paper_exchange(seed=7))
"""

__version__ = "0.1.0"
__all__ = [
    "indicators",
    "market",
    "position",
    "orders",
    "exchange",
    "order_controller",
    "pnl",
    "strategies",
    "registry",
    "bb_ema_strategy",
    "risk_manager",
    "decision",
    "trailing_stop",
    "scheduler",
    "paper",
    "app",
    "config",
    "errors",
    "logging_setup",
]
