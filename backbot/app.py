"""Wiring from a BotConfig to a runnable bot."""
from dataclasses import dataclass

from .config import BotConfig
from .decision import DecisionEngine
from .errors import UnknownStrategyError
from .exchange import ExchangeClient
from .logging_setup import logger
from .order_controller import OrderController
from .registry import DEFAULT_STRATEGY, create_strategy
from .risk_manager import RiskManager
from .scheduler import BotRunner, PeriodicTask
from .strategies import Strategy
from .trailing_stop import TrailingStopEngine


def build_strategy(config: BotConfig) -> Strategy:
    """Create the configured strategy.

    An unknown name is fatal unless ``strategy_fallback`` is set, in which
    case the default strategy is used with its default tunables.

    Raises:
        UnknownStrategyError: If the name is unknown and fallback is disabled
        ConfigurationError: If the strategy tunables are invalid
    """
    name = config.strategy.name
    try:
        return create_strategy(name, **config.strategy.params)
    except UnknownStrategyError as e:
        if not config.strategy_fallback:
            raise
        logger.error(f"Unknown strategy, falling back to default | requested={name} default={DEFAULT_STRATEGY} error={e}")
        return create_strategy(DEFAULT_STRATEGY)


@dataclass
class BotApp:
    """All long-lived components of one bot process."""
    config: BotConfig
    exchange: ExchangeClient
    strategy: Strategy
    risk_manager: RiskManager
    orders: OrderController
    decision: DecisionEngine
    trailing: TrailingStopEngine
    runner: BotRunner

    async def run(self) -> None:
        await self.runner.start()

    async def stop(self) -> None:
        await self.runner.stop()


def build_app(config: BotConfig, exchange: ExchangeClient) -> BotApp:
    sched = config.scheduler
    timeout = sched.call_timeout_seconds
    strategy = build_strategy(config)
    risk_manager = RiskManager(config.risk)
    orders = OrderController(exchange, simulation_mode=config.simulation_mode, call_timeout=timeout)
    decision = DecisionEngine(
        exchange,
        strategy,
        risk_manager,
        orders,
        settings=config.decision,
        limit_order=sched.limit_order,
        call_timeout=timeout,
    )
    trailing = TrailingStopEngine(
        exchange,
        orders,
        risk_manager,
        settings=config.trailing,
        call_timeout=timeout,
    )
    runner = BotRunner(
        PeriodicTask("decision", decision.run_cycle, sched.decision_interval_seconds),
        PeriodicTask("trailing_stop", trailing.run_cycle, sched.trailing_interval_seconds),
    )
    logger.info(
        f"Bot assembled | strategy={strategy.name} simulation={config.simulation_mode} "
        f"decision_every={sched.decision_interval_seconds}s trailing_every={sched.trailing_interval_seconds}s"
    )
    return BotApp(
        config=config,
        exchange=exchange,
        strategy=strategy,
        risk_manager=risk_manager,
        orders=orders,
        decision=decision,
        trailing=trailing,
        runner=runner,
    )
