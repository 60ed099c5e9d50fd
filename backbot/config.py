"""Configuration loader for the bot.

Supports YAML format with environment variable interpolation.
"""
import os
from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict

import yaml

from .errors import ConfigurationError
from .risk_manager import RiskLimits, build_risk_limits


def _require_positive(section: str, obj, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        try:
            positive = value > 0
        except TypeError:
            positive = False
        if not positive:
            raise ConfigurationError(f"{section}.{name} must be positive, got {value!r}")


@dataclass
class SchedulerConfig:
    """Loop cadences and exchange-call bounds."""
    decision_interval_seconds: float = 60.0
    trailing_interval_seconds: float = 2.5
    limit_order: int = 1  # max positions / scheduled entries before new entries pause
    call_timeout_seconds: float = 10.0

    def __post_init__(self):
        _require_positive(
            "scheduler", self, "decision_interval_seconds", "trailing_interval_seconds",
            "limit_order", "call_timeout_seconds",
        )


@dataclass
class DecisionConfig:
    """Decision engine parameters."""
    candle_interval: str = "5m"
    candle_limit: int = 100
    stale_schedule_minutes: float = 5.0
    replace_order_minutes: float = 10.0
    default_stop_pct: Decimal = Decimal('0.05')

    def __post_init__(self):
        _require_positive(
            "decision", self, "candle_limit", "stale_schedule_minutes",
            "replace_order_minutes", "default_stop_pct",
        )


@dataclass
class TrailingConfig:
    """Trailing-stop engine parameters."""
    candle_interval: str = "1m"
    candle_limit: int = 30
    window: int = 5
    illiquid_volume_fraction: Decimal = Decimal('0.1')
    covered_tolerance: Decimal = Decimal('0.001')  # 0.1% of mark price

    def __post_init__(self):
        _require_positive("trailing", self, "candle_limit", "window", "illiquid_volume_fraction")


@dataclass
class StrategySettings:
    """Active strategy name and its tunables."""
    name: str = "BBEMA_VOLUME_FARMER"
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    log_file: str = "backbot.log"
    log_level: str = "INFO"
    enable_console: bool = True


def _section(cls, data: Dict[str, Any], name: str):
    """Build a section dataclass, converting Decimal fields and rejecting unknown keys."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
    kwargs = {}
    for key, value in data.items():
        if known[key].type is Decimal and value is not None:
            value = Decimal(str(value))
        kwargs[key] = value
    return cls(**kwargs)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


@dataclass
class BotConfig:
    """Complete bot configuration."""
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    trailing: TrailingConfig = field(default_factory=TrailingConfig)
    risk: RiskLimits = field(default_factory=RiskLimits)
    strategy: StrategySettings = field(default_factory=StrategySettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    simulation_mode: bool = False
    strategy_fallback: bool = False  # degrade to the default strategy on an unknown name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BotConfig":
        data = data or {}
        strategy = data.get("strategy") or {}
        return cls(
            scheduler=_section(SchedulerConfig, data.get("scheduler"), "scheduler"),
            decision=_section(DecisionConfig, data.get("decision"), "decision"),
            trailing=_section(TrailingConfig, data.get("trailing"), "trailing"),
            risk=build_risk_limits(**(data.get("risk") or {})),
            strategy=StrategySettings(
                name=str(strategy.get("name", StrategySettings.name)),
                params=dict(strategy.get("params") or {}),
            ),
            logging=_section(LoggingConfig, data.get("logging"), "logging"),
            simulation_mode=bool(data.get("simulation_mode", False)),
            strategy_fallback=bool(data.get("strategy_fallback", False)),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "BotConfig":
        """Load configuration from YAML file with env var interpolation.

        Args:
            config_path: Path to YAML config file

        Returns:
            BotConfig instance

        Example YAML:
            simulation_mode: true
            scheduler:
              decision_interval_seconds: 60
            risk:
              max_risk_per_trade: 0.02
            strategy:
              name: BBEMA_VOLUME_FARMER
              params:
                bb_len: 20
            logging:
              log_file: "${LOG_DIR}/backbot.log"
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with config_file.open("r") as f:
            raw = f.read()

        # Interpolate environment variables: ${VAR_NAME}
        for key, value in os.environ.items():
            raw = raw.replace(f"${{{key}}}", value)

        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        return cls.from_dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "simulation_mode": self.simulation_mode,
            "strategy_fallback": self.strategy_fallback,
            "scheduler": _plain(asdict(self.scheduler)),
            "decision": _plain(asdict(self.decision)),
            "trailing": _plain(asdict(self.trailing)),
            "risk": self.risk.model_dump(mode="json"),
            "strategy": {"name": self.strategy.name, "params": _plain(self.strategy.params)},
            "logging": asdict(self.logging),
        }

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with output_file.open("w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
