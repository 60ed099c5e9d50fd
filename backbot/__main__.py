"""Command-line entry point.

Usage:
    python -m backbot --config bot.yaml
    python -m backbot --config bot.yaml --exchange mypkg.client:build_client
    python -m backbot --simulate --duration 600
"""
import argparse
import asyncio
import importlib
import sys
from typing import Callable, List, Optional

from .app import build_app
from .config import BotConfig
from .errors import ConfigurationError
from .exchange import ExchangeClient
from .logging_setup import logger, setup_logging
from .paper import build_paper_exchange


def load_exchange_factory(path: str) -> Callable[[BotConfig], ExchangeClient]:
    """Resolve a ``module:callable`` reference to an exchange factory."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Exchange factory must look like 'module:callable', got '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import exchange module '{module_name}': {e}") from e
    factory = getattr(module, attr, None)
    if factory is None:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attr}'")
    return factory


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="backbot", description="Risk-gated derivatives trading bot")
    parser.add_argument("--config", help="Path to YAML config file (defaults apply when omitted)")
    parser.add_argument(
        "--exchange",
        help="Exchange factory as module:callable taking the BotConfig (default: random-walk paper exchange)",
    )
    parser.add_argument("--simulate", action="store_true", help="Force simulation mode (no order placement)")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    parser.add_argument("--seed", type=int, help="Random seed for the paper exchange")
    return parser


async def run(args: argparse.Namespace) -> None:
    config = BotConfig.from_yaml(args.config) if args.config else BotConfig()
    if args.simulate:
        config.simulation_mode = True
    setup_logging(
        log_file=config.logging.log_file,
        level=config.logging.log_level,
        enable_console=config.logging.enable_console,
    )

    if args.exchange:
        exchange = load_exchange_factory(args.exchange)(config)
    else:
        logger.info("No exchange factory given, using paper exchange")
        exchange = build_paper_exchange(limits=config.risk, seed=args.seed)

    app = build_app(config, exchange)
    if args.duration:
        await app.runner.run_for(args.duration)
    else:
        await app.run()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(run(args))
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"Startup failed | error={e}")
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
