"""End-to-end demo of the bot on the paper exchange.

Shows:
1. Structured logging
2. Loading configuration (or defaults)
3. Building the app on a seeded random-walk market
4. Stepping decision and trailing-stop cycles bar by bar
5. Reading risk metrics and the daily P&L ledger
"""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path so we can import the backbot package
sys.path.insert(0, str(Path(__file__).parent.parent))

from backbot.app import build_app
from backbot.config import BotConfig
from backbot.logging_setup import logger, setup_logging
from backbot.paper import build_paper_exchange

BARS = 60
TRAILING_CHECKS_PER_BAR = 3


async def main():
    """Run the demo bot against a paper market."""
    setup_logging(log_file="backbot_demo.log", level="INFO", enable_console=True)
    logger.info("=== Backbot Paper Demo ===")

    config_file = Path(__file__).parent.parent / "config.yaml"
    if config_file.exists():
        config = BotConfig.from_yaml(str(config_file))
        logger.info(f"Loaded config from {config_file}")
    else:
        config = BotConfig()
        logger.info("Using default configuration")

    exchange = build_paper_exchange(limits=config.risk, seed=7)
    app = build_app(config, exchange)

    # Drive the cycles by hand so each one sees a fresh bar.
    for bar in range(BARS):
        exchange.advance()
        report = await app.decision.run_cycle()
        if report.placed:
            logger.info(f"Bar {bar}: entries placed for {', '.join(report.placed)}")
        for _ in range(TRAILING_CHECKS_PER_BAR):
            trailing = await app.trailing.run_cycle()
            for symbol, pnl in trailing.closed.items():
                logger.info(f"Bar {bar}: {symbol} closed, net P&L {pnl:.2f}")

    metrics = await app.decision.get_current_risk_metrics()
    logger.info("=== Demo Complete ===")
    logger.info(f"  Open positions: {metrics.total_positions}")
    logger.info(f"  Exposure: {metrics.exposure_percentage:.1f}%")
    logger.info(f"  Daily P&L: {metrics.daily_pnl:.2f} ({metrics.daily_pnl_percentage:+.2f}%)")
    for entry in app.risk_manager.get_daily_pnl_history():
        logger.info(f"  {entry.date}: {entry.total_pnl:.2f} over {entry.trade_count} trades")


if __name__ == "__main__":
    asyncio.run(main())
