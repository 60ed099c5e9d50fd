"""Application wiring, paper exchange and command-line entry point."""
from decimal import Decimal

import pytest

from backbot.__main__ import build_parser, load_exchange_factory, main
from backbot.app import build_app, build_strategy
from backbot.bb_ema_strategy import BBEMAVolumeFarmerStrategy
from backbot.config import BotConfig
from backbot.errors import ConfigurationError, UnknownStrategyError
from backbot.orders import OrderSpec, OrderStatus, OrderType, Side
from backbot.paper import BAR_SECONDS, PaperExchange, build_paper_exchange

from helpers import candle

SOL = "SOL_USDC_PERP"


def config_with(**overrides):
    data = {"strategy": {"name": "BBEMA_VOLUME_FARMER"}}
    data.update(overrides)
    return BotConfig.from_dict(data)


class TestBuildStrategy:

    def test_configured_tunables(self):
        config = config_with(strategy={"name": "bbema_volume_farmer", "params": {"bb_len": 12}})
        strategy = build_strategy(config)
        assert isinstance(strategy, BBEMAVolumeFarmerStrategy)
        assert strategy.params.bb_len == 12

    def test_unknown_name_is_fatal_by_default(self):
        with pytest.raises(UnknownStrategyError):
            build_strategy(config_with(strategy={"name": "GRID"}))

    def test_unknown_name_falls_back_when_enabled(self):
        config = config_with(strategy={"name": "GRID", "params": {"grid": 3}}, strategy_fallback=True)
        strategy = build_strategy(config)
        assert isinstance(strategy, BBEMAVolumeFarmerStrategy)

    def test_bad_tunables_are_never_masked(self):
        config = config_with(strategy={"name": "BBEMA_VOLUME_FARMER", "params": {"bb_len": 0}}, strategy_fallback=True)
        with pytest.raises(ConfigurationError):
            build_strategy(config)


class TestBuildApp:

    def test_components_share_collaborators(self):
        config = config_with(simulation_mode=True, scheduler={"limit_order": 3, "trailing_interval_seconds": 1})
        exchange = build_paper_exchange(seed=1)
        app = build_app(config, exchange)

        assert app.decision.exchange is exchange
        assert app.trailing.exchange is exchange
        assert app.decision.risk_manager is app.trailing.risk_manager
        assert app.decision.orders is app.trailing.orders
        assert app.orders.simulation_mode is True
        assert app.decision.limit_order == 3
        assert app.runner.decision_task.name == "decision"
        assert app.runner.trailing_task.interval == 1

    @pytest.mark.asyncio
    async def test_paper_run_for(self):
        config = config_with(
            simulation_mode=True,
            scheduler={"decision_interval_seconds": 0.02, "trailing_interval_seconds": 0.01},
        )
        app = build_app(config, build_paper_exchange(seed=42))

        await app.runner.run_for(0.06)

        assert app.runner.decision_task.runs >= 1
        assert app.runner.trailing_task.runs >= 1
        assert app.runner.decision_task.failures == 0
        assert app.runner.trailing_task.failures == 0


class TestPaperExchange:

    def test_seeded_history_is_reproducible(self):
        first = build_paper_exchange(seed=5, history=50)
        second = build_paper_exchange(seed=5, history=50)
        assert first.candles == second.candles
        assert len(first.candles["BTC_USDC_PERP"]) == 50

    def test_account_limits(self):
        exchange = build_paper_exchange({SOL: Decimal("150")}, capital=Decimal("5000"), seed=1)
        account = exchange.account
        assert account.symbols == [SOL]
        assert account.min_trade_volume == Decimal("100")
        assert account.max_open_orders == 5
        assert exchange.tickers[SOL].price == exchange.candles[SOL][-1].close

    def test_advance_extends_series(self):
        exchange = build_paper_exchange({SOL: Decimal("150")}, history=10, seed=3)
        exchange.advance(3)
        series = exchange.candles[SOL]
        assert len(series) == 13
        assert [c.timestamp for c in series] == [i * BAR_SECONDS for i in range(13)]
        assert exchange.tickers[SOL].price == series[-1].close

    @pytest.mark.asyncio
    async def test_limit_fill_opens_and_stop_fill_closes(self):
        exchange = build_paper_exchange({SOL: Decimal("150")}, history=10, seed=3)
        await exchange.place_order(OrderSpec(
            symbol=SOL, side=Side.BID, order_type=OrderType.LIMIT,
            quantity=Decimal("2"), client_id=1, price=Decimal("100"),
        ))
        exchange._match(SOL, candle(100, ts=10 * BAR_SECONDS))

        [position] = exchange.positions
        assert position.net_quantity == Decimal("2")
        assert position.entry_price == Decimal("100")
        assert exchange.orders["m1"].status == OrderStatus.FILLED

        await exchange.place_order(OrderSpec(
            symbol=SOL, side=Side.ASK, order_type=OrderType.LIMIT, quantity=Decimal("2"),
            client_id=2, price=Decimal("95"), trigger_price=Decimal("95.01"), reduce_only=True,
        ))
        exchange._match(SOL, candle(95.5, ts=11 * BAR_SECONDS))
        assert exchange.positions == []

    @pytest.mark.asyncio
    async def test_market_close_removes_position(self):
        exchange = build_paper_exchange({SOL: Decimal("150")}, history=10, seed=3)
        await exchange.place_order(OrderSpec(
            symbol=SOL, side=Side.BID, order_type=OrderType.LIMIT,
            quantity=Decimal("1"), client_id=1, price=Decimal("100"),
        ))
        exchange._match(SOL, candle(100))
        assert len(exchange.positions) == 1

        await exchange.place_order(OrderSpec(
            symbol=SOL, side=Side.ASK, order_type=OrderType.MARKET,
            quantity=Decimal("1"), client_id=2, reduce_only=True,
        ))
        assert exchange.positions == []
        assert isinstance(exchange, PaperExchange)


class TestCommandLine:

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.config is None
        assert args.exchange is None
        assert args.simulate is False
        assert args.duration is None

    def test_parser_options(self):
        args = build_parser().parse_args(
            ["--config", "bot.yaml", "--simulate", "--duration", "1.5", "--seed", "9"]
        )
        assert (args.config, args.simulate, args.duration, args.seed) == ("bot.yaml", True, 1.5, 9)

    def test_load_exchange_factory(self):
        assert load_exchange_factory("backbot.paper:build_paper_exchange") is build_paper_exchange

    @pytest.mark.parametrize("path", ["backbot.paper", "no_such_module_xyz:build", "backbot.paper:missing", ":x"])
    def test_bad_factory_reference(self, path):
        with pytest.raises(ConfigurationError):
            load_exchange_factory(path)

    def test_missing_config_exits_with_error(self):
        assert main(["--config", "/nonexistent/backbot.yaml"]) == 2
