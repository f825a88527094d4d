"""
Test Refresh Coordinator - cycles, suppression, stale discards and the view-model.

Run with: python -m pytest tests/test_coordinator.py -v
"""

import asyncio
import json

import pytest


def make_coordinator(arena_config, source, **kwargs):
    from config.loader import ConfigResolver
    from dashboard.coordinator import RefreshCoordinator
    return RefreshCoordinator(ConfigResolver(arena_config), source, **kwargs)


async def wait_until_refreshing(coordinator):
    while not coordinator.is_refreshing:
        await asyncio.sleep(0)


class TestRefresh:

    def test_commit_publishes_view_model(self, arena_config, arena_files, make_source):
        from core.events import EventType
        coordinator = make_coordinator(arena_config, make_source(arena_files), market="us")
        committed = []
        coordinator.events.subscribe(EventType.REFRESH_COMMITTED, committed.append)

        view_model = asyncio.run(coordinator.refresh())

        assert view_model is not None
        assert coordinator.state.cycle == 1
        assert coordinator.view_model is view_model
        assert len(committed) == 1
        assert committed[0].payload["view_model"] is view_model
        assert committed[0].payload["changed"] is True

    def test_unchanged_second_refresh(self, arena_config, arena_files, make_source):
        from core.events import EventType
        coordinator = make_coordinator(arena_config, make_source(arena_files), market="us")

        async def twice():
            await coordinator.refresh()
            await coordinator.refresh()

        asyncio.run(twice())
        committed = coordinator.events.get_recent_events(EventType.REFRESH_COMMITTED)
        assert [e.payload["changed"] for e in committed] == [True, False]
        assert [e.cycle for e in committed] == [1, 2]

    def test_missing_artifacts_published(self, arena_config, arena_files, make_source):
        from core.events import EventType
        coordinator = make_coordinator(arena_config, make_source(arena_files), market="us")
        asyncio.run(coordinator.refresh())
        paths = [e.payload["path"] for e in coordinator.events.get_recent_events(EventType.ARTIFACT_MISSING)]
        assert "agent_data/gamma/position/position.jsonl" in paths

    def test_refresh_suppressed_while_in_flight(self, arena_config, arena_files, make_source):
        from core.events import EventType

        async def scenario():
            gate = asyncio.Event()
            coordinator = make_coordinator(
                arena_config, make_source(arena_files, gates={"agent_data/": gate}), market="us"
            )
            first = asyncio.create_task(coordinator.refresh())
            await wait_until_refreshing(coordinator)

            second = await coordinator.refresh()
            gate.set()
            return coordinator, second, await first

        coordinator, second, first = asyncio.run(scenario())
        assert second is None
        assert first is not None
        assert coordinator.cycle == 1
        assert len(coordinator.events.get_recent_events(EventType.REFRESH_SUPPRESSED)) == 1

    def test_stale_cycle_discarded_on_market_switch(self, arena_config, arena_files, make_source):
        from core.events import EventType

        async def scenario():
            gate = asyncio.Event()
            coordinator = make_coordinator(
                arena_config, make_source(arena_files, gates={"agent_data/": gate}), market="us"
            )
            stale = asyncio.create_task(coordinator.refresh())
            await wait_until_refreshing(coordinator)

            switched = await coordinator.switch_market("cn")
            gate.set()
            return coordinator, switched, await stale

        coordinator, switched, stale = asyncio.run(scenario())
        assert stale is None
        assert switched.market == "cn"
        assert coordinator.market == "cn"
        assert coordinator.state.cycle == 2
        assert coordinator.state.dataset.market == "cn"

        discarded = coordinator.events.get_recent_events(EventType.REFRESH_DISCARDED)
        assert [e.cycle for e in discarded] == [1]
        assert len(coordinator.events.get_recent_events(EventType.MARKET_SWITCHED)) == 1

    def test_timeout_leaves_state_untouched(self, arena_config, arena_files, make_source):
        from core.events import EventType
        from dashboard.coordinator import RefreshConfig

        async def scenario():
            gate = asyncio.Event()
            coordinator = make_coordinator(
                arena_config,
                make_source(arena_files, gates={"agent_data/": gate}),
                market="us",
                refresh_config=RefreshConfig(cycle_timeout=0.05),
            )
            return coordinator, await coordinator.refresh()

        coordinator, result = asyncio.run(scenario())
        assert result is None
        assert coordinator.state.dataset is None
        assert not coordinator.is_refreshing
        assert len(coordinator.events.get_recent_events(EventType.REFRESH_FAILED)) == 1

    def test_malformed_merged_price_line(self, arena_config, arena_files, make_source):
        arena_files["A_stock/merged.jsonl"] = "\n".join([
            json.dumps({"Meta Data": {"2. Symbol": "600000.SH"}, "Time Series (Daily)": [1]}),
            arena_files["A_stock/merged.jsonl"],
        ])
        coordinator = make_coordinator(arena_config, make_source(arena_files), market="cn")

        view_model = asyncio.run(coordinator.refresh())
        assert view_model is not None
        assert view_model.metrics["alpha"].current_value == 7000 + 2 * 1600
        assert coordinator.state.cycle == 1

    def test_unknown_market(self, arena_config, make_source):
        from core.errors import ConfigurationError
        with pytest.raises(ConfigurationError):
            make_coordinator(arena_config, make_source({}), market="jp")

        coordinator = make_coordinator(arena_config, make_source({}), market="us")
        with pytest.raises(ConfigurationError):
            asyncio.run(coordinator.switch_market("jp"))
        assert coordinator.market == "us"

    def test_config_fallback_event(self, make_source):
        from config.loader import ConfigResolver
        from core.events import EventType
        from dashboard.coordinator import RefreshCoordinator
        resolver = ConfigResolver()
        resolver.resolve_text("{broken")
        coordinator = RefreshCoordinator(resolver, make_source({}))
        assert len(coordinator.events.get_recent_events(EventType.CONFIG_FALLBACK)) == 1


class TestAutoRefresh:

    def test_runs_until_stopped(self, arena_config, arena_files, make_source):
        from core.events import EventType

        async def scenario():
            coordinator = make_coordinator(arena_config, make_source(arena_files), market="us")
            coordinator.start_auto_refresh(interval=0.01)
            while coordinator.cycle < 3:
                await asyncio.sleep(0.01)
            await coordinator.stop()
            return coordinator

        coordinator = asyncio.run(scenario())
        assert coordinator.cycle >= 3
        assert len(coordinator.events.get_recent_events(EventType.REFRESH_COMMITTED)) >= 2


class TestViewModel:

    @pytest.fixture
    def view_model(self, arena_config, arena_files, make_source):
        coordinator = make_coordinator(arena_config, make_source(arena_files), market="us")
        return asyncio.run(coordinator.refresh())

    def test_leaderboard_by_current_value(self, view_model):
        assert [r.agent_id for r in view_model.leaderboard] == ["beta", "alpha", "gamma"]
        assert [r.rank for r in view_model.leaderboard] == [1, 2, 3]
        assert view_model.leaderboard[0].display_name == "Beta"
        assert not view_model.leaderboard[2].has_data

    def test_metrics_and_aggregate(self, view_model):
        assert view_model.metrics["alpha"].total_return_pct == pytest.approx(1.0)
        assert view_model.metrics["alpha"].win_rate_pct == pytest.approx(50.0)
        assert view_model.aggregate.best_agent == "beta"
        assert view_model.aggregate.active_agents == 2
        assert view_model.benchmark.total_return_pct == pytest.approx(10.0)

    def test_chart_on_unified_axis(self, view_model):
        chart = view_model.chart
        assert chart.labels == ("2025-10-01", "2025-10-02", "2025-10-03")
        by_id = {d.agent_id: d for d in chart.datasets}
        assert by_id["beta"].values == (10000, None, 10500)
        assert by_id["gamma"].values == (None, None, None)
        assert by_id["QQQ"].is_benchmark
        assert by_id["QQQ"].label == "QQQ Invesco"

    def test_positions_trades_and_notices(self, view_model):
        assert [(p.agent_id, p.symbol, p.shares) for p in view_model.positions] == [
            ("alpha", "AAPL", 5), ("alpha", "CASH", None),
        ]
        assert [t.action for t in view_model.recent_trades] == ["sell", "buy"]
        assert view_model.ticker_symbols == ("AAPL",)
        assert view_model.notices["gamma"].startswith("No data available")
        assert "alpha" not in view_model.notices

    def test_positions_valued(self, view_model):
        aapl, cash = view_model.positions
        assert aapl.price == 110
        assert aapl.market_value == pytest.approx(550)
        assert aapl.weight_pct == pytest.approx(550 / 10100 * 100)
        assert cash.is_cash
        assert cash.price is None
        assert cash.market_value == 9550
        assert aapl.weight_pct + cash.weight_pct == pytest.approx(100)

    def test_positions_sorted_by_market_value(self, arena_config):
        from config.loader import ConfigResolver
        from dashboard.loader import AgentData, AgentDataSet
        from dashboard.view_model import build_view_model
        from series.records import AgentRecord
        from series.store import build_series

        data = AgentData(
            "alpha",
            AgentRecord("alpha"),
            build_series("alpha", [{"date": "2025-10-01", "value": 1000}]),
            holdings={"AAPL": 1, "MSFT": 2, "TSLA": 3},
            cash=100,
            prices={"AAPL": 100, "MSFT": 300},
        )
        view_model = build_view_model(AgentDataSet(market="us", agents={"alpha": data}), ConfigResolver(arena_config))
        assert [(p.symbol, p.market_value) for p in view_model.positions] == [
            ("MSFT", 600), ("AAPL", 100), ("TSLA", 0.0), ("CASH", 100),
        ]
        assert view_model.positions[2].price is None
        assert view_model.ticker_symbols == ("AAPL", "MSFT", "TSLA")

    def test_presentation_config_passed_through(self, view_model):
        chart = view_model.chart
        assert chart.time_granularity == "daily"
        assert chart.date_format == "YYYY-MM-DD"
        assert chart.style["max_ticks"] == 15
        assert chart.style["tension"] == pytest.approx(0.42)
        assert chart.y_range[0] < chart.y_range[1]
        data = view_model.to_dict()
        assert data["chart"]["style"]["border_width"] == 3
        assert data["market_subtitle"] == ""

    def test_trading_period(self, view_model):
        start, end = view_model.trading_period
        assert (start.day, end.day) == (1, 3)

    def test_to_dict_is_json(self, view_model):
        data = json.loads(json.dumps(view_model.to_dict()))
        assert data["market"] == "us"
        assert data["trading_period"] == {"start": "2025-10-01", "end": "2025-10-03"}
        assert data["chart"]["value_mode"] == "dollar"
        assert data["recent_trades"][0]["date"] == "2025-10-03"

    def test_set_view_percent(self, arena_config, arena_files, make_source):
        from analytics.transforms import TimeRange, ValueMode
        coordinator = make_coordinator(arena_config, make_source(arena_files), market="us")
        asyncio.run(coordinator.refresh())

        view_model = coordinator.set_view(value_mode=ValueMode.PERCENT, time_range=TimeRange.parse("24h"))
        by_id = {d.agent_id: d for d in view_model.chart.datasets}
        assert view_model.chart.labels == ("2025-10-02", "2025-10-03")
        assert by_id["alpha"].values == pytest.approx((0.0, 1.0))
        assert view_model.metrics["alpha"].observation_count == 3

    def test_windowed_percent_from_start_of_history(self, arena_config):
        from analytics.transforms import TimeRange, ValueMode
        from config.loader import ConfigResolver
        from dashboard.loader import AgentData, AgentDataSet
        from dashboard.view_model import build_view_model
        from series.records import AgentRecord
        from series.store import build_series

        series = build_series("alpha", [
            {"date": "2025-10-01", "value": 100},
            {"date": "2025-10-05", "value": 120},
            {"date": "2025-10-06", "value": 150},
        ])
        dataset = AgentDataSet(
            market="us",
            agents={"alpha": AgentData("alpha", AgentRecord("alpha"), series)},
        )
        view_model = build_view_model(
            dataset,
            ConfigResolver(arena_config),
            time_range=TimeRange(hours=48),
            value_mode=ValueMode.PERCENT,
        )
        assert view_model.chart.labels == ("2025-10-05", "2025-10-06")
        assert view_model.chart.datasets[0].values == pytest.approx((20.0, 50.0))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
