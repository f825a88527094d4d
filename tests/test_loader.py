"""
Test Agent Data Loader - per-market loads with per-agent isolation.

Run with: python -m pytest tests/test_loader.py -v
"""

import asyncio
from datetime import datetime

import pytest


class TestLoadAll:

    @pytest.fixture
    def us_dataset(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        loader = AgentDataLoader(arena_config, make_source(arena_files), "us")
        return asyncio.run(loader.load_all())

    def test_enabled_agents_in_config_order(self, us_dataset):
        assert list(us_dataset.agents) == ["alpha", "beta", "gamma"]
        assert us_dataset.market == "us"

    def test_valued_from_positions(self, us_dataset):
        alpha = us_dataset.agents["alpha"]
        assert alpha.series.values == [10000, 10000, 10100]
        assert [t.action for t in alpha.trades] == ["buy", "sell"]
        assert alpha.holdings == {"AAPL": 5}
        assert alpha.cash == 9550
        assert alpha.prices == {"AAPL": 110}

    def test_asset_history_without_positions(self, us_dataset):
        beta = us_dataset.agents["beta"]
        assert beta.series.values == [10000, 10500]
        assert beta.trades == ()
        assert beta.error is None

    def test_missing_agent_isolated(self, us_dataset):
        gamma = us_dataset.agents["gamma"]
        assert not gamma.has_data
        assert "Missing artifact" in gamma.error
        assert "agent_data/gamma/position/position.jsonl" in us_dataset.missing_artifacts

    def test_benchmark_rescaled(self, us_dataset):
        assert us_dataset.benchmark.agent_id == "QQQ"
        assert us_dataset.benchmark.values == pytest.approx([10000, 11000])

    def test_prices_fetched_once(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        source = make_source(arena_files)
        asyncio.run(AgentDataLoader(arena_config, source, "us").load_all())
        assert source.requests.count("daily_prices_AAPL.json") == 1

    def test_merged_prices(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        loader = AgentDataLoader(arena_config, make_source(arena_files), "cn")
        dataset = asyncio.run(loader.load_all())

        alpha = dataset.agents["alpha"]
        assert alpha.series.dates == [datetime(2025, 10, 1), datetime(2025, 10, 2)]
        assert alpha.series.values == [7000 + 2 * 1500, 7000 + 2 * 1600]
        assert dataset.benchmark is None
        assert "A_stock/index_daily_sse_50.json" in dataset.missing_artifacts

    def test_everything_missing(self, arena_config, make_source):
        from dashboard.loader import AgentDataLoader
        dataset = asyncio.run(AgentDataLoader(arena_config, make_source({}), "us").load_all())
        assert dataset.is_empty
        assert all(a.error for a in dataset.agents.values())

    def test_unknown_market(self, arena_config, make_source):
        from core.errors import ConfigurationError
        from dashboard.loader import AgentDataLoader
        with pytest.raises(ConfigurationError):
            AgentDataLoader(arena_config, make_source({}), "jp")


class TestLoadAgent:

    def test_single_agent(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        loader = AgentDataLoader(arena_config, make_source(arena_files), "us")
        alpha = asyncio.run(loader.load_agent(arena_config.markets["us"].agents[0]))
        assert alpha.agent_id == "alpha"
        assert alpha.series.last.value == 10100

    def test_broken_price_file(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        arena_files["daily_prices_AAPL.json"] = "{broken"
        loader = AgentDataLoader(arena_config, make_source(arena_files), "us")
        alpha = asyncio.run(loader.load_agent(arena_config.markets["us"].agents[0]))
        # Only the all-cash snapshot can be valued
        assert alpha.series.values == [10000]
        assert alpha.trades


class TestChangeDetection:

    def test_has_data_changed(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        from dashboard.state import has_data_changed

        first = asyncio.run(AgentDataLoader(arena_config, make_source(arena_files), "us").load_all())
        again = asyncio.run(AgentDataLoader(arena_config, make_source(arena_files), "us").load_all())
        assert has_data_changed(None, first)
        assert not has_data_changed(first, again)

        arena_files["agent_data/beta/asset_history.json"] = (
            '[{"date": "2025-10-01", "value": 10000}, {"date": "2025-10-03", "value": 10600}]'
        )
        moved = asyncio.run(AgentDataLoader(arena_config, make_source(arena_files), "us").load_all())
        assert has_data_changed(first, moved)

    def test_tiny_difference_ignored(self, arena_config, arena_files, make_source):
        from dashboard.loader import AgentDataLoader
        from dashboard.state import has_data_changed

        first = asyncio.run(AgentDataLoader(arena_config, make_source(arena_files), "us").load_all())
        arena_files["agent_data/beta/asset_history.json"] = (
            '[{"date": "2025-10-01", "value": 10000}, {"date": "2025-10-03", "value": 10500.005}]'
        )
        nudged = asyncio.run(AgentDataLoader(arena_config, make_source(arena_files), "us").load_all())
        assert not has_data_changed(first, nudged)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
