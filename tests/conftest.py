"""
Shared fixtures: a small two-market artifact tree served from memory.
"""

import json

import pytest


US_CONFIG = {
    "markets": {
        "us": {
            "name": "US Market",
            "data_dir": "agent_data",
            "benchmark_file": "Adaily_prices_QQQ.json",
            "benchmark_name": "QQQ",
            "benchmark_display_name": "QQQ Invesco",
            "currency": "USD",
            "price_data_type": "individual",
            "time_granularity": "daily",
            "agents": [
                {"folder": "alpha", "display_name": "Alpha", "color": "#111111"},
                {"folder": "beta", "display_name": "Beta", "color": "#222222"},
                {"folder": "gamma", "display_name": "Gamma", "color": "#333333"},
                {"folder": "delta", "display_name": "Delta", "enabled": "false"},
            ],
        },
        "cn": {
            "name": "A-Shares",
            "data_dir": "agent_data_astock",
            "benchmark_file": "A_stock/index_daily_sse_50.json",
            "benchmark_name": "SSE 50",
            "currency": "CNY",
            "price_data_type": "merged",
            "agents": [
                {"folder": "alpha", "display_name": "Alpha CN"},
            ],
        },
    },
    "ui": {"initial_value": 10000, "max_recent_trades": 20},
}


def _jsonl(rows):
    return "\n".join(json.dumps(r) for r in rows) + "\n"


def _alpha_vantage(symbol, closes):
    return json.dumps({
        "Meta Data": {"2. Symbol": symbol},
        "Time Series (Daily)": {d: {"4. close": str(p)} for d, p in closes.items()},
    })


@pytest.fixture
def arena_files():
    """Path -> text of every artifact of both markets."""
    return {
        "agent_data/alpha/position/position.jsonl": _jsonl([
            {"date": "2025-10-01", "id": 0, "positions": {"CASH": 10000, "AAPL": 0}},
            {"date": "2025-10-02", "id": 1,
             "this_action": {"action": "buy", "symbol": "AAPL", "amount": 10},
             "positions": {"CASH": 9000, "AAPL": 10}},
            {"date": "2025-10-03", "id": 2,
             "this_action": {"action": "sell", "symbol": "AAPL", "amount": 5},
             "positions": {"CASH": 9550, "AAPL": 5}},
        ]),
        "agent_data/beta/asset_history.json": json.dumps([
            {"date": "2025-10-01", "value": 10000},
            {"date": "2025-10-03", "value": 10500},
        ]),
        "daily_prices_AAPL.json": _alpha_vantage("AAPL", {
            "2025-10-01": 100, "2025-10-02": 100, "2025-10-03": 110,
        }),
        "Adaily_prices_QQQ.json": _alpha_vantage("QQQ", {
            "2025-10-01": 500, "2025-10-03": 550,
        }),
        "agent_data_astock/alpha/position/position.jsonl": _jsonl([
            {"date": "2025-10-01", "id": 0,
             "this_action": {"action": "buy", "symbol": "600519.SH", "amount": 2},
             "positions": {"CASH": 7000, "600519.SH": 2}},
            {"date": "2025-10-02", "id": 1, "positions": {"CASH": 7000, "600519.SH": 2}},
        ]),
        "A_stock/merged.jsonl": _jsonl([
            {"Meta Data": {"2. Symbol": "600519.SH"},
             "Time Series (Daily)": {"2025-10-01": {"4. close": "1500"}, "2025-10-02": {"4. close": "1600"}}},
        ]),
    }


@pytest.fixture
def arena_config():
    from config.loader import DashboardConfig
    return DashboardConfig.from_dict(US_CONFIG)


@pytest.fixture
def make_source():
    """Factory for an in-memory ArtifactSource with optional per-prefix gates."""
    from core.errors import MissingArtifact

    class FakeSource:
        def __init__(self, files, gates=None):
            self.files = dict(files)
            self.gates = gates or {}
            self.requests = []

        async def fetch_text(self, path):
            self.requests.append(path)
            for prefix, gate in self.gates.items():
                if path.startswith(prefix):
                    await gate.wait()
            if path not in self.files:
                raise MissingArtifact(path, "not found")
            return self.files[path]

    return FakeSource
