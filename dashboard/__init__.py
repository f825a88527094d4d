"""
DASHBOARD - Loading, refresh cycles and the view-model

The Dashboard module turns published artifacts into what a presenter shows:

1. Sources     - read artifacts from disk or over HTTP
2. Loader      - fetch one market's agents, prices and benchmark
3. State       - the committed dataset, replaced wholesale
4. Coordinator - numbered refresh cycles, suppression, stale discards
5. View-model  - leaderboard, metrics, chart, positions, trades

Usage:
    from dashboard import RefreshCoordinator, FileArtifactSource
    from config.loader import ConfigResolver

    resolver = ConfigResolver()
    resolver.load_file("data/config.yaml")
    coordinator = RefreshCoordinator(resolver, FileArtifactSource("data"))
    view_model = await coordinator.refresh()
"""

from dashboard.sources import (
    ArtifactSource,
    FileArtifactSource,
    HttpArtifactSource,
    source_for,
)

from dashboard.loader import (
    AgentData,
    AgentDataSet,
    AgentDataLoader,
    MERGED_PRICE_FILE,
)

from dashboard.state import (
    DashboardState,
    has_data_changed,
)

from dashboard.view_model import (
    DashboardViewModel,
    LeaderboardRow,
    ChartDataset,
    ChartView,
    PositionRow,
    TradeRow,
    build_view_model,
)

from dashboard.coordinator import (
    RefreshCoordinator,
    RefreshConfig,
)


__all__ = [
    # Sources
    'ArtifactSource',
    'FileArtifactSource',
    'HttpArtifactSource',
    'source_for',

    # Loader
    'AgentData',
    'AgentDataSet',
    'AgentDataLoader',
    'MERGED_PRICE_FILE',

    # State
    'DashboardState',
    'has_data_changed',

    # View-model
    'DashboardViewModel',
    'LeaderboardRow',
    'ChartDataset',
    'ChartView',
    'PositionRow',
    'TradeRow',
    'build_view_model',

    # Coordinator
    'RefreshCoordinator',
    'RefreshConfig',
]
