"""
CONFIGURATION LOADER

Loads the dashboard configuration from:
1. Environment variables (deployment overrides)
2. config.yaml (markets, agents, display metadata)
3. Built-in defaults (when the YAML is missing or malformed)

Environment variables take precedence over the YAML file. A configuration
that cannot be loaded never stops the dashboard: it falls back to the
built-in default, which has the same shape.
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
from dataclasses import dataclass, field, asdict
from loguru import logger

import yaml

from core.errors import ConfigurationError, MissingArtifact


_TRUTHY = (True, "true", "True", "1", "yes", 1)


def _as_bool(value: Any, default: bool = True) -> bool:
    """YAML booleans or their string spellings."""
    if value is None:
        return default
    return value in _TRUTHY


@dataclass
class AgentConfig:
    """One trading agent shown on the dashboard."""
    folder: str
    display_name: str = ""
    icon: str = "./figs/stock.svg"
    color: str = "#666666"
    enabled: bool = True

    def __post_init__(self):
        if not self.display_name:
            self.display_name = self.folder

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        if not isinstance(data, dict) or not data.get("folder"):
            raise ValueError(f"Agent entry without folder: {data!r}")
        return cls(
            folder=str(data["folder"]),
            display_name=str(data.get("display_name") or ""),
            icon=str(data.get("icon") or "./figs/stock.svg"),
            color=str(data.get("color") or "#666666"),
            enabled=_as_bool(data.get("enabled"), default=True),
        )


@dataclass
class MarketConfig:
    """A market (US equities, A-shares) and the agents trading it."""
    key: str
    name: str = ""
    subtitle: str = ""
    data_dir: str = "agent_data"
    benchmark_file: str = ""
    benchmark_name: str = ""
    benchmark_display_name: str = ""
    currency: str = "USD"
    icon: str = ""
    price_data_type: str = "individual"  # "individual" or "merged"
    time_granularity: str = "daily"  # "hourly" or "daily"
    enabled: bool = True
    agents: List[AgentConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "MarketConfig":
        if not isinstance(data, dict):
            raise ValueError(f"Market '{key}' is not a mapping")

        agents = []
        for entry in data.get("agents") or []:
            try:
                agents.append(AgentConfig.from_dict(entry))
            except ValueError as e:
                logger.warning(f"Skipping agent in market '{key}': {e}")

        return cls(
            key=key,
            name=str(data.get("name", key)),
            subtitle=str(data.get("subtitle", "")),
            data_dir=str(data.get("data_dir", "agent_data")),
            benchmark_file=str(data.get("benchmark_file", "")),
            benchmark_name=str(data.get("benchmark_name", "")),
            benchmark_display_name=str(data.get("benchmark_display_name", "")),
            currency=str(data.get("currency", "USD")),
            icon=str(data.get("icon", "")),
            price_data_type=str(data.get("price_data_type", "individual")),
            time_granularity=str(data.get("time_granularity", "daily")),
            enabled=_as_bool(data.get("enabled"), default=True),
            agents=agents,
        )


@dataclass
class DataConfig:
    """Where the artifacts live."""
    base_path: str = "./data"
    price_file_prefix: str = "daily_prices_"
    benchmark_file: str = "Adaily_prices_QQQ.json"


@dataclass
class BenchmarkConfig:
    """Display metadata of the benchmark line."""
    folder: str = "QQQ"
    display_name: str = "QQQ Invesco"
    icon: str = "./figs/stock.svg"
    color: str = "#ff6b00"
    enabled: bool = True


@dataclass
class ChartConfig:
    """Chart styling knobs passed through to the presenter."""
    default_scale: str = "linear"
    max_ticks: int = 15
    point_radius: int = 0
    point_hover_radius: int = 7
    border_width: int = 3
    tension: float = 0.42


@dataclass
class UIConfig:
    """UI behaviour."""
    initial_value: float = 10000.0
    max_recent_trades: int = 20
    date_formats: Dict[str, str] = field(default_factory=lambda: {
        "hourly": "MM/DD HH:mm",
        "daily": "YYYY-MM-DD",
    })


@dataclass
class DashboardConfig:
    """The whole configuration document."""
    markets: Dict[str, MarketConfig] = field(default_factory=dict)
    data: DataConfig = field(default_factory=DataConfig)
    benchmark: BenchmarkConfig = field(default_factory=BenchmarkConfig)
    chart: ChartConfig = field(default_factory=ChartConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DashboardConfig":
        """
        Build a typed config from a parsed YAML document.

        Raises:
            ValueError: if the document is not a mapping or has no market
        """
        if not isinstance(data, dict):
            raise ValueError("Configuration document is not a mapping")

        raw_markets = data.get("markets")
        if not isinstance(raw_markets, dict) or not raw_markets:
            raise ValueError("Configuration defines no markets")

        markets = {
            str(key): MarketConfig.from_dict(str(key), value)
            for key, value in raw_markets.items()
        }

        return cls(
            markets=markets,
            data=_section(DataConfig, data.get("data")),
            benchmark=_section(BenchmarkConfig, data.get("benchmark")),
            chart=_section(ChartConfig, data.get("chart")),
            ui=_section(UIConfig, data.get("ui")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _section(section_cls, data: Optional[Dict[str, Any]]):
    """Build a flat section dataclass, ignoring unknown keys."""
    if not isinstance(data, dict):
        return section_cls()
    known = {k: v for k, v in data.items() if k in section_cls.__dataclass_fields__}
    if "enabled" in known:
        known["enabled"] = _as_bool(known["enabled"])
    return section_cls(**known)


_DEFAULT_AGENTS = [
    {"folder": "gemini-2.5-flash", "display_name": "Gemini 2.5 Flash", "icon": "./figs/google.svg", "color": "#8A2BE2"},
    {"folder": "qwen3-max", "display_name": "Qwen3 Max", "icon": "./figs/qwen.svg", "color": "#0066ff"},
    {"folder": "deepseek-chat-v3.1", "display_name": "DeepSeek Chat v3.1", "icon": "./figs/deepseek.svg", "color": "#4a90e2"},
    {"folder": "gpt-5", "display_name": "GPT-5", "icon": "./figs/openai.svg", "color": "#10a37f"},
    {"folder": "claude-3.7-sonnet", "display_name": "Claude 3.7 Sonnet", "icon": "./figs/claude-color.svg", "color": "#cc785c"},
    {"folder": "MiniMax-M2", "display_name": "MiniMax M2", "icon": "./figs/minimax.svg", "color": "#ff0000"},
]


def default_config() -> DashboardConfig:
    """The built-in configuration used when config.yaml cannot be loaded."""
    return DashboardConfig.from_dict({
        "markets": {
            "us": {
                "name": "US Market (Nasdaq-100)",
                "subtitle": "Track how different AI models perform in Nasdaq-100 stock trading",
                "data_dir": "agent_data",
                "benchmark_file": "Adaily_prices_QQQ.json",
                "benchmark_name": "QQQ",
                "benchmark_display_name": "QQQ Invesco",
                "currency": "USD",
                "icon": "🇺🇸",
                "price_data_type": "individual",
                "time_granularity": "hourly",
                "enabled": True,
                "agents": [dict(a, enabled=True) for a in _DEFAULT_AGENTS],
            },
            "cn": {
                "name": "A-Shares (SSE 50)",
                "subtitle": "Track how different AI models perform in SSE 50 A-share stock trading",
                "data_dir": "agent_data_astock",
                "benchmark_file": "A_stock/index_daily_sse_50.json",
                "benchmark_name": "SSE 50",
                "benchmark_display_name": "SSE 50 Index",
                "currency": "CNY",
                "icon": "🇨🇳",
                "price_data_type": "merged",
                "time_granularity": "daily",
                "enabled": True,
                "agents": [dict(a, enabled=True) for a in _DEFAULT_AGENTS],
            },
        },
    })


class ConfigResolver:
    """
    Resolves the dashboard configuration.

    Priority:
    1. Environment variables (highest)
    2. config.yaml
    3. Built-in default (lowest, and the fallback for any load failure)
    """

    CONFIG_FILE = "config.yaml"

    def __init__(self, config: Optional[DashboardConfig] = None):
        self.config: DashboardConfig = config or self._apply_env_overrides(default_config())
        self.used_fallback: bool = config is None
        self.fallback_reason: str = "not loaded" if config is None else ""

    # ===== Loading =====

    def resolve_text(self, text: str) -> DashboardConfig:
        """Parse YAML text; fall back to the default on any problem."""
        try:
            document = yaml.safe_load(text)
            config = DashboardConfig.from_dict(document)
        except (yaml.YAMLError, ValueError, TypeError) as e:
            return self._fallback(f"invalid configuration: {e}")

        self.config = self._apply_env_overrides(config)
        self.used_fallback = False
        self.fallback_reason = ""
        logger.info(f"Configuration loaded: markets={list(self.config.markets)}")
        return self.config

    def load_file(self, path: Union[str, Path]) -> DashboardConfig:
        """Load configuration from a local YAML file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            return self._fallback(str(MissingArtifact(str(path), str(e))))
        return self.resolve_text(text)

    async def load(self, source) -> DashboardConfig:
        """Load config.yaml through an ArtifactSource."""
        try:
            text = await source.fetch_text(self.CONFIG_FILE)
        except MissingArtifact as e:
            return self._fallback(str(e))
        return self.resolve_text(text)

    def _fallback(self, reason: str) -> DashboardConfig:
        logger.warning(f"Error loading configuration, using default: {reason}")
        self.config = self._apply_env_overrides(default_config())
        self.used_fallback = True
        self.fallback_reason = reason
        return self.config

    def _apply_env_overrides(self, config: DashboardConfig) -> DashboardConfig:
        data_path = os.environ.get("ARENA_DATA_PATH")
        if data_path:
            config.data.base_path = data_path

        initial_value = os.environ.get("ARENA_INITIAL_VALUE")
        if initial_value:
            try:
                config.ui.initial_value = float(initial_value)
            except ValueError:
                logger.warning(f"Invalid ARENA_INITIAL_VALUE: {initial_value}")

        return config

    # ===== Queries =====

    def default_market(self) -> str:
        """Market shown first: ARENA_MARKET, else 'us', else the first one."""
        wanted = os.environ.get("ARENA_MARKET")
        if wanted and wanted in self.config.markets:
            return wanted
        if "us" in self.config.markets:
            return "us"
        return next(iter(self.config.markets))

    def market(self, market: str) -> MarketConfig:
        """
        Get a market's configuration.

        Raises:
            ConfigurationError: if the market is unknown
        """
        market_config = self.config.markets.get(market)
        if market_config is None:
            raise ConfigurationError(
                f"Unknown market '{market}' (configured: {', '.join(self.config.markets)})"
            )
        return market_config

    def get_market(self, market: str) -> Optional[MarketConfig]:
        return self.config.markets.get(market)

    def enabled_agents(self, market: str) -> List[AgentConfig]:
        market_config = self.get_market(market)
        if market_config is None:
            return []
        return [a for a in market_config.agents if a.enabled]

    def _agent(self, agent_id: str, market: str) -> Optional[AgentConfig]:
        market_config = self.get_market(market)
        if market_config is None:
            return None
        for agent in market_config.agents:
            if agent.folder == agent_id:
                return agent
        return None

    def display_name(self, agent_id: str, market: str) -> Optional[str]:
        agent = self._agent(agent_id, market)
        return agent.display_name if agent else None

    def icon(self, agent_id: str, market: str) -> Optional[str]:
        agent = self._agent(agent_id, market)
        return agent.icon if agent else None

    def color(self, agent_id: str, market: str) -> Optional[str]:
        agent = self._agent(agent_id, market)
        return agent.color if agent else None

    def label(self, agent_id: str, market: str) -> str:
        """Display name, or the agent id when the agent is not configured."""
        return self.display_name(agent_id, market) or agent_id
