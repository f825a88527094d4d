"""
DASHBOARD STATE - The single owner of what is currently on screen

Holds the committed AgentDataSet, its market, the cycle that produced it and
the view-model built from it. Data is swapped wholesale by replace(), never
patched in place; readers only ever see immutable datasets.
"""

from typing import Optional

from loguru import logger

from dashboard.loader import AgentDataSet


# Last values closer than this are treated as unchanged
VALUE_CHANGE_THRESHOLD = 0.01


def has_data_changed(old: Optional[AgentDataSet], new: AgentDataSet) -> bool:
    """
    Whether a freshly loaded dataset differs from the committed one.

    Compares the agent set, history lengths, last dates and last values.
    """
    if old is None:
        return True
    if set(old.agents) != set(new.agents):
        return True

    for agent_id, new_data in new.agents.items():
        old_series = old.agents[agent_id].series
        new_series = new_data.series
        if len(old_series) != len(new_series):
            return True
        if new_series.is_empty:
            continue
        if old_series.last.date != new_series.last.date:
            return True
        if abs(old_series.last.value - new_series.last.value) > VALUE_CHANGE_THRESHOLD:
            return True

    return False


class DashboardState:
    """Committed dashboard data for one market."""

    def __init__(self, market: str):
        self.market = market
        self.dataset: Optional[AgentDataSet] = None
        self.cycle: int = 0
        self.view_model = None

    @property
    def has_data(self) -> bool:
        return self.dataset is not None

    def replace(self, dataset: AgentDataSet, cycle: int, view_model=None) -> None:
        """Swap in a complete dataset from `cycle`."""
        if dataset.market != self.market:
            raise ValueError(
                f"Dataset for market '{dataset.market}' cannot replace state of '{self.market}'"
            )
        self.dataset = dataset
        self.cycle = cycle
        self.view_model = view_model
        logger.debug(f"State replaced: market={self.market} cycle={cycle}")

    def reset(self, market: Optional[str] = None) -> None:
        """Drop all data, optionally moving to another market."""
        if market is not None:
            self.market = market
        self.dataset = None
        self.cycle = 0
        self.view_model = None
        logger.debug(f"State reset: market={self.market}")
