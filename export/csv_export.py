"""
CSV EXPORT - The asset evolution table as comma-separated text

One row per unified-axis date, one column per agent, two decimals, and an
empty cell where an agent has no Observation at that date.
"""

from pathlib import Path
from typing import Mapping, Optional, Union

from loguru import logger

from series.aligner import Alignment
from series.store import format_date


DEFAULT_EXPORT_NAME = "aitrader_asset_evolution.csv"


def export_csv(alignment: Alignment, display_names: Optional[Mapping[str, str]] = None) -> str:
    """
    Render an Alignment as CSV text.

    Args:
        alignment: Unified axis and per-agent points
        display_names: Agent id -> column header (agent id when missing)

    Returns:
        CSV text with header 'Date,<names...>'
    """
    display_names = display_names or {}
    frame = alignment.to_frame()
    frame.columns = [display_names.get(agent_id, agent_id) for agent_id in frame.columns]
    frame.index = [format_date(ts.to_pydatetime()) for ts in frame.index]
    frame.index.name = "Date"

    text = frame.to_csv(float_format="%.2f", na_rep="", lineterminator="\n")
    logger.debug(f"Exported {len(frame)} rows x {len(frame.columns)} agents to CSV")
    return text


def write_csv(
    path: Union[str, Path],
    alignment: Alignment,
    display_names: Optional[Mapping[str, str]] = None
) -> Path:
    """Write the CSV export to disk."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_csv(alignment, display_names), encoding="utf-8")
    logger.info(f"CSV export written to {path}")
    return path
