"""
Test Aligner - projection of agent Series onto the unified axis.

Run with: python -m pytest tests/test_aligner.py -v
"""

import math
from datetime import datetime

import pytest


D1 = datetime(2025, 10, 1)
D2 = datetime(2025, 10, 2)
D3 = datetime(2025, 10, 3)


class TestAlign:
    """align() axis construction and absent points."""

    @pytest.fixture
    def two_agents(self):
        from series.store import build_series
        return {
            "A": build_series("A", [
                {"date": D1, "value": 100}, {"date": D2, "value": 101}, {"date": D3, "value": 102},
            ]),
            "B": build_series("B", [
                {"date": D1, "value": 200}, {"date": D3, "value": 210},
            ]),
        }

    def test_axis_is_date_union(self, two_agents):
        from series.aligner import align
        alignment = align(two_agents)
        assert alignment.axis == (D1, D2, D3)

    def test_missing_dates_are_absent(self, two_agents):
        from series.aligner import align
        alignment = align(two_agents)
        assert alignment.values("B") == [200, None, 210]
        assert alignment.per_agent["B"][1].is_absent
        assert alignment.coverage("B") == 2
        assert alignment.coverage("A") == 3

    def test_labels(self, two_agents):
        from series.aligner import align
        assert align(two_agents).labels == ["2025-10-01", "2025-10-02", "2025-10-03"]

    def test_empty_mapping_raises(self):
        from series.aligner import align
        with pytest.raises(ValueError):
            align({})

    def test_all_empty_series(self):
        from series.aligner import align
        from series.store import Series
        alignment = align({"A": Series("A"), "B": Series("B")})
        assert alignment.axis == ()
        assert alignment.per_agent == {"A": (), "B": ()}

    def test_empty_agent_fully_absent(self, two_agents):
        from series.aligner import align
        from series.store import Series
        two_agents["C"] = Series("C")
        alignment = align(two_agents)
        assert alignment.values("C") == [None, None, None]

    def test_to_frame(self, two_agents):
        from series.aligner import align
        frame = align(two_agents).to_frame()
        assert list(frame.columns) == ["A", "B"]
        assert len(frame) == 3
        assert math.isnan(frame["B"].iloc[1])
        assert frame.index.name == "date"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
