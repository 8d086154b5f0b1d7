"""Tests for per-lap lap-time rankings."""

from lapchart.analysis.rankings import compute_class_lap_time_rankings, compute_lap_time_rankings


class TestLapTimeRankings:
    """Test lap-time rankings."""

    def test_fastest_first(self, race_factory):
        """Test rank 1 is the fastest lap."""
        data = race_factory({
            1: {"positions": [1, 1], "times": [101.0, 100.5]},
            2: {"positions": [2, 2], "times": [100.0, 102.0]},
            3: {"positions": [3, 3], "times": [103.0, 101.0]},
        })
        rankings = compute_lap_time_rankings(data)
        assert rankings[1] == {2: 1, 1: 2, 3: 3}
        assert rankings[2] == {1: 1, 3: 2, 2: 3}

    def test_caution_laps_skipped(self, race_factory):
        """Test caution laps have no ranking at all."""
        data = race_factory(
            {1: {"positions": [1, 1, 1], "times": [100.0, 140.0, 100.0]}},
            fcy=((2, 2),),
        )
        rankings = compute_lap_time_rankings(data)
        assert sorted(rankings) == [1, 3]

    def test_pit_and_untimed_laps_excluded(self, race_factory):
        """Test pit laps and laps without a time are left out of their lap."""
        data = race_factory({
            1: {"positions": [1, 1], "times": [100.0, 150.0], "pits": [2]},
            2: {"positions": [2, 2], "times": [101.0]},
            3: {"positions": [3, 3], "times": [102.0, 102.0]},
        })
        rankings = compute_lap_time_rankings(data)
        assert rankings[2] == {3: 1}

    def test_lap_without_eligible_cars(self, race_factory):
        """Test laps where nobody qualifies are absent."""
        data = race_factory({1: {"positions": [1, 1], "times": [100.0]}})
        assert compute_lap_time_rankings(data) == {1: {1: 1}}

    def test_tie_broken_by_car_number(self, race_factory):
        """Test equal times rank the lower car number first."""
        data = race_factory({
            8: {"positions": [1], "times": [100.0]},
            3: {"positions": [2], "times": [100.0]},
        })
        assert compute_lap_time_rankings(data)[1] == {3: 1, 8: 2}

    def test_class_rankings(self, race_factory):
        """Test class rankings only compare cars of the class."""
        data = race_factory({
            1: {"cls": "GTP", "positions": [1], "times": [90.0]},
            2: {"cls": "GT3", "positions": [2], "times": [101.0]},
            3: {"cls": "GT3", "positions": [3], "times": [100.0]},
        })
        assert compute_class_lap_time_rankings(data, "GT3") == {1: {3: 1, 2: 2}}
        assert compute_class_lap_time_rankings(data, "LMP2") == {}
