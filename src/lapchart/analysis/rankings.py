"""
Lap-time rankings - Per-lap ranking of cars by lap time.

Caution laps are skipped as a whole, and pit laps and laps without a real
lap time are left out of the lap they belong to.
"""

from typing import Dict, Optional

from lapchart.timing.model import RaceData

LapRankings = Dict[int, Dict[int, int]]


def _rank_laps(data: RaceData, class_name: Optional[str]) -> LapRankings:
    cars = data.cars_in_class(class_name)
    rankings: LapRankings = {}

    for lap in range(1, data.max_lap + 1):
        if data.is_caution_lap(lap):
            continue

        times = []
        for car in cars:
            record = car.get_lap(lap)
            if record is None or record.is_pit or not record.has_lap_time:
                continue
            times.append((record.lap_time_seconds, car.num))
        if not times:
            continue

        times.sort()
        rankings[lap] = {num: rank for rank, (_, num) in enumerate(times, start=1)}

    return rankings


def compute_lap_time_rankings(data: RaceData) -> LapRankings:
    """Rank every car on every green lap (1 = fastest).

    Returns:
        Lap number -> car number -> rank; laps with no eligible car are absent
    """
    return _rank_laps(data, None)


def compute_class_lap_time_rankings(data: RaceData, class_name: str) -> LapRankings:
    """Same as compute_lap_time_rankings, limited to one class."""
    return _rank_laps(data, class_name)
