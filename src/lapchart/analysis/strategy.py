"""
Strategy scoring - Per-car pit, pace and consistency metrics.

Provides:
- StrategyMetrics: raw metrics and composite score of one car
- Class-relative min-max normalization of four signals
- Weighted composite strategy score (0-100)
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence

import numpy as np

from lapchart.errors import ConfigError
from lapchart.timing.model import CarData, RaceData

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0


@dataclass
class StrategyConfig:
    """Strategy score weights (must sum to 1)."""
    pace_weight: float = 0.4
    caution_pit_weight: float = 0.3
    pit_time_weight: float = 0.2
    consistency_weight: float = 0.1

    def __post_init__(self):
        weights = (
            self.pace_weight,
            self.caution_pit_weight,
            self.pit_time_weight,
            self.consistency_weight,
        )
        if any(w < 0 for w in weights):
            raise ConfigError("strategy weights must not be negative")
        if not math.isclose(sum(weights), 1.0, abs_tol=1e-9):
            raise ConfigError(f"strategy weights must sum to 1, got {sum(weights):.3f}")


@dataclass
class StrategyMetrics:
    """Strategy metrics of one car."""
    car_num: int
    team: str
    car_class: str
    class_pos: int
    overall_pos: int
    stint_count: int
    avg_green_pace: float
    best_lap: float
    total_pit_time: float
    avg_pit_duration: float
    yellow_pit_pct: float
    green_lap_count: int
    consistency: float
    strategy_score: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


def green_lap_times(car: CarData, data: RaceData) -> List[float]:
    """Representative lap times: green, non-pit, real and under the cutoff."""
    return [
        lap.lap_time_seconds
        for lap in car.laps
        if not lap.is_pit
        and lap.has_lap_time
        and lap.lap_time_seconds < data.green_pace_cutoff
        and not data.is_caution_lap(lap.lap)
    ]


def normalize(value: float, values: Sequence[float], invert: bool) -> float:
    """Min-max normalize a value within its class to 0-100.

    Args:
        value: The car's raw value
        values: Raw values of every car in the class
        invert: True when lower raw values are better

    Returns:
        Score in [0, 100]; 50 with one value or no spread
    """
    if len(values) <= 1:
        return NEUTRAL_SCORE
    lo, hi = float(np.min(values)), float(np.max(values))
    if hi == lo:
        return NEUTRAL_SCORE
    ratio = (value - lo) / (hi - lo)
    return (1.0 - ratio) * 100.0 if invert else ratio * 100.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def car_metrics(car: CarData, data: RaceData) -> StrategyMetrics:
    """Raw (unscored) strategy metrics of one car."""
    greens = np.asarray(green_lap_times(car, data), dtype=float)
    avg_pace = float(greens.mean()) if len(greens) else 0.0
    best_lap = float(greens.min()) if len(greens) else 0.0
    consistency = float(greens.std()) if len(greens) > 1 else 0.0

    pit_laps = [lap for lap in car.laps if lap.is_pit]
    total_pit_time = 0.0
    yellow_pits = 0
    for lap in pit_laps:
        if avg_pace > 0 and lap.has_lap_time:
            total_pit_time += max(0.0, lap.lap_time_seconds - avg_pace)
        if data.is_caution_lap(lap.lap):
            yellow_pits += 1

    return StrategyMetrics(
        car_num=car.num,
        team=car.team,
        car_class=car.car_class,
        class_pos=car.finish_pos_class,
        overall_pos=car.finish_pos,
        stint_count=1 + len(pit_laps),
        avg_green_pace=avg_pace,
        best_lap=best_lap,
        total_pit_time=total_pit_time,
        avg_pit_duration=total_pit_time / len(pit_laps) if pit_laps else 0.0,
        yellow_pit_pct=yellow_pits / len(pit_laps) * 100.0 if pit_laps else 0.0,
        green_lap_count=int(len(greens)),
        consistency=consistency,
    )


def compute_strategy_metrics(
    data: RaceData,
    config: StrategyConfig | None = None,
) -> List[StrategyMetrics]:
    """Score every car's strategy relative to its class.

    Args:
        data: Canonical race data
        config: Score weights

    Returns:
        Metrics of every car, sorted by class finishing position
    """
    config = config or StrategyConfig()
    metrics = [car_metrics(car, data) for car in data.cars.values()]

    by_class: Dict[str, List[StrategyMetrics]] = {}
    for m in metrics:
        by_class.setdefault(m.car_class, []).append(m)

    for members in by_class.values():
        paces = [m.avg_green_pace for m in members if m.avg_green_pace > 0]
        yellow = [m.yellow_pit_pct for m in members]
        pit_times = [m.total_pit_time for m in members]
        spreads = [m.consistency for m in members]
        single = len(members) <= 1

        for m in members:
            if single:
                pace_score = NEUTRAL_SCORE
            elif m.avg_green_pace > 0:
                pace_score = normalize(m.avg_green_pace, paces, invert=True)
            else:
                pace_score = 0.0

            score = (
                pace_score * config.pace_weight
                + normalize(m.yellow_pit_pct, yellow, invert=False) * config.caution_pit_weight
                + normalize(m.total_pit_time, pit_times, invert=True) * config.pit_time_weight
                + normalize(m.consistency, spreads, invert=True) * config.consistency_weight
            )
            m.strategy_score = min(100, max(0, round_half_up(score)))

    metrics.sort(key=lambda m: (m.class_pos, m.overall_pos, m.car_num))
    logger.debug("Scored strategy for %d cars in %d classes", len(metrics), len(by_class))
    return metrics
