"""
Annotation engine - Explains every position change of every car.

Works on canonical RaceData from any format and extends whatever
annotations the parser already produced:
- Pit markers with pit-cycle net change and same-class "also pitting" cars
- Reasons for position changes, naming each car crossed and whether it
  pitted, was passed under yellow, or was passed on pace
- Settle markers showing where a car ended up after a caution or pit stop
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from lapchart.errors import ConfigError
from lapchart.timing.index import RaceIndex
from lapchart.timing.model import (
    Annotations,
    CarAnnotations,
    CarData,
    LapRecord,
    PitMarker,
    RaceData,
    SettleMarker,
)

logger = logging.getLogger(__name__)

PITTED = "pitted"
YELLOW = "yellow"
ON_PACE = "on pace"


@dataclass
class AnnotationConfig:
    """Annotation engine configuration."""
    # Laps searched after a pit stop for the post-stop position
    pit_cycle_window: int = 8
    pit_cycle_fallback_window: int = 12

    # Settle marker search windows
    caution_settle_window: int = 5
    pit_settle_window: int = 6
    pit_settle_fallback_window: int = 10
    settle_dedupe_distance: int = 2

    # Reason text limits
    also_pitting_limit: int = 5
    crossing_name_limit: int = 6
    team_name_limit: int = 20

    # Marker colors
    pit_color: str = "#fbbf24"
    gain_color: str = "#4ade80"
    loss_color: str = "#f87171"

    def __post_init__(self):
        windows = (
            self.pit_cycle_window,
            self.pit_cycle_fallback_window,
            self.caution_settle_window,
            self.pit_settle_window,
            self.pit_settle_fallback_window,
        )
        if any(w < 1 for w in windows):
            raise ConfigError("annotation search windows must be at least 1 lap")
        if self.settle_dedupe_distance < 0:
            raise ConfigError("settle_dedupe_distance must not be negative")
        if self.also_pitting_limit < 0 or self.crossing_name_limit < 0:
            raise ConfigError("name limits must not be negative")


def short_team(team: str, limit: int = 20) -> str:
    """Team label for reason text, with a leading space ("" if unknown)."""
    trimmed = (team or "").strip()
    if not trimmed:
        return ""
    if len(trimmed) <= limit:
        return f" {trimmed}"
    words = trimmed.split()
    if len(words) >= 2:
        return f" {words[0]} {words[1]}"
    return f" {trimmed[:limit]}"


def plural(count: int) -> str:
    return "position" if count == 1 else "positions"


class AnnotationEngine:
    """Infers pit markers, position-change reasons and settle markers.

    generate() is a pure function of its inputs: the dataset and the seed
    annotations are never modified, and seed entries always survive into
    the result unchanged.
    """

    def __init__(self, config: AnnotationConfig | None = None):
        """Initialize engine.

        Args:
            config: Engine configuration
        """
        self.config = config or AnnotationConfig()

    def generate(self, data: RaceData, existing: Optional[Annotations] = None) -> Annotations:
        """Annotate every car of a race.

        Args:
            data: Canonical race data
            existing: Seed annotations from the parser

        Returns:
            Merged annotations keyed by car number
        """
        existing = existing or {}
        index = RaceIndex.build(data)

        result: Annotations = {}
        for num, car in data.cars.items():
            result[num] = self._annotate_car(car, data, index, existing.get(num))

        # Seed entries for cars without lap data pass through untouched
        for num, seed in existing.items():
            if num not in result:
                result[num] = _copy(seed)

        logger.info(
            "Generated annotations for %d cars (%d reasons, %d pit markers, %d settle markers)",
            len(result),
            sum(len(a.reasons) for a in result.values()),
            sum(len(a.pits) for a in result.values()),
            sum(len(a.settles) for a in result.values()),
        )
        return result

    # Per car

    def _annotate_car(
        self,
        car: CarData,
        data: RaceData,
        index: RaceIndex,
        seed: Optional[CarAnnotations],
    ) -> CarAnnotations:
        cfg = self.config
        seed = seed or CarAnnotations()
        laps = car.laps

        reasons: Dict[int, str] = {}
        pits: List[PitMarker] = []
        pit_count = 0

        for i in range(1, len(laps)):
            prev, cur = laps[i - 1], laps[i]
            delta = prev.overall_position - cur.overall_position

            if cur.is_pit:
                pit_count += 1
                pits.append(PitMarker(lap=cur.lap, label=f"Pit {pit_count}", color=cfg.pit_color))
                reason = self._pit_reason(car, laps, i, index)
            elif delta > 0:
                reason = self._gain_reason(delta, self._crossings(car.num, prev, cur, index, gained=True), index)
            elif delta < 0:
                reason = self._loss_reason(-delta, self._crossings(car.num, prev, cur, index, gained=False), index)
            else:
                continue

            seeded = seed.reasons.get(cur.lap)
            if not seeded:
                reasons[cur.lap] = reason
            else:
                reasons[cur.lap] = f"{reason}; {seeded}"

        for lap, text in seed.reasons.items():
            reasons.setdefault(lap, text)

        settles: List[SettleMarker] = []
        if not seed.settles:
            settles = self._infer_settles(laps, data, index)

        return CarAnnotations(
            reasons=dict(sorted(reasons.items())),
            pits=_merge(seed.pits, pits),
            settles=_merge(seed.settles, settles),
        )

    def _crossings(
        self,
        num: int,
        prev: LapRecord,
        cur: LapRecord,
        index: RaceIndex,
        gained: bool,
    ) -> List[Tuple[int, str]]:
        """Cars whose running order swapped with this car between two laps."""
        crossed: List[Tuple[int, str]] = []
        for other in index.car_numbers:
            if other == num:
                continue
            other_prev = index.position(other, prev.lap)
            other_cur = index.position(other, cur.lap)
            if other_prev is None or other_cur is None:
                continue
            if gained:
                swapped = other_prev < prev.overall_position and other_cur > cur.overall_position
            else:
                swapped = other_prev > prev.overall_position and other_cur < cur.overall_position
            if swapped:
                crossed.append((other, self._classify_crossing(other, cur.lap, index)))
        return crossed

    @staticmethod
    def _classify_crossing(other: int, lap: int, index: RaceIndex) -> str:
        if index.pitted(other, lap):
            return PITTED
        if index.is_caution(lap):
            return YELLOW
        return ON_PACE

    def _describe_crossings(self, crossed: Sequence[Tuple[int, str]], index: RaceIndex) -> str:
        parts = []
        for other, kind in crossed:
            team = short_team(index.team.get(other, ""), self.config.team_name_limit)
            if kind == YELLOW:
                parts.append(f"#{other}{team} (yellow)")
            else:
                parts.append(f"#{other}{team} {kind}")
        return "; ".join(parts)

    def _gain_reason(self, delta: int, crossed: List[Tuple[int, str]], index: RaceIndex) -> str:
        if not crossed or len(crossed) > self.config.crossing_name_limit:
            return f"Gained {delta} {plural(delta)}"
        return f"Gained — passed {self._describe_crossings(crossed, index)}"

    def _loss_reason(self, delta: int, crossed: List[Tuple[int, str]], index: RaceIndex) -> str:
        if not crossed or len(crossed) > self.config.crossing_name_limit:
            return f"Lost {delta} {plural(delta)}"
        return f"Lost — {self._describe_crossings(crossed, index)}"

    def _pit_reason(self, car: CarData, laps: Sequence[LapRecord], i: int, index: RaceIndex) -> str:
        cfg = self.config
        details: List[str] = []

        after = _first_clear_lap(
            laps, i, cfg.pit_cycle_window, cfg.pit_cycle_fallback_window, index.fcy_laps
        )
        if after is not None:
            net = laps[i - 1].overall_position - after.overall_position
            if net > 0:
                details.append(f"Gained {net} in pit cycle")
            elif net < 0:
                details.append(f"Lost {-net} in pit cycle")

        lap = laps[i].lap
        also = [
            other for other in index.pitters_by_lap.get(lap, [])
            if other != car.num and index.car_class.get(other) == car.car_class
        ]
        if also:
            if len(also) <= cfg.also_pitting_limit:
                details.append("also pitting: " + ", ".join(f"#{n}" for n in also))
            else:
                details.append(f"{len(also)} class cars also pitting")

        if not details:
            return "Pit stop"
        return "Pit stop — " + "; ".join(details)

    # Settle markers

    def _infer_settles(
        self,
        laps: Sequence[LapRecord],
        data: RaceData,
        index: RaceIndex,
    ) -> List[SettleMarker]:
        cfg = self.config
        by_lap = {lap.lap: lap for lap in laps}
        settles: List[SettleMarker] = []
        # Laps already reported on, including settles with no net change
        covered: Set[int] = set()

        for start, end in data.fcy:
            before = by_lap.get(start - 1) or by_lap.get(start)
            if before is None:
                continue
            after = None
            for lap in range(end + 1, min(end + cfg.caution_settle_window, data.max_lap) + 1):
                candidate = by_lap.get(lap)
                if candidate and not candidate.is_pit and not index.is_caution(lap):
                    after = candidate
                    break
            if after is None:
                after = next((l for l in laps if l.lap > end and not l.is_pit), None)
            if after is None or after.lap in covered:
                continue
            covered.add(after.lap)
            marker = self._settle_marker(before.overall_position, after)
            if marker:
                settles.append(marker)

        for i, lap in enumerate(laps):
            if i == 0 or not lap.is_pit or index.is_caution(lap.lap):
                continue
            after = _first_clear_lap(
                laps, i, cfg.pit_settle_window, cfg.pit_settle_fallback_window, index.fcy_laps
            )
            if after is None:
                continue
            if any(abs(after.lap - other) <= cfg.settle_dedupe_distance for other in covered):
                continue
            covered.add(after.lap)
            marker = self._settle_marker(laps[i - 1].overall_position, after)
            if marker:
                settles.append(marker)

        return settles

    def _settle_marker(self, was: int, after: LapRecord) -> Optional[SettleMarker]:
        net = was - after.overall_position
        if net == 0:
            return None
        if net > 0:
            subtitle, color = f"Was P{was} · Gained {net}", self.config.gain_color
        else:
            subtitle, color = f"Was P{was} · Lost {-net}", self.config.loss_color
        logger.debug("Settle at lap %d: P%d -> P%d", after.lap, was, after.overall_position)
        return SettleMarker(
            lap=after.lap,
            settled_position=after.overall_position,
            label=f"Settled P{after.overall_position}",
            subtitle=subtitle,
            color=color,
        )


def _first_clear_lap(
    laps: Sequence[LapRecord],
    i: int,
    window: int,
    fallback_window: int,
    fcy_laps: FrozenSet[int],
) -> Optional[LapRecord]:
    """First non-pit, non-caution lap after laps[i]; non-pit only as a fallback."""
    for j in range(i + 1, min(i + window, len(laps) - 1) + 1):
        if not laps[j].is_pit and laps[j].lap not in fcy_laps:
            return laps[j]
    for j in range(i + 1, min(i + fallback_window, len(laps) - 1) + 1):
        if not laps[j].is_pit:
            return laps[j]
    return None


def _merge(existing: Sequence, new: Sequence) -> List:
    """Seed markers plus new markers on laps the seed does not cover."""
    covered = {marker.lap for marker in existing}
    merged = list(existing) + [marker for marker in new if marker.lap not in covered]
    return sorted(merged, key=lambda marker: marker.lap)


def _copy(ann: CarAnnotations) -> CarAnnotations:
    return CarAnnotations(
        reasons=dict(ann.reasons),
        pits=list(ann.pits),
        settles=list(ann.settles),
    )


def generate_annotations(
    data: RaceData,
    existing: Optional[Annotations] = None,
    config: AnnotationConfig | None = None,
) -> Annotations:
    """Annotate a race with a one-off engine."""
    return AnnotationEngine(config).generate(data, existing)
