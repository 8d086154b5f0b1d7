"""
Race data builder - Accumulates parsed cars and laps into RaceData.

Provides:
- Car registration and per-car lap accumulation
- Duplicate lap detection
- Class position computation per lap
- Class / manufacturer grouping and finishing positions in class
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Sequence, Tuple

from lapchart.timing.caution import normalize_intervals
from lapchart.timing.model import CarData, LapRecord, RaceData


@dataclass
class CarEntry:
    """Identity and result of a car while it is being built."""
    num: int
    team: str
    car_class: str
    finish_pos: int = 999
    finish_pos_class: int = 999
    make: str = ""
    vehicle: str = ""


class RaceDataBuilder:
    """Collects cars and laps, then assembles an immutable RaceData.

    Parsers register each car once, push lap records in any order and
    finally call build(). Class positions, class groups and counts are
    derived here so every format computes them the same way.
    """

    def __init__(self):
        self._cars: Dict[int, CarEntry] = {}
        self._laps: Dict[int, Dict[int, LapRecord]] = {}

    @property
    def car_numbers(self) -> List[int]:
        """Registered car numbers in registration order."""
        return list(self._cars)

    def add_car(self, entry: CarEntry) -> None:
        """Register a car (re-registering replaces its metadata)."""
        self._cars[entry.num] = entry
        self._laps.setdefault(entry.num, {})

    def has_car(self, num: int) -> bool:
        return num in self._cars

    def drop_car(self, num: int) -> None:
        self._cars.pop(num, None)
        self._laps.pop(num, None)

    def add_lap(self, num: int, record: LapRecord) -> bool:
        """Add a lap record for a registered car.

        Args:
            num: Car number
            record: Lap record

        Returns:
            False if the car already has this lap (the record is ignored)
        """
        laps = self._laps.setdefault(num, {})
        if record.lap in laps:
            return False
        laps[record.lap] = record
        return True

    def laps_of(self, num: int) -> List[LapRecord]:
        """A car's laps sorted by lap number."""
        laps = self._laps.get(num, {})
        return [laps[lap] for lap in sorted(laps)]

    def derive_class_finish_positions(self) -> None:
        """Rank finishing positions within each class by overall finish."""
        by_class: Dict[str, List[CarEntry]] = {}
        for entry in self._cars.values():
            by_class.setdefault(entry.car_class, []).append(entry)
        for entries in by_class.values():
            entries.sort(key=lambda e: (e.finish_pos, e.num))
            for i, entry in enumerate(entries):
                entry.finish_pos_class = i + 1

    def build(
        self,
        fcy: Iterable[Sequence[int]],
        green_pace_cutoff: float,
    ) -> RaceData:
        """Assemble the dataset.

        Cars without any laps are left out.

        Args:
            fcy: Caution intervals (normalized here)
            green_pace_cutoff: Representative pace threshold in seconds

        Returns:
            Immutable race data
        """
        nums = [num for num in self._cars if self._laps.get(num)]
        class_positions = self._compute_class_positions(nums)

        cars: Dict[int, CarData] = {}
        for num in nums:
            entry = self._cars[num]
            laps = tuple(
                replace(lap, class_position=class_positions[(num, lap.lap)])
                for lap in self.laps_of(num)
            )
            cars[num] = CarData(
                num=num,
                team=entry.team,
                car_class=entry.car_class,
                finish_pos=entry.finish_pos,
                finish_pos_class=entry.finish_pos_class,
                laps=laps,
                make=entry.make,
                vehicle=entry.vehicle,
            )

        class_groups: Dict[str, List[int]] = {}
        make_groups: Dict[str, List[int]] = {}
        ordered = sorted(cars.values(), key=lambda c: (c.finish_pos, c.num))
        for car in ordered:
            class_groups.setdefault(car.car_class, []).append(car.num)
            if car.make:
                make_groups.setdefault(car.make, []).append(car.num)

        return RaceData(
            max_lap=max((car.laps[-1].lap for car in cars.values()), default=0),
            total_cars=len(cars),
            green_pace_cutoff=green_pace_cutoff,
            cars=cars,
            fcy=normalize_intervals(fcy),
            class_groups=class_groups,
            class_car_counts={cls: len(members) for cls, members in class_groups.items()},
            make_groups=make_groups,
        )

    def _compute_class_positions(self, nums: List[int]) -> Dict[Tuple[int, int], int]:
        """Rank cars within their class on every lap by overall position."""
        entries: Dict[Tuple[str, int], List[Tuple[int, int]]] = {}
        for num in nums:
            cls = self._cars[num].car_class
            for lap in self._laps[num].values():
                entries.setdefault((cls, lap.lap), []).append((lap.overall_position, num))

        positions: Dict[Tuple[int, int], int] = {}
        for (_, lap), cars in entries.items():
            cars.sort()
            for i, (_, num) in enumerate(cars):
                positions[(num, lap)] = i + 1
        return positions
