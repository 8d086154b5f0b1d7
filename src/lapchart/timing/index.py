"""
Race index - Pre-built lookup tables over a RaceData.

Built once per dataset and passed explicitly to the analysis stages
instead of every stage re-deriving its own maps.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from lapchart.timing.model import RaceData


@dataclass(frozen=True)
class RaceIndex:
    """Lookups keyed by car number and lap number."""
    positions: Dict[int, Dict[int, int]]
    pit_laps: Dict[int, FrozenSet[int]]
    pitters_by_lap: Dict[int, List[int]]
    fcy_laps: FrozenSet[int]
    car_class: Dict[int, str]
    team: Dict[int, str]

    @classmethod
    def build(cls, data: RaceData) -> "RaceIndex":
        """Index a dataset.

        Args:
            data: Race data

        Returns:
            Index with position, pit, caution, class and team lookups
        """
        positions: Dict[int, Dict[int, int]] = {}
        pit_laps: Dict[int, FrozenSet[int]] = {}
        pitters_by_lap: Dict[int, List[int]] = {}

        for num, car in data.cars.items():
            positions[num] = {lap.lap: lap.overall_position for lap in car.laps}
            pit_laps[num] = car.pit_laps
            for lap in sorted(car.pit_laps):
                pitters_by_lap.setdefault(lap, []).append(num)

        return cls(
            positions=positions,
            pit_laps=pit_laps,
            pitters_by_lap=pitters_by_lap,
            fcy_laps=data.fcy_laps,
            car_class={num: car.car_class for num, car in data.cars.items()},
            team={num: car.team for num, car in data.cars.items()},
        )

    @property
    def car_numbers(self) -> List[int]:
        return list(self.positions)

    def position(self, num: int, lap: int) -> Optional[int]:
        """Overall position of a car on a lap, None if not recorded."""
        return self.positions.get(num, {}).get(lap)

    def pitted(self, num: int, lap: int) -> bool:
        return lap in self.pit_laps.get(num, frozenset())

    def is_caution(self, lap: int) -> bool:
        return lap in self.fcy_laps
