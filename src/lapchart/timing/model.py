"""
Race model - Canonical per-car, per-lap race dataset and its annotations.

Defines:
- RaceData / CarData / LapRecord: the parser output, read-only afterwards
- CarAnnotations / PitMarker / SettleMarker: derived chart annotations
- Conversion to and from plain JSON-ready dicts
- Structural cross-validation of a dataset
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from lapchart.errors import DataValidationError

# Lap time used when the real time is unknown; never zero so that
# consumers dividing by lap time stay safe.
UNKNOWN_LAP_TIME = 0.001


class Flag(Enum):
    """Track condition a lap was completed under."""
    GREEN = "GREEN"
    FCY = "FCY"
    RED = "RED"


@dataclass(frozen=True)
class LapRecord:
    """One completed lap of one car."""
    lap: int
    overall_position: int
    class_position: int = 0
    lap_time_text: str = ""
    lap_time_seconds: float = UNKNOWN_LAP_TIME
    flag: Flag = Flag.GREEN
    is_pit: bool = False
    speed: Optional[float] = None

    @property
    def has_lap_time(self) -> bool:
        """Whether the lap carries a real (non-sentinel) lap time."""
        return self.lap_time_seconds > 1

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "lap": self.lap,
            "overallPosition": self.overall_position,
            "classPosition": self.class_position,
            "lapTimeText": self.lap_time_text,
            "lapTimeSeconds": self.lap_time_seconds,
            "flag": self.flag.value,
            "isPit": self.is_pit,
        }
        if self.speed is not None:
            out["speed"] = self.speed
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: str = "lap") -> "LapRecord":
        try:
            flag = Flag(str(raw.get("flag", "GREEN")).upper())
        except ValueError:
            raise DataValidationError(f"{path}.flag: unknown flag {raw.get('flag')!r}")
        lap_time = _number(raw, "lapTimeSeconds", path, default=UNKNOWN_LAP_TIME)
        speed = raw.get("speed")
        return cls(
            lap=_positive_int(raw, "lap", path),
            overall_position=_positive_int(raw, "overallPosition", path),
            class_position=int(_number(raw, "classPosition", path, default=0)),
            lap_time_text=str(raw.get("lapTimeText", "")),
            lap_time_seconds=lap_time if lap_time > 0 else UNKNOWN_LAP_TIME,
            flag=flag,
            is_pit=bool(raw.get("isPit", False)),
            speed=float(speed) if speed is not None else None,
        )


@dataclass(frozen=True)
class CarData:
    """A car's identity, result and lap history."""
    num: int
    team: str
    car_class: str
    finish_pos: int
    finish_pos_class: int
    laps: Tuple[LapRecord, ...] = ()
    make: str = ""
    vehicle: str = ""

    @cached_property
    def laps_by_number(self) -> Dict[int, LapRecord]:
        """Lap lookup keyed by lap number."""
        return {lap.lap: lap for lap in self.laps}

    @cached_property
    def pit_laps(self) -> FrozenSet[int]:
        """Lap numbers on which the car pitted."""
        return frozenset(lap.lap for lap in self.laps if lap.is_pit)

    def get_lap(self, lap_number: int) -> Optional[LapRecord]:
        """Get a lap record by number, None if not recorded."""
        return self.laps_by_number.get(lap_number)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "num": self.num,
            "team": self.team,
            "class": self.car_class,
            "finishPos": self.finish_pos,
            "finishPosClass": self.finish_pos_class,
            "laps": [lap.to_dict() for lap in self.laps],
        }
        if self.make:
            out["make"] = self.make
        if self.vehicle:
            out["vehicle"] = self.vehicle
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: str = "car") -> "CarData":
        laps_raw = raw.get("laps")
        if not isinstance(laps_raw, list):
            raise DataValidationError(f"{path}.laps: expected a list")
        laps = tuple(
            LapRecord.from_dict(lap, f"{path}.laps[{i}]") for i, lap in enumerate(laps_raw)
        )
        return cls(
            num=_positive_int(raw, "num", path),
            team=str(raw.get("team") or ""),
            car_class=str(raw.get("class") or "Unknown"),
            finish_pos=int(_number(raw, "finishPos", path, default=999)),
            finish_pos_class=int(_number(raw, "finishPosClass", path, default=999)),
            laps=laps,
            make=str(raw.get("make") or ""),
            vehicle=str(raw.get("vehicle") or ""),
        )


@dataclass(frozen=True)
class RaceData:
    """Canonical dataset for one race.

    Produced once by a parser and read-only for every downstream stage.
    """
    max_lap: int
    total_cars: int
    green_pace_cutoff: float
    cars: Dict[int, CarData]
    fcy: Tuple[Tuple[int, int], ...] = ()
    class_groups: Dict[str, List[int]] = field(default_factory=dict)
    class_car_counts: Dict[str, int] = field(default_factory=dict)
    make_groups: Dict[str, List[int]] = field(default_factory=dict)

    @cached_property
    def fcy_laps(self) -> FrozenSet[int]:
        """Every lap inside a caution interval."""
        return frozenset(
            lap for start, end in self.fcy for lap in range(start, end + 1)
        )

    def is_caution_lap(self, lap: int) -> bool:
        return lap in self.fcy_laps

    def cars_in_class(self, class_name: Optional[str]) -> List[CarData]:
        """Cars of one class (all cars when class_name is None)."""
        return [
            car for car in self.cars.values()
            if class_name is None or car.car_class == class_name
        ]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "maxLap": self.max_lap,
            "totalCars": self.total_cars,
            "greenPaceCutoff": self.green_pace_cutoff,
            "cars": {str(num): car.to_dict() for num, car in self.cars.items()},
            "fcy": [[start, end] for start, end in self.fcy],
            "classGroups": {cls: list(nums) for cls, nums in self.class_groups.items()},
            "classCarCounts": dict(self.class_car_counts),
        }
        if self.make_groups:
            out["makeGroups"] = {make: list(nums) for make, nums in self.make_groups.items()}
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RaceData":
        """Rebuild a dataset from its JSON form.

        Raises:
            DataValidationError: If the structure is not a valid dataset
        """
        if not isinstance(raw, Mapping):
            raise DataValidationError("race data: expected an object")
        cars_raw = raw.get("cars")
        if not isinstance(cars_raw, Mapping) or not cars_raw:
            raise DataValidationError("cars: expected a non-empty object")

        cars: Dict[int, CarData] = {}
        for key, car_raw in cars_raw.items():
            if not isinstance(car_raw, Mapping):
                raise DataValidationError(f"cars.{key}: expected an object")
            car = CarData.from_dict(car_raw, f"cars.{key}")
            cars[car.num] = car

        fcy_raw = raw.get("fcy") or []
        fcy: List[Tuple[int, int]] = []
        for i, interval in enumerate(fcy_raw):
            if not isinstance(interval, (list, tuple)) or len(interval) != 2:
                raise DataValidationError(f"fcy[{i}]: expected [startLap, endLap]")
            fcy.append((int(interval[0]), int(interval[1])))

        green_pace_cutoff = _number(raw, "greenPaceCutoff", "race data")
        if green_pace_cutoff <= 0:
            raise DataValidationError("greenPaceCutoff: must be positive")

        return cls(
            max_lap=_positive_int(raw, "maxLap", "race data"),
            total_cars=_positive_int(raw, "totalCars", "race data"),
            green_pace_cutoff=green_pace_cutoff,
            cars=cars,
            fcy=tuple(fcy),
            class_groups={
                str(c): [int(n) for n in nums]
                for c, nums in (raw.get("classGroups") or {}).items()
            },
            class_car_counts={
                str(c): int(n) for c, n in (raw.get("classCarCounts") or {}).items()
            },
            make_groups={
                str(m): [int(n) for n in nums]
                for m, nums in (raw.get("makeGroups") or {}).items()
            },
        )


@dataclass(frozen=True)
class PitMarker:
    """Chart marker for a pit stop (or penalty) on a lap."""
    lap: int
    label: str
    color: str
    vertical_offset: int = 0
    position_delta: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lap": self.lap,
            "label": self.label,
            "color": self.color,
            "verticalOffset": self.vertical_offset,
            "positionDelta": self.position_delta,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: str = "pit") -> "PitMarker":
        return cls(
            lap=_positive_int(raw, "lap", path),
            label=str(raw.get("label", "")),
            color=str(raw.get("color", "")),
            vertical_offset=int(raw.get("verticalOffset", 0)),
            position_delta=int(raw.get("positionDelta", 0)),
        )


@dataclass(frozen=True)
class SettleMarker:
    """Chart marker for where a car settled after a pit stop or caution."""
    lap: int
    settled_position: int
    label: str
    subtitle: str
    color: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lap": self.lap,
            "settledPosition": self.settled_position,
            "label": self.label,
            "subtitle": self.subtitle,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: str = "settle") -> "SettleMarker":
        return cls(
            lap=_positive_int(raw, "lap", path),
            settled_position=_positive_int(raw, "settledPosition", path),
            label=str(raw.get("label", "")),
            subtitle=str(raw.get("subtitle", "")),
            color=str(raw.get("color", "")),
        )


@dataclass
class CarAnnotations:
    """Reasons and markers explaining one car's race."""
    reasons: Dict[int, str] = field(default_factory=dict)
    pits: List[PitMarker] = field(default_factory=list)
    settles: List[SettleMarker] = field(default_factory=list)

    def add_reason(self, lap: int, text: str) -> None:
        """Append a reason for a lap, joining with any existing one."""
        existing = self.reasons.get(lap)
        self.reasons[lap] = f"{existing}; {text}" if existing else text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reasons": {str(lap): text for lap, text in sorted(self.reasons.items())},
            "pits": [p.to_dict() for p in self.pits],
            "settles": [s.to_dict() for s in self.settles],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], path: str = "annotations") -> "CarAnnotations":
        reasons_raw = raw.get("reasons") or {}
        if not isinstance(reasons_raw, Mapping):
            raise DataValidationError(f"{path}.reasons: expected an object")
        reasons: Dict[int, str] = {}
        for key, text in reasons_raw.items():
            try:
                reasons[int(key)] = str(text)
            except ValueError:
                raise DataValidationError(f"{path}.reasons: bad lap key {key!r}")
        return cls(
            reasons=reasons,
            pits=[
                PitMarker.from_dict(p, f"{path}.pits[{i}]")
                for i, p in enumerate(raw.get("pits") or [])
            ],
            settles=[
                SettleMarker.from_dict(s, f"{path}.settles[{i}]")
                for i, s in enumerate(raw.get("settles") or [])
            ],
        )


Annotations = Dict[int, CarAnnotations]


def annotations_to_dict(annotations: Annotations) -> Dict[str, Any]:
    """Convert annotations to their JSON form (string car keys)."""
    return {str(num): ann.to_dict() for num, ann in annotations.items()}


def annotations_from_dict(raw: Mapping[str, Any]) -> Annotations:
    """Rebuild annotations from their JSON form."""
    if not isinstance(raw, Mapping):
        raise DataValidationError("annotations: expected an object")
    out: Annotations = {}
    for key, car_raw in raw.items():
        try:
            num = int(key)
        except ValueError:
            raise DataValidationError(f"annotations: bad car key {key!r}")
        out[num] = CarAnnotations.from_dict(car_raw or {}, f"annotations.{key}")
    return out


def validate_race_data(data: RaceData) -> List[str]:
    """Cross-check a dataset's internal consistency.

    Returns:
        Warning messages (empty when the dataset is consistent)
    """
    warnings: List[str] = []

    if len(data.cars) != data.total_cars:
        warnings.append(
            f"totalCars ({data.total_cars}) doesn't match actual car count ({len(data.cars)})"
        )

    for cls, nums in data.class_groups.items():
        for num in nums:
            car = data.cars.get(num)
            if car is None:
                warnings.append(f'Car #{num} in classGroup "{cls}" not found in car data')
            elif car.car_class != cls:
                warnings.append(
                    f'Car #{num} class "{car.car_class}" doesn\'t match classGroup "{cls}"'
                )

    for car in data.cars.values():
        lap_numbers = [lap.lap for lap in car.laps]
        if any(b <= a for a, b in zip(lap_numbers, lap_numbers[1:])):
            warnings.append(f"Car #{car.num} lap numbers are not strictly increasing")

    class_positions: Dict[Tuple[str, int], List[int]] = {}
    for car in data.cars.values():
        for lap in car.laps:
            class_positions.setdefault((car.car_class, lap.lap), []).append(lap.class_position)
    for (cls, lap), positions in sorted(class_positions.items()):
        if sorted(positions) != list(range(1, len(positions) + 1)):
            warnings.append(f'Class "{cls}" positions on lap {lap} are not 1..{len(positions)}')

    for (s1, e1), (s2, e2) in zip(data.fcy, data.fcy[1:]):
        if s2 <= e1 or s2 < s1:
            warnings.append(f"FCY intervals [{s1}, {e1}] and [{s2}, {e2}] overlap or are unsorted")

    return warnings


# Field helpers for from_dict

def _number(raw: Mapping[str, Any], key: str, path: str, default: Optional[float] = None) -> float:
    value = raw.get(key, default)
    if value is None:
        raise DataValidationError(f"{path}.{key}: required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DataValidationError(f"{path}.{key}: expected a number, got {value!r}")
    return float(value)


def _positive_int(raw: Mapping[str, Any], key: str, path: str) -> int:
    value = _number(raw, key, path)
    if value < 1 or value != int(value):
        raise DataValidationError(f"{path}.{key}: expected a positive integer, got {value!r}")
    return int(value)
