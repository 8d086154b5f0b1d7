"""
IMSA parser - IMSA timing and scoring JSON exports.

Expects two JSON documents:
- Lap chart: session metadata, participants, and every car's overall
  position on every lap (no lap times)
- Flags: flag transitions with lap numbers plus free-text race control
  messages that carry only a wall-clock timestamp

Race control messages are placed on laps by interpolating between flag
transitions. Pit stops come from the lap chart, from race control pit
lane entries and, as a fallback, from large single-lap position drops.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Set, Tuple

from lapchart.errors import ConfigError, ParseError
from lapchart.parsers.base import (
    DEFAULT_GREEN_PACE_CUTOFF,
    FileSlot,
    ParsedResult,
    RaceDataParser,
)
from lapchart.parsers.race_control import (
    EventKind,
    RaceControlEvent,
    TimeToLap,
    classify_messages,
    extract_punishment,
    shorten_incident,
    shorten_penalty,
)
from lapchart.timing.builder import CarEntry, RaceDataBuilder
from lapchart.timing.caution import FlagEvent, caution_lap_set, intervals_from_flag_events
from lapchart.timing.csv_utils import parse_int, parse_time_of_day
from lapchart.timing.model import (
    UNKNOWN_LAP_TIME,
    Annotations,
    CarAnnotations,
    Flag,
    LapRecord,
    PitMarker,
)

logger = logging.getLogger(__name__)

TRANSITION_TYPES = ("GF", "FCY", "FF")
RC_MESSAGE_TYPE = "RCMESSAGE"
INCIDENT_KINDS = (EventKind.INCIDENT, EventKind.OFF_COURSE, EventKind.STOPPED)


@dataclass
class IMSAConfig:
    """IMSA parser configuration."""
    # Position drop (in one lap) treated as an unreported pit stop
    pit_drop_threshold: int = 5
    # Known pit stops within this many laps suppress an inferred one
    pit_match_window: int = 2

    # Positions-only format: no lap times to estimate pace from
    green_pace_cutoff: float = DEFAULT_GREEN_PACE_CUTOFF

    # Seed annotation styling
    pit_color: str = "#fbbf24"
    penalty_color: str = "#f87171"
    penalty_offset_step: int = 12

    def __post_init__(self):
        if self.pit_drop_threshold < 1:
            raise ConfigError("pit_drop_threshold must be at least 1")
        if self.pit_match_window < 0:
            raise ConfigError("pit_match_window must not be negative")
        if self.green_pace_cutoff <= 0:
            raise ConfigError("green_pace_cutoff must be positive")


@dataclass
class Participant:
    """Entry list record of one car."""
    number: int
    team: str
    car_class: str
    vehicle: str = ""
    manufacturer: str = ""
    drivers: Dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        """Team name followed by the driver line-up."""
        if not self.drivers:
            return self.team
        return f"{self.team} ({' / '.join(self.drivers.values())})"

    def driver_label(self, driver_number: str) -> str:
        return self.drivers.get(driver_number) or f"D{driver_number}"


@dataclass
class ChartLap:
    """One car's entry on one lap of the lap chart."""
    lap: int
    position: int
    driver: str = ""
    pit: bool = False


def load_json(text: str, label: str) -> Dict[str, Any]:
    """Decode a JSON document that must hold an object."""
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"{label} is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise ParseError(f"{label} must contain a JSON object")
    return doc


class IMSAParser(RaceDataParser):
    """Parser for IMSA lap chart + flags JSON pairs."""

    id = "imsa"
    name = "IMSA Timing & Scoring"
    series = "IMSA"
    description = (
        "Import from IMSA JSON exports: the lap chart with every car's position per lap "
        "and the flags feed with caution periods and race control messages."
    )
    file_slots = (
        FileSlot(
            key="lapChartJson",
            label="Lap Chart JSON",
            description="Participants and per-lap running order of every car.",
            accept=".json",
        ),
        FileSlot(
            key="flagsJson",
            label="Flags JSON",
            description="Flag transitions (GF, FCY, FF) and race control messages.",
            accept=".json",
        ),
    )

    def __init__(self, config: IMSAConfig | None = None):
        """Initialize parser.

        Args:
            config: Parser configuration
        """
        self.config = config or IMSAConfig()

    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        self.check_files(files)
        warnings: List[str] = []

        chart = load_json(files["lapChartJson"], "Lap Chart JSON")
        flags_doc = load_json(files["flagsJson"], "Flags JSON")

        participants = self._read_participants(chart, warnings)
        chart_laps = self._read_lap_chart(chart, participants, warnings)

        for num in sorted(set(participants) - set(chart_laps)):
            warnings.append(f"Car #{num} is listed in participants but has no laps; skipping")
        if not chart_laps:
            raise ParseError("No valid car data found in IMSA JSON files")

        max_lap = max(lap for laps in chart_laps.values() for lap in laps)

        flag_events, rc_rows = self._read_flags(flags_doc, warnings)
        time_to_lap = TimeToLap(
            (event.time, event.lap) for event in flag_events if event.time is not None
        )
        fcy = intervals_from_flag_events(
            [
                FlagEvent(
                    event.kind,
                    event.lap,
                    time_to_lap.unwrap(event.time) if event.time is not None else None,
                )
                for event in flag_events
            ],
            max_lap,
        )
        fcy_laps = caution_lap_set(fcy)

        car_events = self._events_by_car(rc_rows, time_to_lap, max_lap, chart_laps, warnings)

        pit_laps: Dict[int, Set[int]] = {}
        inferred: Dict[int, Dict[int, Tuple[int, int]]] = {}
        for num, laps in chart_laps.items():
            known = {lap for lap, entry in laps.items() if entry.pit}
            known.update(
                ev.lap for ev in car_events.get(num, [])
                if ev.kind is EventKind.PIT_ENTER and ev.lap in laps
            )
            inferred[num] = self.infer_pit_laps(laps, known)
            pit_laps[num] = known | set(inferred[num])

        builder = RaceDataBuilder()
        for finish_pos, num in enumerate(self.finishing_order(chart_laps), start=1):
            participant = participants[num]
            builder.add_car(CarEntry(
                num=num,
                team=participant.label,
                car_class=participant.car_class,
                finish_pos=finish_pos,
                make=participant.manufacturer,
                vehicle=participant.vehicle,
            ))
            for lap, entry in sorted(chart_laps[num].items()):
                builder.add_lap(num, LapRecord(
                    lap=lap,
                    overall_position=entry.position,
                    lap_time_seconds=UNKNOWN_LAP_TIME,
                    flag=Flag.FCY if lap in fcy_laps else Flag.GREEN,
                    is_pit=lap in pit_laps[num],
                ))
        builder.derive_class_finish_positions()

        data = builder.build(fcy, self.config.green_pace_cutoff)

        annotations: Annotations = {}
        for num in data.cars:
            annotations[num] = self._seed_annotations(
                participants[num],
                chart_laps[num],
                pit_laps[num],
                inferred[num],
                car_events.get(num, []),
                max_lap,
            )

        penalties = sum(
            1 for events in car_events.values() for ev in events if ev.kind is EventKind.PENALTY
        )
        pit_stops = sum(len(laps) for laps in pit_laps.values())
        inferred_count = sum(len(laps) for laps in inferred.values())
        driver_changes = sum(
            1 for ann in annotations.values()
            for text in ann.reasons.values() if "Driver →" in text
        )
        warnings.append(
            f"Parsed {data.total_cars} cars across {data.max_lap} laps with {len(data.fcy)} "
            f"caution periods, {penalties} penalties, {pit_stops} pit stops "
            f"({inferred_count} inferred), and {driver_changes} driver changes"
        )
        logger.info(
            "IMSA: parsed %d cars across %d laps with %d caution periods",
            data.total_cars, data.max_lap, len(data.fcy),
        )
        return ParsedResult(data=data, annotations=annotations, warnings=warnings)

    # Reading

    def _read_participants(
        self,
        chart: Mapping[str, Any],
        warnings: List[str],
    ) -> Dict[int, Participant]:
        raw = chart.get("participants")
        if not isinstance(raw, list) or not raw:
            raise ParseError("No participants found in lap chart")

        participants: Dict[int, Participant] = {}
        for entry in raw:
            if not isinstance(entry, dict):
                warnings.append("Skipped a malformed participant record")
                continue
            num = parse_int(str(entry.get("number", "")))
            if num is None:
                warnings.append(f"Skipped participant with invalid number {entry.get('number')!r}")
                continue
            drivers: Dict[str, str] = {}
            for driver in entry.get("drivers") or []:
                if isinstance(driver, dict) and driver.get("number") is not None:
                    surname = str(driver.get("surname") or driver.get("lastname") or "").strip()
                    drivers[str(driver["number"])] = surname or f"D{driver['number']}"
            participants[num] = Participant(
                number=num,
                team=str(entry.get("team") or "").strip() or f"Car #{num}",
                car_class=str(entry.get("class") or "").strip() or "Unknown",
                vehicle=str(entry.get("vehicle") or "").strip(),
                manufacturer=str(entry.get("manufacturer") or "").strip(),
                drivers=drivers,
            )
        if not participants:
            raise ParseError("No participants found in lap chart")
        return participants

    def _read_lap_chart(
        self,
        chart: Mapping[str, Any],
        participants: Mapping[int, Participant],
        warnings: List[str],
    ) -> Dict[int, Dict[int, ChartLap]]:
        """Per-car lap entries of participating cars."""
        raw = chart.get("laps")
        if not isinstance(raw, list) or not raw:
            raise ParseError("No laps found in lap chart")

        laps: Dict[int, Dict[int, ChartLap]] = {}
        unknown: Set[int] = set()
        malformed = 0

        for record in raw:
            lap_num = parse_int(str(record.get("lap", ""))) if isinstance(record, dict) else None
            positions = record.get("positions") if isinstance(record, dict) else None
            if lap_num is None or lap_num < 1 or not isinstance(positions, list):
                malformed += 1
                continue

            for idx, item in enumerate(positions):
                if isinstance(item, dict):
                    num = parse_int(str(item.get("number", "")))
                    position = parse_int(str(item.get("position", ""))) or idx + 1
                    driver = str(item.get("driver_number") or "")
                    pit = bool(item.get("pit"))
                elif isinstance(item, (str, int)) and not isinstance(item, bool):
                    num, position, driver, pit = parse_int(str(item)), idx + 1, "", False
                else:
                    num = None
                if num is None:
                    malformed += 1
                    continue
                if num not in participants:
                    unknown.add(num)
                    continue
                laps.setdefault(num, {}).setdefault(
                    lap_num, ChartLap(lap_num, position, driver, pit)
                )

        for num in sorted(unknown):
            warnings.append(f"Car #{num} appears in the lap chart but not in participants; skipping")
        if malformed:
            warnings.append(f"Skipped {malformed} malformed lap chart record(s)")
        return laps

    def _read_flags(
        self,
        flags_doc: Mapping[str, Any],
        warnings: List[str],
    ) -> Tuple[List[FlagEvent], List[Tuple[str, str]]]:
        """Split the flags feed into lapped transitions and RC messages."""
        raw = flags_doc.get("flags")
        if not isinstance(raw, list):
            warnings.append("Flags JSON has no flag list; no cautions or race control events")
            return [], []

        transitions: List[FlagEvent] = []
        messages: List[Tuple[str, str]] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            rec_type = str(item.get("rec_type") or "").strip().upper()
            time_text = str(item.get("time") or "").strip()
            if rec_type in TRANSITION_TYPES:
                lap = parse_int(str(item.get("lap", ""))) or 0
                if lap > 0:
                    transitions.append(FlagEvent(rec_type, lap, parse_time_of_day(time_text)))
            elif rec_type == RC_MESSAGE_TYPE:
                messages.append((time_text, str(item.get("message") or "")))
        return transitions, messages

    def _events_by_car(
        self,
        rc_rows: List[Tuple[str, str]],
        time_to_lap: TimeToLap,
        max_lap: int,
        chart_laps: Mapping[int, Any],
        warnings: List[str],
    ) -> Dict[int, List[RaceControlEvent]]:
        """Classify RC messages and group the lapped ones by car."""
        if rc_rows and not len(time_to_lap):
            warnings.append("No timed flag transitions; race control messages cannot be placed on laps")

        by_car: Dict[int, List[RaceControlEvent]] = {}
        for event in classify_messages(rc_rows, time_to_lap, parse_time_of_day):
            if event.lap < 1 or event.lap > max_lap:
                logger.debug("Ignoring unlapped race control message: %s", event.message)
                continue
            for car in event.cars:
                num = int(car)
                if num in chart_laps:
                    by_car.setdefault(num, []).append(event)
        return by_car

    # Inference

    def infer_pit_laps(
        self,
        laps: Mapping[int, ChartLap],
        known_pits: Set[int],
    ) -> Dict[int, Tuple[int, int]]:
        """Find unreported pit stops from single-lap position drops.

        Args:
            laps: The car's lap chart entries
            known_pits: Pit laps already reported for the car

        Returns:
            Inferred pit lap -> (position before, position after)
        """
        window = self.config.pit_match_window
        inferred: Dict[int, Tuple[int, int]] = {}
        for lap in sorted(laps):
            prev = laps.get(lap - 1)
            if prev is None:
                continue
            drop = laps[lap].position - prev.position
            if drop < self.config.pit_drop_threshold:
                continue
            if any(abs(lap - pit) <= window for pit in known_pits | set(inferred)):
                continue
            inferred[lap] = (prev.position, laps[lap].position)
            logger.debug("Inferred pit on lap %d (P%d -> P%d)", lap, prev.position, laps[lap].position)
        return inferred

    @staticmethod
    def finishing_order(chart_laps: Mapping[int, Mapping[int, ChartLap]]) -> List[int]:
        """Cars ordered by laps completed, then position on their last lap."""
        def key(num: int) -> Tuple[int, int, int]:
            last = max(chart_laps[num])
            return (-last, chart_laps[num][last].position, num)
        return sorted(chart_laps, key=key)

    def _seed_annotations(
        self,
        participant: Participant,
        laps: Mapping[int, ChartLap],
        pit_laps: Set[int],
        inferred: Mapping[int, Tuple[int, int]],
        events: List[RaceControlEvent],
        max_lap: int,
    ) -> CarAnnotations:
        """Driver changes, stint pit markers, penalties and incidents."""
        cfg = self.config
        ann = CarAnnotations()
        ordered = sorted(laps)

        stint = 1
        stint_start = ordered[0]
        stints: List[Tuple[int, int, int]] = []
        driver = laps[ordered[0]].driver
        driver_label = participant.driver_label(driver)

        for lap in ordered:
            entry = laps[lap]
            changed = bool(driver) and bool(entry.driver) and entry.driver != driver
            if entry.driver and entry.driver != driver:
                driver = entry.driver
                driver_label = participant.driver_label(driver)
            if changed:
                ann.add_reason(lap, f"Driver → {driver_label}")

            if lap not in pit_laps:
                continue

            before = laps[lap - 1].position if lap - 1 in laps else entry.position
            label = f"S{stint}→S{stint + 1} {driver_label}" if changed else f"S{stint} {driver_label}"
            ann.pits.append(PitMarker(
                lap=lap,
                label=label,
                color=cfg.pit_color,
                position_delta=entry.position - before,
            ))
            if lap in inferred:
                was, now = inferred[lap]
                ann.add_reason(lap, f"Pit stop inferred from position drop (P{was} → P{now})")

            stints.append((stint, stint_start, lap))
            stint_start = lap + 1
            stint += 1
        stints.append((stint, stint_start, max_lap))

        def stint_prefix(lap: int) -> str:
            for number, start, end in stints:
                if start <= lap <= end:
                    return f"S{number} "
            return ""

        offset = 0
        drive_throughs: List[int] = []
        for event in events:
            if event.kind is EventKind.PENALTY:
                short = shorten_penalty(event.detail)
                ann.add_reason(event.lap, short)
                punishment = extract_punishment(event.detail)
                ann.pits.append(PitMarker(
                    lap=event.lap,
                    label=f"{stint_prefix(event.lap)}{punishment or short}",
                    color=cfg.penalty_color,
                    vertical_offset=offset,
                ))
                offset += cfg.penalty_offset_step
                if punishment == "DT":
                    drive_throughs.append(event.lap)
            elif event.kind in INCIDENT_KINDS:
                ann.add_reason(event.lap, shorten_incident(event.message))

        for penalty_lap in drive_throughs:
            served = next((lap for lap in sorted(pit_laps) if lap > penalty_lap), None)
            if served is None:
                continue
            ann.pits.append(PitMarker(
                lap=served,
                label=f"{stint_prefix(served)}DT Served",
                color=cfg.penalty_color,
                vertical_offset=offset,
            ))
            offset += cfg.penalty_offset_step
            ann.add_reason(served, "DT Served")

        return ann
