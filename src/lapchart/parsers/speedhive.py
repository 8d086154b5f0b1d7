"""
SpeedHive parser - MyLaps / SpeedHive CSV exports.

Used by WRL and any series timed with SpeedHive. Expects two CSV files:
- Summary: Position, Start Number, Name, Class, Position In Class, Status
- All laps: Start Number, Lap Number, Lap Time, Time of Day, Speed,
  In Pit, Field Position, Status (plus team/class/finish columns)

Cautions are voted per lap from each car's status text.
"""

import csv
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Set

from lapchart.errors import ConfigError, ParseError
from lapchart.parsers.base import (
    DEFAULT_GREEN_PACE_CUTOFF,
    FileSlot,
    ParsedResult,
    RaceDataParser,
    estimate_green_pace_cutoff,
)
from lapchart.timing.builder import CarEntry, RaceDataBuilder
from lapchart.timing.caution import count_by_lap, laps_to_intervals, majority_caution_laps
from lapchart.timing.csv_utils import (
    HeaderMap,
    parse_delimited_csv,
    parse_float,
    parse_int,
    parse_lap_time,
)
from lapchart.timing.model import UNKNOWN_LAP_TIME, Flag, LapRecord

logger = logging.getLogger(__name__)

_CAUTION_STATUS = re.compile(r"\b(?:FCY|YELLOW|CAUTION)\b")
_RED_STATUS = re.compile(r"\bRED\b")
_CODE_STATUS = re.compile(r"\bCODE|\bSC\b")

_TRUE_VALUES = {"true", "yes", "y", "1"}

# Column aliases
START_NUMBER = ("start number", "start no", "number", "no")
LAP_NUMBER = ("lap number", "lap", "laps")
FIELD_POSITION = ("field position", "position in field", "pos")


@dataclass
class SpeedHiveConfig:
    """SpeedHive parser configuration."""
    # A lap is a caution when more than this fraction of cars report FCY
    caution_majority: float = 0.5

    # Green pace cutoff estimation
    min_pace_samples: int = 10
    pace_percentile: float = 0.95
    pace_multiplier: float = 1.1
    default_pace_cutoff: float = DEFAULT_GREEN_PACE_CUTOFF

    # Keep cars missing from the summary using metadata from the laps table
    use_lap_metadata_fallback: bool = False

    def __post_init__(self):
        if not 0.0 <= self.caution_majority < 1.0:
            raise ConfigError("caution_majority must be in [0, 1)")
        if not 0.0 < self.pace_percentile < 1.0:
            raise ConfigError("pace_percentile must be in (0, 1)")
        if self.pace_multiplier <= 0 or self.default_pace_cutoff <= 0:
            raise ConfigError("pace cutoff values must be positive")
        if self.min_pace_samples < 1:
            raise ConfigError("min_pace_samples must be at least 1")


def classify_status(status: str) -> Flag:
    """Map free-text lap status to a flag."""
    text = status.upper()
    if _CAUTION_STATUS.search(text):
        return Flag.FCY
    if _RED_STATUS.search(text):
        return Flag.RED
    if _CODE_STATUS.search(text):
        return Flag.FCY
    return Flag.GREEN


def read_table(text: str, label: str) -> List[List[str]]:
    """Tokenize a CSV export, accepting comma, semicolon or tab delimiters."""
    try:
        return parse_delimited_csv(text)
    except csv.Error as e:
        raise ParseError(f"{label} is not valid CSV: {e}") from e


class SpeedHiveParser(RaceDataParser):
    """Parser for SpeedHive summary + all-laps CSV pairs."""

    id = "speedhive"
    name = "SpeedHive / MyLaps"
    series = "WRL"
    description = (
        "Import from SpeedHive CSV exports. Used by WRL and other series using MyLaps timing."
    )
    file_slots = (
        FileSlot(
            key="summaryCsv",
            label="Summary CSV",
            description=(
                "SpeedHive summary export: Position, Start Number, Name, Class, "
                "Position In Class, Status."
            ),
        ),
        FileSlot(
            key="lapsCsv",
            label="All Laps CSV",
            description=(
                "SpeedHive all laps export: lap times, positions, speeds, pit stops, "
                "and flags for every car."
            ),
        ),
    )

    def __init__(self, config: SpeedHiveConfig | None = None):
        """Initialize parser.

        Args:
            config: Parser configuration
        """
        self.config = config or SpeedHiveConfig()

    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        self.check_files(files)
        warnings: List[str] = []

        summary_rows = read_table(files["summaryCsv"], "Summary CSV")
        if len(summary_rows) < 2:
            raise ParseError("Summary CSV has no data rows")
        summary_hdr = HeaderMap(summary_rows[0])
        if not summary_hdr.has(*START_NUMBER):
            raise ParseError("Summary CSV is missing the Start Number column")

        lap_rows = read_table(files["lapsCsv"], "All Laps CSV")
        if len(lap_rows) < 2:
            raise ParseError("All Laps CSV has no data rows")
        laps_hdr = HeaderMap(lap_rows[0])
        for column in (START_NUMBER, LAP_NUMBER):
            if not laps_hdr.has(*column):
                raise ParseError(f"All Laps CSV is missing the {column[0].title()} column")

        builder = RaceDataBuilder()
        summary_cars = self._read_summary(summary_rows, summary_hdr, builder, warnings)
        flags_by_car = self._read_laps(lap_rows, laps_hdr, builder, summary_cars, warnings)

        for num in builder.car_numbers:
            if not builder.laps_of(num):
                warnings.append(f"Car #{num} is in the summary but has no laps; skipping")
                builder.drop_car(num)

        if not builder.car_numbers:
            raise ParseError("No valid car data found in CSVs")

        caution_laps = majority_caution_laps(
            count_by_lap(flags_by_car), self.config.caution_majority
        )
        fcy = laps_to_intervals(caution_laps)

        green_times = [
            lap.lap_time_seconds
            for num in builder.car_numbers
            for lap in builder.laps_of(num)
            if lap.flag is Flag.GREEN and not lap.is_pit and lap.has_lap_time
        ]
        cutoff = estimate_green_pace_cutoff(
            green_times,
            min_samples=self.config.min_pace_samples,
            percentile=self.config.pace_percentile,
            multiplier=self.config.pace_multiplier,
            default=self.config.default_pace_cutoff,
        )

        data = builder.build(fcy, cutoff)
        logger.info(
            "SpeedHive: parsed %d cars across %d laps with %d caution periods",
            data.total_cars, data.max_lap, len(data.fcy),
        )
        return ParsedResult(data=data, annotations={}, warnings=warnings)

    def _read_summary(
        self,
        rows: List[List[str]],
        hdr: HeaderMap,
        builder: RaceDataBuilder,
        warnings: List[str],
    ) -> Set[int]:
        """Register every car listed in the summary table."""
        skipped = 0
        for row in rows[1:]:
            num = parse_int(hdr.get(row, *START_NUMBER))
            if num is None:
                skipped += 1
                continue
            builder.add_car(CarEntry(
                num=num,
                team=hdr.get(row, "name", "team", "team/name") or f"Car #{num}",
                car_class=hdr.get(row, "class") or "Unknown",
                finish_pos=parse_int(hdr.get(row, "position", "pos")) or 999,
                finish_pos_class=parse_int(hdr.get(row, "position in class", "class position")) or 999,
            ))
        if skipped:
            warnings.append(f"Skipped {skipped} summary row(s) without a start number")
        return set(builder.car_numbers)

    def _read_laps(
        self,
        rows: List[List[str]],
        hdr: HeaderMap,
        builder: RaceDataBuilder,
        summary_cars: Set[int],
        warnings: List[str],
    ) -> Dict[int, Dict[int, Flag]]:
        """Accumulate lap rows into the builder.

        Returns:
            Car -> lap -> flag for every valid lap row, including cars
            dropped for a missing summary entry
        """
        skipped = 0
        duplicates = 0
        unknown: Set[int] = set()
        flags_by_car: Dict[int, Dict[int, Flag]] = {}

        for row in rows[1:]:
            num = parse_int(hdr.get(row, *START_NUMBER))
            lap_num = parse_int(hdr.get(row, *LAP_NUMBER))
            if num is None or lap_num is None or lap_num < 1:
                skipped += 1
                continue

            flag = classify_status(hdr.get(row, "status"))
            flags_by_car.setdefault(num, {}).setdefault(lap_num, flag)

            if num not in summary_cars:
                if not self.config.use_lap_metadata_fallback:
                    unknown.add(num)
                    continue
                if not builder.has_car(num):
                    builder.add_car(CarEntry(
                        num=num,
                        team=hdr.get(row, "team/name", "team", "name") or f"Car #{num}",
                        car_class=hdr.get(row, "class") or "Unknown",
                        finish_pos=parse_int(hdr.get(row, "finish position (overall)")) or 999,
                        finish_pos_class=parse_int(hdr.get(row, "finish position (class)")) or 999,
                    ))
                    unknown.add(num)

            lap_text = hdr.get(row, "lap time")
            lap_seconds = parse_lap_time(lap_text)
            record = LapRecord(
                lap=lap_num,
                overall_position=parse_int(hdr.get(row, *FIELD_POSITION)) or lap_num,
                lap_time_text=lap_text,
                lap_time_seconds=lap_seconds if lap_seconds > 0 else UNKNOWN_LAP_TIME,
                flag=flag,
                is_pit=hdr.get(row, "in pit").lower() in _TRUE_VALUES,
                speed=parse_float(hdr.get(row, "speed")),
            )
            if not builder.add_lap(num, record):
                duplicates += 1

        for num in sorted(unknown):
            if self.config.use_lap_metadata_fallback:
                warnings.append(f"Car #{num} is missing from the summary; using lap table metadata")
            else:
                warnings.append(f"Car #{num} has laps but no summary entry; skipping")
        if skipped:
            warnings.append(f"Skipped {skipped} lap row(s) without a valid start number or lap number")
        if duplicates:
            warnings.append(f"Ignored {duplicates} duplicate lap row(s)")
        return flags_by_car
