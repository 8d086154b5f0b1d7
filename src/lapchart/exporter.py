"""
Dataset exporter - Persist ingested races and load them back.

Provides:
- JSON export of race data, annotations and warnings
- Per-lap CSV export (one row per car-lap)
- Loading a persisted dataset for the strategy and ranking engines
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple
from pathlib import Path
import json
import csv
import logging

from lapchart.errors import DataValidationError
from lapchart.timing.model import Annotations, RaceData, annotations_from_dict, annotations_to_dict

logger = logging.getLogger(__name__)

LAP_COLUMNS = [
    "car_num",
    "team",
    "class",
    "lap",
    "overall_position",
    "class_position",
    "lap_time",
    "lap_time_ms",
    "flag",
    "is_pit",
    "speed",
]


@dataclass
class ExporterConfig:
    """Exporter configuration."""
    output_dir: str = "."
    indent: int | None = 2


class DatasetExporter:
    """Write ingested races to files.

    JSON keeps everything needed to run the analysis engines again later;
    the lap CSV is a flat table for spreadsheets and other tools.
    """

    def __init__(self, config: ExporterConfig | None = None):
        """Initialize exporter.

        Args:
            config: Exporter configuration
        """
        self.config = config or ExporterConfig()

        self._output_path = Path(self.config.output_dir)
        self._output_path.mkdir(parents=True, exist_ok=True)

    def export_json(self, result, filename: str = "race.json") -> Path:
        """Export an ingestion result to a JSON file.

        Args:
            result: IngestResult (anything with data, annotations and warnings)
            filename: Output filename

        Returns:
            Path to exported file
        """
        output_file = self._output_path / filename
        payload = {
            "data": result.data.to_dict(),
            "annotations": annotations_to_dict(result.annotations),
            "warnings": list(result.warnings),
        }
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=self.config.indent, ensure_ascii=False)

        logger.info(f"Wrote race dataset to {output_file}")
        return output_file

    def export_laps_csv(self, data: RaceData, filename: str = "laps.csv") -> Path:
        """Export every car-lap as one CSV row.

        Args:
            data: Race data
            filename: Output filename

        Returns:
            Path to exported file
        """
        output_file = self._output_path / filename

        with open(output_file, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(LAP_COLUMNS)
            for num in sorted(data.cars):
                car = data.cars[num]
                for lap in car.laps:
                    writer.writerow([
                        car.num,
                        car.team,
                        car.car_class,
                        lap.lap,
                        lap.overall_position,
                        lap.class_position,
                        lap.lap_time_text,
                        int(round(lap.lap_time_seconds * 1000)) if lap.has_lap_time else "",
                        lap.flag.value,
                        int(lap.is_pit),
                        "" if lap.speed is None else f"{lap.speed:.3f}",
                    ])

        logger.info(f"Wrote lap table to {output_file}")
        return output_file


def load_dataset(path: str | Path) -> Tuple[RaceData, Annotations]:
    """Load a dataset written by DatasetExporter.export_json.

    A bare race data document (without the annotations wrapper) is
    accepted as well.

    Raises:
        DataValidationError: If the file is unreadable or not a valid dataset
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw: Dict[str, Any] = json.load(f)
    except OSError as exc:
        raise DataValidationError(f"Cannot read dataset {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise DataValidationError(f"Dataset {path} is not valid JSON: {exc}") from exc

    if isinstance(raw, dict) and "data" in raw:
        data = RaceData.from_dict(raw["data"])
        annotations = annotations_from_dict(raw.get("annotations") or {})
    else:
        data = RaceData.from_dict(raw)
        annotations = {}

    logger.debug("Loaded %d cars from %s", data.total_cars, path)
    return data, annotations
