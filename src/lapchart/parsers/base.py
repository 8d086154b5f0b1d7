"""
Parser base - Uniform contract implemented by every timing-format parser.

Defines:
- FileSlot: named input document a format expects
- ParsedResult: canonical data, seed annotations and warnings
- RaceDataParser: abstract parser interface
- Green-pace cutoff estimation shared by formats with lap times
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import numpy as np

from lapchart.errors import ParseError
from lapchart.timing.model import Annotations, RaceData

logger = logging.getLogger(__name__)

DEFAULT_GREEN_PACE_CUTOFF = 300.0


@dataclass(frozen=True)
class FileSlot:
    """A named input document."""
    key: str
    label: str
    description: str
    required: bool = True
    accept: str = ".csv"


@dataclass
class ParsedResult:
    """Everything a parser produces from one race export."""
    data: RaceData
    annotations: Annotations = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


class RaceDataParser(ABC):
    """Base class for timing-format parsers.

    Subclasses declare their identity and file slots as class attributes
    and implement parse(). Adding a format means adding a subclass and
    registering it; shared code never branches on the format.
    """

    id: str = ""
    name: str = ""
    series: str = ""
    description: str = ""
    file_slots: Tuple[FileSlot, ...] = ()

    def missing_files(self, files: Mapping[str, str]) -> List[FileSlot]:
        """Required slots that are absent or blank in `files`."""
        return [
            slot for slot in self.file_slots
            if slot.required and not (files.get(slot.key) or "").strip()
        ]

    def check_files(self, files: Mapping[str, str]) -> None:
        """Raise ParseError naming the first missing required document."""
        missing = self.missing_files(files)
        if missing:
            raise ParseError(f"Missing {missing[0].label} ({missing[0].key})")

    @abstractmethod
    def parse(self, files: Mapping[str, str]) -> ParsedResult:
        """Parse raw documents into canonical race data.

        Args:
            files: Document text keyed by file slot key

        Returns:
            Race data, seed annotations and non-fatal warnings

        Raises:
            ParseError: If no usable race data can be produced
        """

    def describe(self) -> Dict[str, Any]:
        """Parser metadata for listing available formats."""
        return {
            "id": self.id,
            "name": self.name,
            "series": self.series,
            "description": self.description,
            "fileSlots": [
                {
                    "key": slot.key,
                    "label": slot.label,
                    "description": slot.description,
                    "required": slot.required,
                    "accept": slot.accept,
                }
                for slot in self.file_slots
            ],
        }


def estimate_green_pace_cutoff(
    lap_times: Iterable[float],
    min_samples: int = 10,
    percentile: float = 0.95,
    multiplier: float = 1.1,
    default: float = DEFAULT_GREEN_PACE_CUTOFF,
) -> float:
    """Lap time above which a lap no longer counts as representative pace.

    Args:
        lap_times: Green-flag, non-pit lap times in seconds
        min_samples: Samples needed before trusting the data
        percentile: Fraction used to pick the reference lap (0-1)
        multiplier: Margin applied to the reference lap
        default: Cutoff when there are too few samples

    Returns:
        Cutoff in seconds
    """
    times = np.sort(np.asarray([t for t in lap_times if t > 1], dtype=float))
    if len(times) < min_samples:
        return default
    idx = min(int(np.floor(len(times) * percentile)), len(times) - 1)
    cutoff = float(times[idx] * multiplier)
    logger.debug("Green pace cutoff %.3fs from %d samples", cutoff, len(times))
    return cutoff
