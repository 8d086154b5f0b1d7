"""
Timing module - Canonical race dataset and low-level timing helpers.

This module contains:
- RaceData / CarData / LapRecord: canonical per-car, per-lap dataset
- CarAnnotations / PitMarker / SettleMarker: derived annotations
- RaceDataBuilder: shared assembly of parser output
- RaceIndex: pre-built lookups for the analysis stages
- Caution helpers and CSV / lap-time utilities
"""

from lapchart.timing.model import (
    UNKNOWN_LAP_TIME,
    Annotations,
    CarAnnotations,
    CarData,
    Flag,
    LapRecord,
    PitMarker,
    RaceData,
    SettleMarker,
    annotations_from_dict,
    annotations_to_dict,
    validate_race_data,
)
from lapchart.timing.builder import CarEntry, RaceDataBuilder
from lapchart.timing.index import RaceIndex

__all__ = [
    "UNKNOWN_LAP_TIME",
    "Annotations",
    "CarAnnotations",
    "CarData",
    "Flag",
    "LapRecord",
    "PitMarker",
    "RaceData",
    "SettleMarker",
    "annotations_from_dict",
    "annotations_to_dict",
    "validate_race_data",
    "CarEntry",
    "RaceDataBuilder",
    "RaceIndex",
]
