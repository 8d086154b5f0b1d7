"""
LapChart - Endurance race timing ingestion and analysis.

This package turns raw timing exports into one canonical per-car, per-lap
dataset and derives racing insight from it:
- SpeedHive / MyLaps CSV and IMSA JSON parsers
- Full-course-yellow windows and pit stops
- Human-readable reasons for every position change
- Settle positions after cautions and pit stops
- Class-relative strategy scores and per-lap lap-time rankings
"""

__version__ = "0.1.0"

from lapchart.errors import LapChartError, ParseError, UnknownFormatError
from lapchart.timing.model import RaceData
from lapchart.pipeline import IngestResult, ingest

__all__ = [
    "LapChartError",
    "ParseError",
    "UnknownFormatError",
    "RaceData",
    "IngestResult",
    "ingest",
    "__version__",
]
