"""
CSV utilities - Low-level parsing helpers shared by all parsers.

Provides:
- CSV reading with delimiter auto-detection (comma, semicolon, tab)
- Case-insensitive, alias-aware header lookup
- Lap time and time-of-day conversion (decimal point or decimal comma)
"""

import csv
import io
import re
from typing import Dict, List, Optional, Sequence

BOM = "\ufeff"

_HEADER_NOISE = re.compile(r"[\s_\-.]+")


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith(BOM) else text


def _read_rows(text: str, delimiter: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, skipinitialspace=True)
    rows: List[List[str]] = []
    for row in reader:
        fields = [field.strip() for field in row]
        if len(fields) > 1 or (fields and fields[0]):
            rows.append(fields)
    return rows


def parse_csv(text: str) -> List[List[str]]:
    """Parse comma separated text into rows.

    Handles quoted fields (with doubled quotes as escapes), CRLF line
    endings and quoted newlines. Fields are trimmed and blank rows dropped.

    Args:
        text: Raw CSV document

    Returns:
        Rows as lists of strings, header row first

    Raises:
        csv.Error: If the document cannot be tokenized
    """
    return _read_rows(_strip_bom(text), ",")


def detect_delimiter(header_line: str) -> str:
    """Pick the delimiter of a header line: semicolon, then tab, then comma."""
    if ";" in header_line:
        return ";"
    if "\t" in header_line:
        return "\t"
    return ","


def parse_delimited_csv(text: str, delimiter: Optional[str] = None) -> List[List[str]]:
    """Parse delimited text into rows.

    Args:
        text: Raw document
        delimiter: Field delimiter (auto-detected from the first line if None)

    Returns:
        Rows as lists of trimmed strings
    """
    text = _strip_bom(text)
    if delimiter is None:
        delimiter = detect_delimiter(text.split("\n", 1)[0])
    return _read_rows(text, delimiter)


def normalize_header(name: str) -> str:
    """Normalize a header for fuzzy comparison."""
    return _HEADER_NOISE.sub(" ", name.strip().lower()).strip()


class HeaderMap:
    """Column lookup by header name.

    Lookups are case-insensitive and ignore differences in whitespace,
    underscores, dashes and dots, so ``"Start Number"``, ``"start_number"``
    and ``" START-NUMBER "`` resolve to the same column. Several aliases can
    be given; the first one present wins.
    """

    def __init__(self, headers: Sequence[str]):
        self.headers = list(headers)
        self._index: Dict[str, int] = {}
        for i, name in enumerate(self.headers):
            self._index.setdefault(normalize_header(name), i)

    def has(self, *names: str) -> bool:
        """Whether any of the given header names exist."""
        return self.index_of(*names) is not None

    def index_of(self, *names: str) -> Optional[int]:
        for name in names:
            idx = self._index.get(normalize_header(name))
            if idx is not None:
                return idx
        return None

    def get(self, row: Sequence[str], *names: str) -> str:
        """Get a trimmed cell value, or "" if the column is absent."""
        idx = self.index_of(*names)
        if idx is None or idx >= len(row):
            return ""
        return row[idx].strip()


def parse_int(text: str) -> Optional[int]:
    """Parse the leading integer of a cell ("12A" -> 12)."""
    match = re.match(r"\s*([+-]?\d+)", text or "")
    return int(match.group(1)) if match else None


def _decimal(text: str) -> str:
    """Accept a decimal comma ("121,5") as written by European locales."""
    if "," in text and "." not in text:
        return text.replace(",", ".")
    return text


def parse_float(text: str) -> Optional[float]:
    try:
        return float(_decimal(text))
    except (TypeError, ValueError):
        return None


def parse_lap_time(text: str) -> float:
    """Parse a lap time string into seconds.

    Accepts ``H:MM:SS.mmm``, ``M:SS.mmm`` and ``SS.mmm``, with either a
    decimal point or a decimal comma.

    Args:
        text: Lap time as exported by the timing system

    Returns:
        Seconds, or 0.0 for blank or unparseable input
    """
    if not text or not text.strip():
        return 0.0

    parts = _decimal(text.strip()).split(":")
    try:
        if len(parts) == 3:
            return float(parts[0]) * 3600 + float(parts[1]) * 60 + float(parts[2])
        if len(parts) == 2:
            return float(parts[0]) * 60 + float(parts[1])
        if len(parts) == 1:
            return float(parts[0])
    except ValueError:
        return 0.0
    return 0.0


def parse_time_of_day(text: str) -> Optional[float]:
    """Parse a wall-clock ``HH:MM:SS.mmm`` timestamp into seconds of day."""
    if not text:
        return None
    parts = text.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        return int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
    except ValueError:
        return None


def format_lap_time(seconds: float) -> str:
    """Format seconds as ``M:SS.mmm`` (``H:MM:SS.mmm`` past one hour).

    Sentinel and other sub-second values format as "".
    """
    if seconds <= 1:
        return ""
    millis = int(round(seconds * 1000))
    hours, rem = divmod(millis, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}.{ms:03d}"
    return f"{minutes}:{secs:02d}.{ms:03d}"
