"""
Parsers module - Timing-format parsers and their registry.

This module contains:
- RaceDataParser: uniform parser contract
- SpeedHiveParser: MyLaps / SpeedHive CSV exports
- IMSAParser: IMSA lap chart and flags JSON exports
- Registry lookup by format id
"""

from typing import Dict, List, Type

from lapchart.errors import UnknownFormatError
from lapchart.parsers.base import FileSlot, ParsedResult, RaceDataParser, estimate_green_pace_cutoff
from lapchart.parsers.imsa import IMSAConfig, IMSAParser
from lapchart.parsers.speedhive import SpeedHiveConfig, SpeedHiveParser

_REGISTRY: Dict[str, Type[RaceDataParser]] = {}


def register_parser(parser_cls: Type[RaceDataParser]) -> Type[RaceDataParser]:
    """Register a parser class under its format id (usable as a decorator)."""
    if not parser_cls.id:
        raise ValueError(f"{parser_cls.__name__} has no format id")
    _REGISTRY[parser_cls.id] = parser_cls
    return parser_cls


def get_parser_class(format_id: str) -> Type[RaceDataParser]:
    """Look up a parser class by format id.

    Raises:
        UnknownFormatError: If no parser is registered under that id
    """
    try:
        return _REGISTRY[format_id]
    except KeyError:
        known = ", ".join(sorted(_REGISTRY)) or "none"
        raise UnknownFormatError(f"Unknown format '{format_id}' (available: {known})") from None


def get_parser(format_id: str, config=None) -> RaceDataParser:
    """Instantiate the parser for a format id with an optional config."""
    return get_parser_class(format_id)(config)


def available_formats() -> List[str]:
    return sorted(_REGISTRY)


def all_parsers() -> List[RaceDataParser]:
    """One default-configured instance of every registered parser."""
    return [_REGISTRY[format_id]() for format_id in available_formats()]


register_parser(SpeedHiveParser)
register_parser(IMSAParser)

__all__ = [
    "FileSlot",
    "ParsedResult",
    "RaceDataParser",
    "estimate_green_pace_cutoff",
    "IMSAConfig",
    "IMSAParser",
    "SpeedHiveConfig",
    "SpeedHiveParser",
    "register_parser",
    "get_parser_class",
    "get_parser",
    "available_formats",
    "all_parsers",
]
