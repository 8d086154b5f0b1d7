"""
Errors - Exception types raised by the ingestion pipeline.

Fatal problems raise; per-record problems are reported as warning
strings alongside the parsed result instead.
"""


class LapChartError(Exception):
    """Base class for all LapChart errors."""


class ParseError(LapChartError):
    """Input documents cannot produce any usable race data."""


class UnknownFormatError(LapChartError):
    """No parser is registered for the requested format id."""


class DataValidationError(LapChartError):
    """A serialized dataset does not match the canonical structure."""


class ConfigError(LapChartError):
    """A configuration value is out of range or unknown."""
