"""
Pipeline Configuration

Aggregates the per-component configurations and loads them from JSON.
"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type

from lapchart.analysis.annotations import AnnotationConfig
from lapchart.analysis.strategy import StrategyConfig
from lapchart.errors import ConfigError
from lapchart.exporter import ExporterConfig
from lapchart.parsers.imsa import IMSAConfig
from lapchart.parsers.speedhive import SpeedHiveConfig

logger = logging.getLogger(__name__)

SECTIONS: Dict[str, Type] = {
    "speedhive": SpeedHiveConfig,
    "imsa": IMSAConfig,
    "annotations": AnnotationConfig,
    "strategy": StrategyConfig,
    "exporter": ExporterConfig,
}


@dataclass
class PipelineConfig:
    """Configuration of every pipeline component."""

    speedhive: SpeedHiveConfig = field(default_factory=SpeedHiveConfig)
    imsa: IMSAConfig = field(default_factory=IMSAConfig)
    annotations: AnnotationConfig = field(default_factory=AnnotationConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    exporter: ExporterConfig = field(default_factory=ExporterConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self):
        """Validate and normalize configuration."""
        if self.log_file and isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)
        self.log_level = str(self.log_level).upper()
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Unknown log level: {self.log_level}")

    def parser_config(self, format_id: str):
        """Configuration for a parser format, None if it has none."""
        section = getattr(self, format_id, None)
        if isinstance(section, (SpeedHiveConfig, IMSAConfig)):
            return section
        return None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PipelineConfig":
        """Build a configuration from nested dicts.

        Raises:
            ConfigError: On unknown sections, unknown keys or invalid values
        """
        if not isinstance(raw, Mapping):
            raise ConfigError("Configuration must be a JSON object")

        kwargs: Dict[str, Any] = {}
        for key, value in raw.items():
            if key in SECTIONS:
                kwargs[key] = _build_section(key, SECTIONS[key], value)
            elif key in ("log_level", "log_file"):
                kwargs[key] = value
            else:
                raise ConfigError(f"Unknown configuration section: {key}")
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str | Path) -> "PipelineConfig":
        """Load a configuration from a JSON file."""
        path = Path(path)
        try:
            with open(path) as f:
                raw = json.load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
        logger.info(f"Loaded configuration from {path}")
        return cls.from_dict(raw)


def _build_section(name: str, config_cls: Type, values: Any):
    if not isinstance(values, Mapping):
        raise ConfigError(f"Section '{name}' must be a JSON object")
    known = {f.name for f in fields(config_cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(unknown)}")
    try:
        return config_cls(**values)
    except TypeError as exc:
        raise ConfigError(f"Invalid section '{name}': {exc}") from exc
