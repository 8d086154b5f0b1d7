"""
Ingestion pipeline - Raw timing export in, annotated race dataset out.

parser -> annotation engine -> cross-validation
"""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping

from lapchart.analysis.annotations import AnnotationEngine
from lapchart.config import PipelineConfig
from lapchart.parsers import get_parser
from lapchart.timing.model import Annotations, RaceData, validate_race_data

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Annotated dataset of one race plus everything worth telling the user."""
    data: RaceData
    annotations: Annotations
    warnings: List[str] = field(default_factory=list)


def ingest(
    format_id: str,
    files: Mapping[str, str],
    config: PipelineConfig | None = None,
) -> IngestResult:
    """Parse and annotate one race export.

    Args:
        format_id: Registered parser id ("speedhive", "imsa")
        files: Document text keyed by the parser's file slot keys
        config: Pipeline configuration

    Returns:
        Race data, merged annotations and warnings

    Raises:
        UnknownFormatError: If no parser is registered for format_id
        ParseError: If the export holds no usable race data
    """
    config = config or PipelineConfig()
    parser = get_parser(format_id, config.parser_config(format_id))
    parser.check_files(files)

    logger.info(f"Ingesting {parser.name} export")
    parsed = parser.parse(files)

    annotations = AnnotationEngine(config.annotations).generate(parsed.data, parsed.annotations)

    warnings = list(parsed.warnings)
    warnings.extend(validate_race_data(parsed.data))
    for warning in warnings:
        logger.warning(warning)

    logger.info(
        f"Ingested {parsed.data.total_cars} cars, {parsed.data.max_lap} laps, "
        f"{len(parsed.data.fcy)} caution periods ({len(warnings)} warnings)"
    )
    return IngestResult(data=parsed.data, annotations=annotations, warnings=warnings)
