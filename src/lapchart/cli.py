#!/usr/bin/env python3
"""
LapChart command line

Ingest timing exports into annotated race datasets and analyse them.

Usage:
    lapchart formats                                   # List supported formats
    lapchart ingest --format speedhive \\
        --file summaryCsv=summary.csv --file lapsCsv=laps.csv -o race.json
    lapchart strategy race.json --class GT3            # Strategy scores
    lapchart rankings race.json --lap 12               # Lap-time rankings
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List

from lapchart.analysis.rankings import compute_class_lap_time_rankings, compute_lap_time_rankings
from lapchart.analysis.strategy import compute_strategy_metrics
from lapchart.config import PipelineConfig
from lapchart.errors import LapChartError, ParseError
from lapchart.exporter import DatasetExporter, ExporterConfig, load_dataset
from lapchart.parsers import all_parsers, available_formats
from lapchart.pipeline import ingest

logger = logging.getLogger("lapchart")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="lapchart",
        description="Race timing ingestion and analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Ingest a SpeedHive export and keep a flat lap table too
    lapchart ingest --format speedhive --file summaryCsv=summary.csv \\
        --file lapsCsv=laps.csv -o race.json --laps-csv laps_out.csv

    # Ingest an IMSA export
    lapchart ingest --format imsa --file lapChartJson=lapchart.json \\
        --file flagsJson=flags.json -o race.json

    # Run with verbose logging and custom thresholds
    lapchart --log-level DEBUG --config lapchart.json ingest ...
        """
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON configuration file",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("formats", help="List supported timing formats")

    ingest_cmd = commands.add_parser("ingest", help="Ingest a timing export")
    ingest_cmd.add_argument(
        "--format",
        required=True,
        choices=available_formats(),
        help="Timing format id",
    )
    ingest_cmd.add_argument(
        "--file",
        action="append",
        default=[],
        metavar="SLOT=PATH",
        help="Input document for a file slot (repeatable)",
    )
    ingest_cmd.add_argument(
        "-o", "--output",
        type=Path,
        default=Path("race.json"),
        help="Output dataset JSON (default: race.json)",
    )
    ingest_cmd.add_argument(
        "--laps-csv",
        type=Path,
        default=None,
        help="Also write a per-lap CSV table",
    )

    strategy_cmd = commands.add_parser("strategy", help="Score pit and pace strategy")
    strategy_cmd.add_argument("dataset", type=Path, help="Dataset JSON from 'ingest'")
    strategy_cmd.add_argument("--class", dest="car_class", default=None, help="Only this class")

    rankings_cmd = commands.add_parser("rankings", help="Rank cars by lap time on each lap")
    rankings_cmd.add_argument("dataset", type=Path, help="Dataset JSON from 'ingest'")
    rankings_cmd.add_argument("--class", dest="car_class", default=None, help="Only this class")
    rankings_cmd.add_argument("--lap", type=int, default=None, help="Only this lap")

    return parser.parse_args(argv)


def setup_logging(level: str, log_file: Path | None = None):
    """Configure logging."""
    log_format = "%(asctime)s [%(levelname)s] %(message)s"
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level),
        format=log_format,
        handlers=handlers,
        force=True,
    )


def read_slot_files(specs: List[str]) -> Dict[str, str]:
    """Read SLOT=PATH arguments into document text keyed by slot."""
    files: Dict[str, str] = {}
    for spec in specs:
        slot, sep, path = spec.partition("=")
        if not sep or not slot or not path:
            raise ParseError(f"Expected SLOT=PATH, got '{spec}'")
        try:
            files[slot] = Path(path).read_text(encoding="utf-8-sig")
        except OSError as exc:
            raise ParseError(f"Cannot read {path}: {exc}") from exc
    return files


def cmd_formats(args: argparse.Namespace, config: PipelineConfig) -> int:
    for parser in all_parsers():
        print(f"{parser.id:<12} {parser.name} ({parser.series})")
        print(f"{'':<12} {parser.description}")
        for slot in parser.file_slots:
            need = "required" if slot.required else "optional"
            print(f"{'':<12}   {slot.key:<14} {slot.accept:<6} {need:<9} {slot.label}")
    return 0


def cmd_ingest(args: argparse.Namespace, config: PipelineConfig) -> int:
    files = read_slot_files(args.file)
    result = ingest(args.format, files, config)

    output = args.output
    exporter = DatasetExporter(ExporterConfig(
        output_dir=str(output.parent),
        indent=config.exporter.indent,
    ))
    exporter.export_json(result, output.name)
    if args.laps_csv:
        DatasetExporter(ExporterConfig(output_dir=str(args.laps_csv.parent))).export_laps_csv(
            result.data, args.laps_csv.name
        )

    print(
        f"{result.data.total_cars} cars, {result.data.max_lap} laps, "
        f"{len(result.data.fcy)} caution periods -> {output}"
    )
    for warning in result.warnings:
        print(f"  warning: {warning}")
    return 0


def cmd_strategy(args: argparse.Namespace, config: PipelineConfig) -> int:
    data, _ = load_dataset(args.dataset)
    metrics = compute_strategy_metrics(data, config.strategy)
    if args.car_class:
        metrics = [m for m in metrics if m.car_class == args.car_class]

    print(f"{'Class':<10} {'Pos':>3} {'Car':>5}  {'Team':<28} {'Stints':>6} "
          f"{'Pace':>8} {'Best':>8} {'Pit s':>7} {'Yel%':>5} {'Score':>5}")
    for m in metrics:
        print(
            f"{m.car_class[:10]:<10} {m.class_pos:>3} {'#' + str(m.car_num):>5}  {m.team[:28]:<28} "
            f"{m.stint_count:>6} {m.avg_green_pace:>8.3f} {m.best_lap:>8.3f} "
            f"{m.total_pit_time:>7.1f} {m.yellow_pit_pct:>5.0f} {m.strategy_score:>5}"
        )
    return 0


def cmd_rankings(args: argparse.Namespace, config: PipelineConfig) -> int:
    data, _ = load_dataset(args.dataset)
    if args.car_class:
        rankings = compute_class_lap_time_rankings(data, args.car_class)
    else:
        rankings = compute_lap_time_rankings(data)

    laps = [args.lap] if args.lap is not None else sorted(rankings)
    for lap in laps:
        ranks = rankings.get(lap)
        if not ranks:
            print(f"Lap {lap}: no ranking (caution or no eligible laps)")
            continue
        order = sorted(ranks, key=ranks.get)
        print(f"Lap {lap}: " + " ".join(f"{ranks[num]}:#{num}" for num in order))
    return 0


COMMANDS = {
    "formats": cmd_formats,
    "ingest": cmd_ingest,
    "strategy": cmd_strategy,
    "rankings": cmd_rankings,
}


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = PipelineConfig.from_file(args.config) if args.config else PipelineConfig()
    except LapChartError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    setup_logging(args.log_level or config.log_level, args.log_file or config.log_file)

    try:
        return COMMANDS[args.command](args, config)
    except LapChartError as exc:
        logger.error(str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
