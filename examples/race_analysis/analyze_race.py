#!/usr/bin/env python3
"""
Race Analysis Example

This example demonstrates how to:
1. Ingest an IMSA lap chart and flags export
2. Read the generated position-change reasons and markers
3. Score pit strategy and rank lap times
4. Export the dataset to JSON and a per-lap CSV

Run with: python analyze_race.py
"""

import json
from pathlib import Path

from lapchart import ingest
from lapchart.analysis import compute_lap_time_rankings, compute_strategy_metrics
from lapchart.exporter import DatasetExporter, ExporterConfig


def build_export():
    """Small three-car race with one caution and one pit stop."""
    participants = [
        {"number": "10", "team": "Wayne Taylor Racing", "class": "GTP", "manufacturer": "Acura",
         "drivers": [{"number": 1, "surname": "Taylor"}, {"number": 2, "surname": "Albuquerque"}]},
        {"number": "31", "team": "Whelen Cadillac", "class": "GTP", "manufacturer": "Cadillac",
         "drivers": [{"number": 1, "surname": "Derani"}]},
        {"number": "77", "team": "AO Racing", "class": "GTD PRO", "manufacturer": "Porsche",
         "drivers": [{"number": 1, "surname": "Heinrich"}]},
    ]
    running_order = [
        [10, 31, 77], [10, 31, 77], [10, 31, 77],
        [31, 77, 10], [31, 77, 10], [31, 10, 77],
    ]

    laps = []
    for lap, order in enumerate(running_order, start=1):
        laps.append({
            "lap": lap,
            "positions": [
                {
                    "number": str(num),
                    "position": pos,
                    "driver_number": 2 if num == 10 and lap >= 4 else 1,
                    "pit": num == 10 and lap == 4,
                }
                for pos, num in enumerate(order, start=1)
            ],
        })

    flags = [
        {"time": "13:00:00.000", "rec_type": "GF", "lap": 1},
        {"time": "13:04:00.000", "rec_type": "FCY", "lap": 3},
        {"time": "13:06:00.000", "rec_type": "RCMessage",
         "message": "Car 77: Penalty - Pit Lane Speed (+5) - Drive Through"},
        {"time": "13:08:00.000", "rec_type": "GF", "lap": 5},
        {"time": "13:12:00.000", "rec_type": "FF", "lap": 7},
    ]
    return {
        "lapChartJson": json.dumps({"participants": participants, "laps": laps}),
        "flagsJson": json.dumps({"flags": flags}),
    }


def main():
    print("=" * 60)
    print("LapChart Race Analysis Example")
    print("=" * 60)

    output_dir = Path(__file__).parent / "output"

    # Step 1: Ingest
    print("\n1. Ingesting IMSA export...")
    result = ingest("imsa", build_export())
    data = result.data
    print(f"   {data.total_cars} cars, {data.max_lap} laps, cautions: {list(data.fcy)}")
    for warning in result.warnings:
        print(f"   warning: {warning}")

    # Step 2: Annotations
    print("\n2. Position changes explained:")
    for num in data.class_groups.get("GTP", []) + data.class_groups.get("GTD PRO", []):
        ann = result.annotations.get(num)
        if ann is None:
            continue
        print(f"   #{num} {data.cars[num].team}")
        for lap, reason in ann.reasons.items():
            print(f"      Lap {lap}: {reason}")
        for marker in ann.pits:
            print(f"      [pit]    Lap {marker.lap}: {marker.label}")
        for marker in ann.settles:
            print(f"      [settle] Lap {marker.lap}: {marker.label} ({marker.subtitle})")

    # Step 3: Strategy and rankings
    print("\n3. Strategy scores:")
    for m in compute_strategy_metrics(data):
        print(f"   {m.car_class:<8} P{m.class_pos} #{m.car_num:<4} stints={m.stint_count} "
              f"score={m.strategy_score}")

    rankings = compute_lap_time_rankings(data)
    print(f"   Ranked laps: {len(rankings)} (IMSA lap charts carry no lap times)")

    # Step 4: Export
    print("\n4. Exporting...")
    exporter = DatasetExporter(ExporterConfig(output_dir=str(output_dir)))
    json_path = exporter.export_json(result)
    csv_path = exporter.export_laps_csv(data)
    print(f"   {json_path}")
    print(f"   {csv_path}")

    print("\n" + "=" * 60)
    print("Done")
    print("=" * 60)


if __name__ == "__main__":
    main()
