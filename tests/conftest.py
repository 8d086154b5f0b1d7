"""Shared fixtures for LapChart tests."""

import json

import pytest

from lapchart.timing.builder import CarEntry, RaceDataBuilder
from lapchart.timing.csv_utils import format_lap_time
from lapchart.timing.model import UNKNOWN_LAP_TIME, Flag, LapRecord


def build_race(cars, fcy=(), green_pace_cutoff=300.0):
    """Build RaceData from compact per-car descriptions.

    Each car is a dict with ``positions`` (one per lap from ``first_lap``,
    default 1) and optional ``team``, ``cls``, ``finish``, ``pits`` (lap
    numbers) and ``times`` (lap times in seconds).
    """
    builder = RaceDataBuilder()
    for order, (num, spec) in enumerate(cars.items(), start=1):
        builder.add_car(CarEntry(
            num=num,
            team=spec.get("team", f"Team {num}"),
            car_class=spec.get("cls", "GT3"),
            finish_pos=spec.get("finish", order),
        ))
        times = spec.get("times", [])
        pits = set(spec.get("pits", ()))
        first = spec.get("first_lap", 1)
        for i, position in enumerate(spec["positions"]):
            lap = first + i
            seconds = times[i] if i < len(times) else UNKNOWN_LAP_TIME
            builder.add_lap(num, LapRecord(
                lap=lap,
                overall_position=position,
                lap_time_text=format_lap_time(seconds),
                lap_time_seconds=seconds,
                flag=Flag.FCY if any(s <= lap <= e for s, e in fcy) else Flag.GREEN,
                is_pit=lap in pits,
            ))
    builder.derive_class_finish_positions()
    return builder.build(fcy, green_pace_cutoff)


@pytest.fixture
def race_factory():
    """Factory building RaceData from compact car descriptions."""
    return build_race


@pytest.fixture
def speedhive_files():
    """Two-car SpeedHive export with a caution on lap 2."""
    summary = (
        "Position,Start Number,Name,Class,Position In Class,Status\n"
        "1,1,Alpha Racing,GT3,1,Running\n"
        "2,2,Bravo Motorsport,GT3,2,Running\n"
    )
    laps = (
        "Start Number,Lap Number,Lap Time,Time of Day,Speed,In Pit,Field Position,Status\n"
        "1,1,1:45.123,13:01:45.123,150.2,false,1,GREEN\n"
        "1,2,2:10.500,13:03:55.623,121.0,false,1,FCY\n"
        "1,3,1:44.900,13:05:40.523,150.9,false,2,GREEN\n"
        "2,1,1:45.500,13:01:45.500,150.0,false,2,GREEN\n"
        "2,2,2:11.000,13:03:56.500,120.5,false,2,FCY\n"
        "2,3,1:44.000,13:05:40.500,151.5,false,1,GREEN\n"
    )
    return {"summaryCsv": summary, "lapsCsv": laps}


def lap_chart(order_by_lap, pits=None, drivers_by_lap=None):
    """IMSA lap chart document from running orders per lap."""
    pits = pits or {}
    drivers_by_lap = drivers_by_lap or {}
    laps = []
    for lap, order in enumerate(order_by_lap, start=1):
        laps.append({
            "lap": lap,
            "positions": [
                {
                    "number": str(num),
                    "position": pos,
                    "driver_number": drivers_by_lap.get((num, lap), 1),
                    "pit": lap in pits.get(num, ()),
                }
                for pos, num in enumerate(order, start=1)
            ],
        })
    return laps


@pytest.fixture
def imsa_participants():
    return [
        {
            "number": "10",
            "team": "Wayne Taylor Racing",
            "class": "GTP",
            "vehicle": "Acura ARX-06",
            "manufacturer": "Acura",
            "drivers": [
                {"number": 1, "firstname": "Ricky", "surname": "Taylor"},
                {"number": 2, "firstname": "Filipe", "surname": "Albuquerque"},
            ],
        },
        {
            "number": "31",
            "team": "Whelen Cadillac",
            "class": "GTP",
            "vehicle": "Cadillac V-Series.R",
            "manufacturer": "Cadillac",
            "drivers": [
                {"number": 1, "firstname": "Pipo", "surname": "Derani"},
                {"number": 2, "firstname": "Jack", "surname": "Aitken"},
            ],
        },
        {
            "number": "77",
            "team": "AO Racing",
            "class": "GTD PRO",
            "vehicle": "Porsche 911 GT3 R",
            "manufacturer": "Porsche",
            "drivers": [{"number": 1, "firstname": "Laurin", "surname": "Heinrich"}],
        },
    ]


@pytest.fixture
def imsa_files(imsa_participants):
    """Six-lap IMSA export: caution laps 3-4, #10 pits on lap 4 with a driver change."""
    order = [
        [10, 31, 77],
        [10, 31, 77],
        [10, 31, 77],
        [31, 77, 10],
        [31, 77, 10],
        [31, 10, 77],
    ]
    drivers = {(10, lap): 2 for lap in (4, 5, 6)}
    chart = {
        "session": {"event": "Test Race"},
        "participants": imsa_participants,
        "laps": lap_chart(order, pits={10: (4,)}, drivers_by_lap=drivers),
    }
    flags = {
        "session": {"event": "Test Race"},
        "flags": [
            {"time": "13:00:00.000", "rec_type": "GF", "lap": 1},
            {"time": "13:04:00.000", "rec_type": "FCY", "lap": 3},
            {"time": "13:06:00.000", "rec_type": "RCMessage",
             "message": "Car 77: Penalty - Pit Lane Speed (+5) - Drive Through"},
            {"time": "13:08:00.000", "rec_type": "GF", "lap": 5},
            {"time": "13:09:00.000", "rec_type": "RCMessage",
             "message": "CAR 31 OFF COURSE TURN 5"},
            {"time": "13:12:00.000", "rec_type": "FF", "lap": 7},
        ],
    }
    return {"lapChartJson": json.dumps(chart), "flagsJson": json.dumps(flags)}
