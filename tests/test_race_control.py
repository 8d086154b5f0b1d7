"""Tests for race control message handling."""

import re

import pytest

from lapchart.parsers.race_control import (
    RACE_CONTROL_RULES,
    EventKind,
    RaceControlRule,
    TimeToLap,
    classify_message,
    classify_messages,
    extract_punishment,
    shorten_incident,
    shorten_penalty,
)
from lapchart.timing.csv_utils import parse_time_of_day


class TestTimeToLap:
    """Test wall clock to lap interpolation."""

    def test_linear_interpolation(self):
        """Test a message between anchors lands on the interpolated lap."""
        ttl = TimeToLap([(100.0, 5), (160.0, 10)])
        assert ttl.interpolate(130.0) == pytest.approx(7.5)
        assert ttl.lap_at(130.0) == 7

    def test_clamped_at_ends(self):
        """Test times outside the anchors clamp to the end anchors."""
        ttl = TimeToLap([(100.0, 5), (160.0, 10)])
        assert ttl.lap_at(50.0) == 5
        assert ttl.lap_at(500.0) == 10

    def test_exact_anchor(self):
        """Test a time equal to an anchor gives that anchor's lap."""
        ttl = TimeToLap([(100.0, 5), (160.0, 10), (220.0, 12)])
        assert ttl.lap_at(160.0) == 10

    def test_no_anchors(self):
        """Test interpolation without anchors yields lap 0."""
        ttl = TimeToLap([])
        assert len(ttl) == 0
        assert ttl.interpolate(100.0) is None
        assert ttl.lap_at(100.0) == 0
        assert ttl.lap_at(None) == 0

    def test_midnight_rollover(self):
        """Test races running past midnight keep their order."""
        ttl = TimeToLap([(23 * 3600.0, 100), (1 * 3600.0, 140)])
        # 00:00 is halfway between 23:00 and 01:00
        assert ttl.lap_at(0.0) == 120
        assert ttl.unwrap(1800.0) == pytest.approx(86400.0 + 1800.0)
        assert ttl.unwrap(23.5 * 3600) == pytest.approx(23.5 * 3600)


class TestRuleTable:
    """Test the ordered race control rule table."""

    def test_single_car_penalty(self):
        """Test a single car penalty keeps the penalty detail."""
        kind, cars, detail, rule = classify_message(
            "Car 77: Penalty - Pit Lane Speed (+5) - Drive Through"
        )
        assert kind is EventKind.PENALTY
        assert cars == ("77",)
        assert detail == "Pit Lane Speed (+5) - Drive Through"
        assert rule == "penalty"

    def test_multi_car_penalty(self):
        """Test a penalty naming several cars."""
        kind, cars, _, rule = classify_message("Cars 3, 12 & 45: Penalty - Pass Under Yellow")
        assert kind is EventKind.PENALTY
        assert cars == ("3", "12", "45")
        assert rule == "multi_car_penalty"

    def test_pit_entry(self):
        """Test pit lane entries including closed pit entries."""
        assert classify_message("CAR 31 ENTERED PIT LANE")[:2] == (EventKind.PIT_ENTER, ("31",))
        assert classify_message("CAR 8 ENTERED CLOSED PIT")[0] is EventKind.PIT_ENTER

    def test_off_course_and_stopped(self):
        """Test off course and stopped messages get separate kinds."""
        assert classify_message("CAR 5* OFF COURSE TURN 3")[:2] == (EventKind.OFF_COURSE, ("5",))
        assert classify_message("CAR 5 STOPPED ON COURSE T7")[0] is EventKind.STOPPED

    def test_spin_and_incident(self):
        """Test spins and multi-car incidents."""
        assert classify_message("CAR 19 SPUN TURN 11")[:2] == (EventKind.INCIDENT, ("19",))
        kind, cars, _, rule = classify_message("INCIDENT INVOLVING CARS 3, 7 - UNDER REVIEW")
        assert kind is EventKind.INCIDENT
        assert cars == ("3", "7")
        assert rule == "incident_involving"

    def test_generic_fallback(self):
        """Test unmatched messages become OTHER, global unless a car is named."""
        kind, cars, _, rule = classify_message("PIT LANE IS OPEN")
        assert (kind, cars, rule) == (EventKind.OTHER, (), None)
        kind, cars, _, _ = classify_message("BLACK FLAG FOR CAR 64")
        assert (kind, cars) == (EventKind.OTHER, ("64",))

    def test_first_match_wins(self):
        """Test earlier rules take priority over later ones."""
        rule = RaceControlRule(
            name="everything",
            pattern=re.compile(r"CAR\s+(\d+)", re.IGNORECASE),
            kind=EventKind.OTHER,
            extract=lambda m: ((m.group(1),), m.group(0)),
        )
        rules = (rule,) + RACE_CONTROL_RULES
        assert classify_message("CAR 19 SPUN TURN 11", rules)[3] == "everything"

    def test_classify_messages_laps(self):
        """Test messages are placed on laps and blank ones skipped."""
        ttl = TimeToLap([(parse_time_of_day("13:00:00"), 5), (parse_time_of_day("13:01:00"), 10)])
        events = classify_messages(
            [("13:00:30.000", "CAR 4 SPUN"), ("13:00:40.000", "  ")],
            ttl,
            parse_time_of_day,
        )
        assert len(events) == 1
        assert events[0].lap == 7
        assert events[0].cars == ("4",)


class TestDisplayText:
    """Test shortened penalty and incident texts."""

    def test_punishment(self):
        """Test punishment codes."""
        assert extract_punishment("Pit Lane Speed - Drive Through") == "DT"
        assert extract_punishment("Avoidable Contact - Stop + 60") == "Stop+60"
        assert extract_punishment("Warning") == ""

    def test_pit_speed(self):
        """Test pit lane speeding keeps the excess speed."""
        assert shorten_penalty("Pit Lane Speed (+5) - Drive Through") == "Pit Speed +5 - DT"

    def test_named_penalties(self):
        """Test common penalties get short names."""
        assert shorten_penalty("Too Many Crew Members Over The Wall - Stop + 30") == "Crew Violation - Stop+30"
        assert shorten_penalty("Incident Responsibility with #12 - Drive Through") == "Incident w/#12 - DT"

    def test_long_penalty_truncated(self):
        """Test unknown long descriptions are truncated."""
        text = shorten_penalty("Some Extremely Long And Unusual Penalty Description")
        assert text.endswith("…")
        assert len(text) == 29

    def test_incidents(self):
        """Test incident texts."""
        assert shorten_incident("CAR 5 OFF COURSE TURN 5") == "Off T5"
        assert shorten_incident("CAR 5 STOPPED ON COURSE") == "Stopped"
        assert shorten_incident("CAR 19 SPUN TURN 11") == "Spun T11"
        assert shorten_incident("INCIDENT INVOLVING CARS 3, 7 - NO ACTION") == "Incident - No Action"
        assert shorten_incident("INCIDENT INVOLVING CARS 3, 7 - UNDER REVIEW") == "Under Review"
        assert shorten_incident("Short note") == "Short note"
