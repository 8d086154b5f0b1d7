"""
Race control - Classification of free-text race control messages.

Provides:
- TimeToLap: piecewise-linear wall-clock time -> lap interpolation
- RaceControlRule / RACE_CONTROL_RULES: ordered pattern table
- classify_message: first matching rule wins, generic rule last
- Short display texts for penalties and incidents
"""

import math
import re
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

SECONDS_PER_DAY = 86400.0
HALF_DAY = SECONDS_PER_DAY / 2


class EventKind(Enum):
    """Race control event types."""
    PENALTY = "penalty"
    PIT_ENTER = "pit_enter"
    INCIDENT = "incident"
    OFF_COURSE = "off_course"
    STOPPED = "stopped"
    OTHER = "other"


@dataclass(frozen=True)
class RaceControlEvent:
    """A classified race control message.

    `cars` is empty for global messages that name no car.
    """
    kind: EventKind
    cars: Tuple[str, ...]
    message: str
    detail: str
    time: str = ""
    lap: int = 0


class TimeToLap:
    """Estimate the lap a wall-clock timestamp falls on.

    Anchors are (seconds of day, lap) pairs taken from flag transitions,
    which carry both. Timestamps between anchors are interpolated
    linearly; timestamps outside them clamp to the first or last anchor.
    Times more than half a day before the first anchor are treated as
    the next day, so races running past midnight keep their order.
    """

    def __init__(self, anchors: Iterable[Tuple[float, int]]):
        raw = list(anchors)
        # Anchors arrive in feed order; the first one fixes the race day
        self._origin = raw[0][0] if raw else 0.0
        points = sorted((self.unwrap(t), lap) for t, lap in raw)
        self._times = [t for t, _ in points]
        self._laps = [lap for _, lap in points]

    def __len__(self) -> int:
        return len(self._times)

    def unwrap(self, t: float) -> float:
        """Shift post-midnight timestamps onto the first day's timeline."""
        if t < self._origin - HALF_DAY:
            return t + SECONDS_PER_DAY
        return t

    def interpolate(self, t: float) -> Optional[float]:
        """Fractional lap at time `t` (seconds of day), None without anchors."""
        if not self._times:
            return None
        t = self.unwrap(t)
        if t <= self._times[0]:
            return float(self._laps[0])
        if t >= self._times[-1]:
            return float(self._laps[-1])

        i = bisect_right(self._times, t) - 1
        t0, t1 = self._times[i], self._times[i + 1]
        lap0, lap1 = self._laps[i], self._laps[i + 1]
        if t1 == t0:
            return float(lap1)
        return lap0 + (t - t0) / (t1 - t0) * (lap1 - lap0)

    def lap_at(self, t: Optional[float]) -> int:
        """Lap in progress at time `t`; 0 when it cannot be estimated."""
        if t is None:
            return 0
        value = self.interpolate(t)
        if value is None:
            return 0
        return int(math.floor(value + 1e-9))


# Handlers receive the match and return (car numbers, detail text)
Extractor = Callable[[re.Match], Tuple[Tuple[str, ...], str]]


@dataclass(frozen=True)
class RaceControlRule:
    """One pattern of the race control rule table."""
    name: str
    pattern: re.Pattern
    kind: EventKind
    extract: Extractor
    resolve_kind: Optional[Callable[[re.Match], EventKind]] = None

    def apply(self, message: str) -> Optional[Tuple[EventKind, Tuple[str, ...], str]]:
        match = self.pattern.search(message)
        if not match:
            return None
        cars, detail = self.extract(match)
        kind = self.resolve_kind(match) if self.resolve_kind else self.kind
        return kind, cars, detail


def _car_numbers(text: str) -> Tuple[str, ...]:
    return tuple(re.findall(r"\d+", text))


def _single(match: re.Match) -> Tuple[Tuple[str, ...], str]:
    return (match.group(1),), match.group(0)


def _single_detail(match: re.Match) -> Tuple[Tuple[str, ...], str]:
    return (match.group(1),), match.group(2).strip()


def _multi_detail(match: re.Match) -> Tuple[Tuple[str, ...], str]:
    return _car_numbers(match.group(1)), match.group(2).strip()


def _multi(match: re.Match) -> Tuple[Tuple[str, ...], str]:
    return _car_numbers(match.group(1)), match.group(0)


def _off_or_stopped(match: re.Match) -> EventKind:
    return EventKind.OFF_COURSE if match.group(2).upper().startswith("OFF") else EventKind.STOPPED


RACE_CONTROL_RULES: Tuple[RaceControlRule, ...] = (
    RaceControlRule(
        name="penalty",
        pattern=re.compile(r"^Car\s+(\d+):\s*Penalty\s*-\s*(.+)", re.IGNORECASE),
        kind=EventKind.PENALTY,
        extract=_single_detail,
    ),
    RaceControlRule(
        name="multi_car_penalty",
        pattern=re.compile(r"^Cars?\s+([\d,\s&]+):\s*Penalty\s*-\s*(.+)", re.IGNORECASE),
        kind=EventKind.PENALTY,
        extract=_multi_detail,
    ),
    RaceControlRule(
        name="pit_lane_entry",
        pattern=re.compile(r"^CAR\s+(\d+)\s+ENTERED\s+(?:PIT|CLOSED)", re.IGNORECASE),
        kind=EventKind.PIT_ENTER,
        extract=_single,
    ),
    RaceControlRule(
        name="off_course",
        pattern=re.compile(r"^CAR\s+(\d+)\*?\s+(OFF COURSE|STOPPED ON COURSE)", re.IGNORECASE),
        kind=EventKind.OFF_COURSE,
        extract=_single,
        resolve_kind=_off_or_stopped,
    ),
    RaceControlRule(
        name="spin",
        pattern=re.compile(r"^CAR\s+(\d+)\*?\s+SPUN", re.IGNORECASE),
        kind=EventKind.INCIDENT,
        extract=_single,
    ),
    RaceControlRule(
        name="incident_involving",
        pattern=re.compile(r"^INCIDENT INVOLVING (?:CARS?|MULTIPLE)\s+([\d,\s&]+)", re.IGNORECASE),
        kind=EventKind.INCIDENT,
        extract=_multi,
    ),
)

_GENERIC_CAR = re.compile(r"\bCARS?\s+#?(\d+)\b", re.IGNORECASE)


def classify_message(
    message: str,
    rules: Sequence[RaceControlRule] = RACE_CONTROL_RULES,
) -> Tuple[EventKind, Tuple[str, ...], str, Optional[str]]:
    """Classify one message against the rule table.

    Args:
        message: Race control message text
        rules: Ordered rules, first match wins

    Returns:
        (kind, car numbers, detail, rule name). Unmatched messages are
        OTHER, attributed to a car only if they name one, and carry rule
        name None.
    """
    text = message.strip()
    for rule in rules:
        result = rule.apply(text)
        if result is not None:
            kind, cars, detail = result
            return kind, cars, detail, rule.name

    generic = _GENERIC_CAR.search(text)
    cars = (generic.group(1),) if generic else ()
    return EventKind.OTHER, cars, text, None


def classify_messages(
    messages: Iterable[Tuple[str, str]],
    time_to_lap: TimeToLap,
    parse_time: Callable[[str], Optional[float]],
    rules: Sequence[RaceControlRule] = RACE_CONTROL_RULES,
) -> List[RaceControlEvent]:
    """Classify (time, message) pairs and estimate their laps."""
    events: List[RaceControlEvent] = []
    for time_text, message in messages:
        if not message or not message.strip():
            continue
        kind, cars, detail, _ = classify_message(message, rules)
        events.append(RaceControlEvent(
            kind=kind,
            cars=cars,
            message=message.strip(),
            detail=detail,
            time=time_text,
            lap=time_to_lap.lap_at(parse_time(time_text)),
        ))
    return events


# Display text

_PENALTY_NAMES: Tuple[Tuple[str, str], ...] = (
    (r"too many crew", "Crew Violation"),
    (r"leaving with equipment", "Equipment Attached"),
    (r"wheel rotation", "Wheel Rotation"),
    (r"improper attire", "Attire Violation"),
    (r"fire extinguisher", "Fire Ext. Violation"),
    (r"pass under yellow", "Pass Under Yellow"),
    (r"jump re-?start", "Jump Restart"),
    (r"not serving", "Penalty Not Served"),
    (r"not respecting", "Black Flag Violation"),
    (r"chassis change", "Chassis Change"),
    (r"wrong way", "Wrong Way Pit Lane"),
    (r"passaround", "Passaround Violation"),
    (r"person.*over wall", "Over Wall Early"),
    (r"hose|tool|part|person.*pit", "Hose/Equipment"),
    (r"tire without", "Tire w/o Crew"),
    (r"short ?cut", "Shortcut"),
    (r"warming tires", "Tire Warming"),
    (r"emergency service", "ESO Violation"),
)


def extract_punishment(detail: str) -> str:
    """Short punishment code: "DT", "Stop+60", or "" if none is stated."""
    if re.search(r"drive through", detail, re.IGNORECASE):
        return "DT"
    stop = re.search(r"Stop\s*\+?\s*(\d+(?::\d+)?(?:\s*min)?)", detail, re.IGNORECASE)
    if stop:
        return f"Stop+{stop.group(1)}"
    return ""


def shorten_penalty(detail: str) -> str:
    """Compact penalty description with its punishment appended."""
    punishment = extract_punishment(detail)
    desc = re.sub(
        r"\s*-\s*(Drive Through|Stop\s*\+?\s*\d*(?::\d+)?(?:\s*min)?\s*$)",
        "",
        detail,
        flags=re.IGNORECASE,
    ).strip()

    if re.search(r"pit lane speed", desc, re.IGNORECASE):
        over = re.search(r"\(\+(\d+)\)", desc)
        desc = f"Pit Speed +{over.group(1)}" if over else "Pit Speed"
    elif re.search(r"incident responsibility", desc, re.IGNORECASE):
        with_ = re.search(r"with\s+(.+)", desc, re.IGNORECASE)
        desc = f"Incident w/{with_.group(1)}" if with_ else "Incident Resp."
    else:
        for pattern, name in _PENALTY_NAMES:
            if re.search(pattern, desc, re.IGNORECASE):
                desc = name
                break
        else:
            if len(desc) > 30:
                desc = desc[:28] + "…"

    return f"{desc} - {punishment}" if punishment else desc


def shorten_incident(message: str) -> str:
    """Compact incident text such as "Off T5" or "Spun T11"."""
    turn = re.search(r"turn\s+(\S+)", message, re.IGNORECASE)
    if re.search(r"off course", message, re.IGNORECASE):
        return f"Off T{turn.group(1)}" if turn else "Off Course"
    if re.search(r"stopped on course", message, re.IGNORECASE):
        return f"Stopped T{turn.group(1)}" if turn else "Stopped"
    if re.search(r"spun", message, re.IGNORECASE):
        return f"Spun T{turn.group(1)}" if turn else "Spun"
    if re.search(r"incident involving", message, re.IGNORECASE):
        if re.search(r"no action", message, re.IGNORECASE):
            return "Incident - No Action"
        if re.search(r"under review", message, re.IGNORECASE):
            return "Under Review"
        return "Incident"
    if re.search(r"continued", message, re.IGNORECASE):
        return "Continued"
    return message[:23] + "…" if len(message) > 25 else message
