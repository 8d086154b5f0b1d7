"""
Caution detection - Full-course-yellow interval helpers.

Every parser detects cautions from a different signal (per-car status
text, flag transition events) but must hand back the same thing: sorted,
disjoint, inclusive [start_lap, end_lap] intervals. These helpers build
and normalize that representation.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from lapchart.timing.model import Flag

Interval = Tuple[int, int]

# Flag-event kinds understood by intervals_from_flag_events
CAUTION_OPEN = "FCY"
CAUTION_CLOSE = frozenset({"GF", "FF"})


@dataclass(frozen=True)
class FlagEvent:
    """A flag transition with the lap it happened on."""
    kind: str
    lap: int
    time: Optional[float] = None


def laps_to_intervals(laps: Iterable[int]) -> List[Interval]:
    """Merge a set of caution lap numbers into contiguous intervals."""
    intervals: List[Interval] = []
    for lap in sorted(set(laps)):
        if intervals and lap == intervals[-1][1] + 1:
            intervals[-1] = (intervals[-1][0], lap)
        else:
            intervals.append((lap, lap))
    return intervals


def normalize_intervals(intervals: Iterable[Sequence[int]]) -> Tuple[Interval, ...]:
    """Sort intervals and merge any that overlap.

    Intervals with end < start are dropped. Adjacent intervals are kept
    separate; only overlapping ones merge.
    """
    cleaned = sorted((int(s), int(e)) for s, e in intervals if int(e) >= int(s))
    merged: List[Interval] = []
    for start, end in cleaned:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return tuple(merged)


def majority_caution_laps(
    flags_by_lap: Mapping[int, Sequence[Flag]],
    threshold: float = 0.5,
) -> List[int]:
    """Laps on which more than `threshold` of reporting cars showed FCY.

    Args:
        flags_by_lap: Lap number -> flag reported by each car on that lap
        threshold: Fraction of FCY reports a lap must exceed

    Returns:
        Sorted caution lap numbers
    """
    caution: List[int] = []
    for lap in sorted(flags_by_lap):
        flags = flags_by_lap[lap]
        if not flags:
            continue
        fcy_count = sum(1 for f in flags if f is Flag.FCY)
        if fcy_count / len(flags) > threshold:
            caution.append(lap)
    return caution


def intervals_from_flag_events(
    events: Sequence[FlagEvent],
    max_lap: int,
) -> Tuple[Interval, ...]:
    """Build caution intervals from flag transitions.

    Events are walked in time order; an event without a time stays where
    the feed put it, right after the timed event before it. An FCY event
    opens an interval; the next green or finish event closes it on the lap
    before the restart. An interval still open after the last event runs to
    `max_lap`.
    """
    keys: List[Tuple[float, int]] = []
    last_time = float("-inf")
    for i, event in enumerate(events):
        if event.time is not None:
            last_time = event.time
        keys.append((last_time, i))
    ordered = [events[i] for _, i in sorted(keys)]
    intervals: List[Interval] = []
    start: Optional[int] = None

    for event in ordered:
        if event.lap <= 0:
            continue
        if event.kind == CAUTION_OPEN:
            if start is None:
                start = event.lap
        elif event.kind in CAUTION_CLOSE and start is not None:
            intervals.append((start, max(start, event.lap - 1)))
            start = None

    if start is not None and max_lap >= start:
        intervals.append((start, max_lap))

    return normalize_intervals(intervals)


def caution_lap_set(intervals: Iterable[Interval]) -> FrozenSet[int]:
    """Membership set of every lap inside the given intervals."""
    return frozenset(lap for start, end in intervals for lap in range(start, end + 1))


def count_by_lap(flags_by_car: Mapping[int, Mapping[int, Flag]]) -> Dict[int, List[Flag]]:
    """Pivot car -> lap -> flag into lap -> list of flags."""
    by_lap: Dict[int, List[Flag]] = {}
    for laps in flags_by_car.values():
        for lap, flag in laps.items():
            by_lap.setdefault(lap, []).append(flag)
    return by_lap
