"""
Half-open minute-of-day intervals.

An ``Interval(start, end)`` covers minutes ``start <= m < end``. Two intervals
that only touch (``a.end == b.start``) do not overlap, but ``merge`` still folds
them into one because together they leave no gap.
"""
from dataclasses import dataclass
from typing import Iterable, Sequence

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, order=True)
class Interval:
    start: int
    end: int

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"interval start must be before end: [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def as_dict(self) -> dict:
        return {"start_min": self.start, "end_min": self.end}


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Sorted, minimal, non-overlapping cover of ``intervals``."""
    out: list[Interval] = []
    for cur in sorted(intervals):
        if out and cur.start <= out[-1].end:
            last = out[-1]
            if cur.end > last.end:
                out[-1] = Interval(last.start, cur.end)
        else:
            out.append(cur)
    return out


def subtract(base: Sequence[Interval], blocked: Sequence[Interval]) -> list[Interval]:
    """
    Parts of ``base`` not covered by ``blocked``.

    Both inputs must already be merged. The blocked list is swept once; the
    cursor only moves forward because both lists are sorted and disjoint.
    """
    out: list[Interval] = []
    i = 0
    for window in base:
        # skip blockers that end before this window starts (touching counts as before)
        while i < len(blocked) and blocked[i].end <= window.start:
            i += 1
        cursor = window.start
        j = i
        while j < len(blocked) and blocked[j].start < window.end:
            b = blocked[j]
            if b.start > cursor:
                out.append(Interval(cursor, b.start))
            cursor = max(cursor, b.end)
            if cursor >= window.end:
                break
            j += 1
        if cursor < window.end:
            out.append(Interval(cursor, window.end))
    return out


def overlapping(intervals: Iterable[Interval], target: Interval) -> list[Interval]:
    return [iv for iv in intervals if iv.overlaps(target)]


def covers(intervals: Iterable[Interval], target: Interval) -> bool:
    """True when a single interval contains ``target`` entirely."""
    return any(iv.contains(target) for iv in intervals)


def bookable_slots(free: Sequence[Interval], duration: int, step: int | None = None, align: int = 5) -> list[Interval]:
    """
    Fixed-length slots that fit inside the free intervals.

    Each free interval's first start is rounded up to a multiple of ``align``;
    subsequent starts advance by ``step`` (``duration`` when not given).
    """
    if duration <= 0:
        raise ValueError("duration must be positive")
    step = step or duration
    slots: list[Interval] = []
    for iv in free:
        start = -(-iv.start // align) * align if align > 1 else iv.start
        while start + duration <= iv.end:
            slots.append(Interval(start, start + duration))
            start += step
    return slots
