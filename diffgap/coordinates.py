"""Inside a gap old and new line numbers differ by a constant offset (new - old)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import Gap


def ranges_overlap(line_start: int, line_end: int, range_start: int, range_end: int) -> bool:
    return line_start <= range_end and line_end >= range_start


class CoordinateMapper:
    def __init__(self, old_start: int, old_end: int, new_start: int) -> None:
        if old_end < old_start:
            raise ValueError(f"Empty span: {old_start}-{old_end}")
        self.old_start = old_start
        self.old_end = old_end
        self.new_start = new_start
        self.offset = new_start - old_start

    @classmethod
    def for_gap(cls, gap: Gap) -> CoordinateMapper:
        if gap.old_end is None:
            raise ValueError(f"Gap {gap.gap_id} has no validated end")
        return cls(gap.old_start, gap.old_end, gap.new_start)

    @property
    def new_end(self) -> int:
        return self.old_end + self.offset

    def contains_old(self, old_line: int) -> bool:
        return self.old_start <= old_line <= self.old_end

    def contains_new(self, new_line: int) -> bool:
        return self.new_start <= new_line <= self.new_end

    def to_new(self, old_line: int) -> int:
        if not self.contains_old(old_line):
            raise ValueError(f"Old line {old_line} outside {self.old_start}-{self.old_end}")
        return old_line + self.offset

    def to_old(self, new_line: int) -> int:
        if not self.contains_new(new_line):
            raise ValueError(f"New line {new_line} outside {self.new_start}-{self.new_end}")
        return new_line - self.offset


@dataclass(frozen=True)
class GapMatch:
    gap: Gap
    matched_in_new_coords: bool

    def old_range(self, line_start: int, line_end: int) -> tuple[int, int]:
        if self.matched_in_new_coords:
            return line_start - self.gap.offset, line_end - self.gap.offset
        return line_start, line_end


def find_matching_gap(gaps: Iterable[Gap], line_start: int, line_end: int) -> GapMatch | None:
    # Every gap is tried in new-side numbers before any old-side fallback.
    live = [gap for gap in gaps if not gap.retired and gap.old_end is not None]
    for gap in live:
        if ranges_overlap(line_start, line_end, gap.new_start, gap.old_end + gap.offset):
            return GapMatch(gap, True)
    for gap in live:
        if ranges_overlap(line_start, line_end, gap.old_start, gap.old_end):
            return GapMatch(gap, False)
    return None
