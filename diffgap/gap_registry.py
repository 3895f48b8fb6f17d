from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Collection, Iterable, Literal

from .config import EngineConfig
from .errors import OrderingViolation, StaleGapReference
from .models import EOF_UNKNOWN, Gap, GapPosition, Hunk, Line, Side
from .patch_parser import ParsedPatch

logger = logging.getLogger(__name__)


class _GapIds:
    def __init__(self, file: str) -> None:
        self.file = file
        self.counter = 0

    def __call__(self) -> str:
        self.counter += 1
        return f"{self.file}#gap{self.counter}"


def compute_gaps(
    file: str,
    hunks: list[Hunk],
    next_id: Callable[[], str] | None = None,
    dropped_before: Collection[int] = (),
) -> list[Gap]:
    # Gaps never span a hunk dropped for a malformed header.
    next_id = next_id or _GapIds(file)
    if not hunks:
        return []

    gaps: list[Gap] = []
    first = hunks[0]
    if first.old_first > 1 and 0 not in dropped_before:
        offset = first.new_first - first.old_first
        gaps.append(Gap(next_id(), file, 1, first.old_first - 1, 1 + offset, "above"))

    for index, (previous, current) in enumerate(zip(hunks, hunks[1:]), start=1):
        old_start = previous.old_end() + 1
        old_end = current.old_first - 1
        if old_end < old_start or index in dropped_before:
            continue
        gaps.append(Gap(next_id(), file, old_start, old_end, previous.new_end() + 1, "between"))

    last = hunks[-1]
    # Added files have no original content below the last hunk.
    if (last.old_start == 0 and last.old_count == 0) or len(hunks) in dropped_before:
        return gaps
    gaps.append(Gap(next_id(), file, last.old_end() + 1, EOF_UNKNOWN, last.new_end() + 1, "below"))
    return gaps


def gap_controls(gap: Gap, config: EngineConfig | None = None) -> tuple[str, ...]:
    config = config or EngineConfig()
    if gap.retired:
        return ()
    size = gap.hidden_count
    if gap.position == "above":
        return ("up", "all")
    if gap.position == "below":
        return ("down", "all")
    if size is not None and size <= config.small_gap_threshold:
        return ("all",)
    return ("down", "up", "all")


@dataclass(frozen=True)
class Segment:
    kind: Literal["header", "line", "gap"]
    hunk: Hunk | None = None
    line: Line | None = None
    gap: Gap | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "header" and self.hunk is not None:
            return {
                "kind": "header",
                "header": self.hunk.header,
                "functionContext": self.hunk.function_context,
                "diffPosition": self.hunk.header_position,
            }
        if self.kind == "gap" and self.gap is not None:
            return {"kind": "gap", **self.gap.to_dict()}
        if self.line is None:
            raise RuntimeError(f"{self.kind} segment has no payload")
        return {"kind": "line", **self.line.to_dict()}


class GapRegistry:
    def __init__(
        self,
        file: str,
        hunks: Iterable[Hunk],
        original_file: str | None = None,
        dropped_before: Collection[int] = (),
    ) -> None:
        self.file = file
        # Renamed files fetch original content from their old path.
        self.original_file = original_file or file
        self.hunks = list(hunks)
        self._next_id = _GapIds(file)
        self._gaps: dict[str, Gap] = {}
        self._revealed: dict[int, Line] = {}
        self.closed = False
        for gap in compute_gaps(file, self.hunks, self._next_id, dropped_before):
            self._gaps[gap.gap_id] = gap

    def close(self) -> None:
        self.closed = True

    @classmethod
    def from_patch(cls, file: str, parsed: ParsedPatch, original_file: str | None = None) -> GapRegistry:
        return cls(file, parsed.hunks, original_file, parsed.dropped_before)

    def gaps(self, include_retired: bool = False) -> list[Gap]:
        values = [gap for gap in self._gaps.values() if include_retired or not gap.retired]
        return sorted(values, key=lambda gap: gap.old_start)

    def get(self, gap_id: str) -> Gap | None:
        return self._gaps.get(gap_id)

    def require(self, gap_id: str) -> Gap:
        gap = self._gaps.get(gap_id)
        if self.closed or gap is None or gap.retired:
            raise StaleGapReference(gap_id)
        return gap

    def eof_gap(self) -> Gap | None:
        for gap in self.gaps():
            if gap.eof_unknown:
                return gap
        return None

    def revealed_lines(self) -> list[Line]:
        return [self._revealed[number] for number in sorted(self._revealed)]

    def _check_within(self, gap: Gap, revealed: Iterable[Line]) -> list[Line]:
        lines = list(revealed)
        for line in lines:
            number = line.old_number
            if number is None or number < gap.old_start or (gap.old_end is not None and number > gap.old_end):
                raise OrderingViolation(f"Revealed line {number} lies outside gap {gap.gap_id}")
            if number in self._revealed:
                raise OrderingViolation(f"Old line {number} of {self.file} revealed twice")
            if line.diff_position is not None:
                raise OrderingViolation(f"Revealed line {number} carries a diff position")
        return lines

    def _store(self, lines: list[Line]) -> None:
        for line in lines:
            if line.old_number is None:
                raise RuntimeError(f"Revealed line in {self.file} has no old number")
            self._revealed[line.old_number] = line

    def resolve_eof(self, gap: Gap, old_end: int) -> None:
        live = self.require(gap.gap_id)
        live.old_end = old_end
        logger.debug("Validated trailing gap %s: %s-%s", live.gap_id, live.old_start, old_end)

    def retire(self, gap: Gap, revealed: Iterable[Line] = ()) -> None:
        live = self.require(gap.gap_id)
        lines = self._check_within(live, revealed)
        live.state = "retired"
        self._store(lines)

    def shrink(self, gap: Gap, old_start: int, old_end: int, revealed: Iterable[Line]) -> Gap:
        live = self.require(gap.gap_id)
        lines = self._check_within(live, revealed)
        if old_start < live.old_start or (live.old_end is not None and old_end > live.old_end):
            raise OrderingViolation(f"Shrinking {live.gap_id} would grow it")
        live.old_start = old_start
        live.old_end = old_end
        live.new_start = old_start + live.offset
        live.state = "partially_expanded"
        self._store(lines)
        return live

    def split(
        self,
        gap: Gap,
        remainders: list[tuple[int, int, GapPosition]],
        revealed: Iterable[Line],
    ) -> list[Gap]:
        live = self.require(gap.gap_id)
        lines = self._check_within(live, revealed)
        created = [live.remainder(self._next_id(), start, end, position) for start, end, position in remainders]
        live.state = "retired"
        for remainder in created:
            self._gaps[remainder.gap_id] = remainder
        self._store(lines)
        return created

    def visible_lines(self, side: Side = "RIGHT") -> set[int]:
        numbers: set[int] = set()
        for hunk in self.hunks:
            for line in hunk.lines:
                number = line.number_for_side(side)
                if number is not None:
                    numbers.add(number)
        for line in self._revealed.values():
            number = line.number_for_side(side)
            if number is not None:
                numbers.add(number)
        return numbers

    def find_line(self, number: int, side: Side = "RIGHT") -> Line | None:
        for hunk in self.hunks:
            for line in hunk.lines:
                if line.number_for_side(side) == number and (line.side == side or line.type == "context"):
                    return line
        for line in self._revealed.values():
            if line.number_for_side(side) == number:
                return line
        return None

    def segments(self) -> list[Segment]:
        blocks: list[tuple[tuple[int, int], list[Segment]]] = []
        for hunk in self.hunks:
            items = [Segment("header", hunk=hunk)]
            items.extend(Segment("line", hunk=hunk, line=line) for line in hunk.lines)
            # A hunk sorts before a gap or revealed line sharing its anchor.
            blocks.append(((hunk.old_first, 0), items))
        for number, line in self._revealed.items():
            blocks.append(((number, 1), [Segment("line", line=line)]))
        for gap in self.gaps():
            blocks.append(((gap.old_start, 1), [Segment("gap", gap=gap)]))
        blocks.sort(key=lambda block: block[0])
        segments = [segment for _key, items in blocks for segment in items]
        self.check_order(segments)
        return segments

    def check_order(self, segments: list[Segment] | None = None) -> None:
        if segments is None:
            self.segments()
            return
        last_old = 0
        last_new = 0
        for segment in segments:
            if segment.kind == "line" and segment.line is not None:
                line = segment.line
                if line.old_number is not None:
                    if line.old_number <= last_old:
                        raise OrderingViolation(f"{self.file}: old line {line.old_number} after {last_old}")
                    last_old = line.old_number
                if line.new_number is not None:
                    if line.new_number <= last_new:
                        raise OrderingViolation(f"{self.file}: new line {line.new_number} after {last_new}")
                    last_new = line.new_number
            elif segment.kind == "gap" and segment.gap is not None:
                gap = segment.gap
                if gap.old_start <= last_old or gap.new_start <= last_new:
                    raise OrderingViolation(f"{self.file}: gap {gap.gap_id} overlaps visible lines")
                if gap.old_end is None:
                    last_old = gap.old_start
                    last_new = gap.new_start
                else:
                    last_old = gap.old_end
                    last_new = gap.old_end + gap.offset

    def old_coverage(self) -> list[int]:
        covered: list[int] = []
        for segment in self.segments():
            if segment.kind == "line" and segment.line is not None and segment.line.old_number is not None:
                covered.append(segment.line.old_number)
            elif segment.kind == "gap" and segment.gap is not None and segment.gap.old_end is not None:
                covered.extend(range(segment.gap.old_start, segment.gap.old_end + 1))
        return covered

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "segments": [segment.to_dict() for segment in self.segments()],
        }
