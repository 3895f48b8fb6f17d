from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal

LineType = Literal["context", "insert", "delete"]
Side = Literal["LEFT", "RIGHT"]
GapPosition = Literal["above", "between", "below"]
GapState = Literal["collapsed", "partially_expanded", "retired"]

VALID_SIDES = {"LEFT", "RIGHT"}

# Trailing gaps do not know where the file ends until validated.
EOF_UNKNOWN = None


def side_for_line_type(line_type: str) -> Side:
    if line_type == "delete":
        return "LEFT"
    return "RIGHT"


def normalize_side(value: Any) -> Side:
    side = str(value or "RIGHT").strip().upper()
    if side not in VALID_SIDES:
        raise ValueError(f"Invalid side: {value!r}")
    return side  # type: ignore[return-value]


@dataclass(frozen=True)
class Line:
    type: LineType
    content: str
    old_number: int | None = None
    new_number: int | None = None
    diff_position: int | None = None

    @property
    def side(self) -> Side:
        return side_for_line_type(self.type)

    @property
    def revealed(self) -> bool:
        """True for lines spliced in by gap expansion rather than parsed from the patch."""
        return self.diff_position is None

    def number_for_side(self, side: Side) -> int | None:
        return self.old_number if side == "LEFT" else self.new_number

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "oldNumber": self.old_number,
            "newNumber": self.new_number,
            "content": self.content,
            "diffPosition": self.diff_position,
        }


@dataclass(frozen=True)
class Hunk:
    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[Line, ...] = ()
    function_context: str | None = None
    header_position: int | None = None

    def bounds(self, mode: Literal["first", "last"]) -> tuple[int | None, int | None]:
        """Return the first or last (old, new) numbers present in the hunk.

        Deletion-only and insertion-only stretches leave one side without a
        number, so each side is scanned independently.
        """
        found_old: int | None = None
        found_new: int | None = None
        ordered = self.lines if mode == "first" else tuple(reversed(self.lines))
        for line in ordered:
            if found_old is None and line.old_number is not None:
                found_old = line.old_number
            if found_new is None and line.new_number is not None:
                found_new = line.new_number
            if found_old is not None and found_new is not None:
                break
        return found_old, found_new

    # A zero count means the start number names the line *before* the hunk.
    @property
    def old_first(self) -> int:
        return self.old_start if self.old_count > 0 else self.old_start + 1

    @property
    def new_first(self) -> int:
        return self.new_start if self.new_count > 0 else self.new_start + 1

    def old_end(self) -> int:
        last_old, _ = self.bounds("last")
        return last_old if last_old is not None else self.old_first - 1

    def new_end(self) -> int:
        _, last_new = self.bounds("last")
        return last_new if last_new is not None else self.new_first - 1


@dataclass
class Gap:
    gap_id: str
    file: str
    old_start: int
    old_end: int | None
    new_start: int
    position: GapPosition
    state: GapState = "collapsed"
    offset: int = field(init=False)

    def __post_init__(self) -> None:
        self.offset = self.new_start - self.old_start

    @property
    def eof_unknown(self) -> bool:
        return self.old_end is EOF_UNKNOWN

    @property
    def new_end(self) -> int | None:
        if self.old_end is EOF_UNKNOWN:
            return None
        return self.old_end + self.offset

    @property
    def hidden_count(self) -> int | None:
        if self.old_end is EOF_UNKNOWN:
            return None
        return max(0, self.old_end - self.old_start + 1)

    @property
    def retired(self) -> bool:
        return self.state == "retired"

    def remainder(self, gap_id: str, old_start: int, old_end: int, position: GapPosition) -> Gap:
        return replace(
            self,
            gap_id=gap_id,
            old_start=old_start,
            old_end=old_end,
            new_start=old_start + self.offset,
            position=position,
            state="partially_expanded",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.gap_id,
            "file": self.file,
            "oldStart": self.old_start,
            "oldEnd": self.old_end,
            "newStart": self.new_start,
            "newEnd": self.new_end,
            "offset": self.offset,
            "position": self.position,
            "state": self.state,
            "hiddenCount": self.hidden_count,
        }


@dataclass(frozen=True)
class AnnotationTarget:
    file: str
    line_start: int
    line_end: int | None = None
    side: Side = "RIGHT"

    @property
    def end(self) -> int:
        return self.line_end if self.line_end is not None else self.line_start

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> AnnotationTarget:
        file = str(value.get("file") or "").strip()
        if not file:
            raise ValueError("annotation target requires a file")
        try:
            line_start = int(value["line_start"])
        except (KeyError, TypeError, ValueError) as error:
            raise ValueError(f"annotation target for {file} requires an integer line_start") from error
        raw_end = value.get("line_end")
        line_end = int(raw_end) if raw_end is not None else None
        return cls(file=file, line_start=line_start, line_end=line_end, side=normalize_side(value.get("side")))
