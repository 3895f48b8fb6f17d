"""Unified diff parsing with GitHub-compatible diff positions.

A diff position is the 1-indexed offset of a line below the first ``@@``
header of a file's patch. The first header occupies no position; every later
header and every hunk line consumes one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .errors import MalformedHunkHeader
from .models import Hunk, Line, Side
from .coordinates import ranges_overlap

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<context>.*)$"
)
FUNCTION_CONTEXT_RE = re.compile(r"^@@[^@]+@@\s*(.*)$")
NO_NEWLINE_MARKER = "\\"


@dataclass
class ParsedPatch:
    file: str | None
    hunks: list[Hunk] = field(default_factory=list)
    errors: list[MalformedHunkHeader] = field(default_factory=list)
    # Indexes into hunks of surviving hunks that follow a dropped one;
    # len(hunks) marks a drop after the last hunk.
    dropped_before: set[int] = field(default_factory=set)
    last_position: int = 0


@dataclass(frozen=True)
class FilePatch:
    a_path: str | None
    b_path: str | None
    meta: tuple[str, ...]
    patch: str

    @property
    def path(self) -> str:
        return self.b_path or self.a_path or "UNKNOWN"


def normalize_diff_path(raw: str) -> str | None:
    value = raw.strip()
    if value == "/dev/null":
        return None
    if value.startswith("a/") or value.startswith("b/"):
        return value[2:]
    return value


def extract_function_context(header: str) -> str | None:
    if not header:
        return None
    match = FUNCTION_CONTEXT_RE.match(header)
    context = match.group(1).strip() if match else ""
    return context or None


class _HunkBuilder:
    def __init__(self, header: str, match: re.Match[str], header_position: int | None) -> None:
        self.header = header
        self.old_start = int(match.group("old_start"))
        self.old_count = int(match.group("old_count") or "1")
        self.new_start = int(match.group("new_start"))
        self.new_count = int(match.group("new_count") or "1")
        self.header_position = header_position
        self.old_cursor = self.old_start
        self.new_cursor = self.new_start
        self.lines: list[Line] = []

    def add(self, prefix: str, content: str, position: int) -> None:
        if prefix == "+":
            self.lines.append(Line("insert", content, None, self.new_cursor, position))
            self.new_cursor += 1
        elif prefix == "-":
            self.lines.append(Line("delete", content, self.old_cursor, None, position))
            self.old_cursor += 1
        else:
            self.lines.append(Line("context", content, self.old_cursor, self.new_cursor, position))
            self.old_cursor += 1
            self.new_cursor += 1

    def full(self) -> bool:
        return (
            self.old_cursor >= self.old_start + self.old_count
            and self.new_cursor >= self.new_start + self.new_count
        )

    def build(self) -> Hunk:
        return Hunk(
            header=self.header,
            old_start=self.old_start,
            old_count=self.old_count,
            new_start=self.new_start,
            new_count=self.new_count,
            lines=tuple(self.lines),
            function_context=extract_function_context(self.header),
            header_position=self.header_position,
        )


def parse_file_patch(patch_text: str | None, file: str | None = None) -> ParsedPatch:
    """Parse one file's patch into hunks.

    Malformed ``@@`` headers drop their hunk but keep consuming positions, so
    positions of later hunks still agree with the uploaded patch.
    """
    parsed = ParsedPatch(file=file)
    position = 0
    seen_header = False
    current: _HunkBuilder | None = None
    # True while skipping the body of a hunk with an unparsable header.
    dropping = False

    def flush() -> None:
        nonlocal current
        if current is not None:
            parsed.hunks.append(current.build())
        current = None

    for raw in (patch_text or "").splitlines():
        if raw.startswith("@@"):
            flush()
            header_position: int | None = None
            if seen_header:
                position += 1
                header_position = position
            seen_header = True
            match = HUNK_HEADER_RE.match(raw)
            if not match:
                error = MalformedHunkHeader(raw, header_position)
                parsed.errors.append(error)
                parsed.dropped_before.add(len(parsed.hunks))
                logger.warning("%s%s", error, f" in {file}" if file else "")
                dropping = True
                continue
            dropping = False
            current = _HunkBuilder(raw, match, header_position)
            continue

        if not seen_header:
            # diff --git / index / --- / +++ lines before the first hunk.
            continue

        if raw.startswith(NO_NEWLINE_MARKER):
            continue

        prefix = raw[:1]
        if prefix not in {"+", "-", " ", ""}:
            logger.debug("Ignoring unexpected patch line %r", raw)
            continue
        if prefix == "" and current is not None and current.full():
            # Blank separator after a complete hunk, not a stripped context line.
            continue

        position += 1
        if dropping or current is None:
            continue
        current.add(prefix or " ", raw[1:], position)

    flush()
    parsed.last_position = position
    return parsed


def split_unified_diff(diff_text: str) -> list[FilePatch]:
    """Split a multi-file ``git diff`` (or plain ``diff -u``) into per-file patches.

    Hunk bodies are consumed by their header counts so that a deleted line
    reading ``-- x`` is never mistaken for a ``---`` file header.
    """
    lines = diff_text.splitlines()
    files: list[FilePatch] = []
    a_path: str | None = None
    b_path: str | None = None
    meta: list[str] = []
    body: list[str] = []
    started = False
    old_remaining = 0
    new_remaining = 0

    def flush() -> None:
        if started:
            files.append(FilePatch(a_path, b_path, tuple(meta), "\n".join(body)))

    index = 0
    while index < len(lines):
        line = lines[index]
        in_hunk = old_remaining > 0 or new_remaining > 0

        if in_hunk and not line.startswith("diff --git "):
            body.append(line)
            if line.startswith("-"):
                old_remaining -= 1
            elif line.startswith("+"):
                new_remaining -= 1
            elif not line.startswith(NO_NEWLINE_MARKER):
                old_remaining -= 1
                new_remaining -= 1
            index += 1
            continue

        if line.startswith("diff --git "):
            flush()
            parts = line.split()
            a_path = normalize_diff_path(parts[2] if len(parts) > 2 else "")
            b_path = normalize_diff_path(parts[3] if len(parts) > 3 else "")
            meta, body = [line], []
            started = True
            old_remaining = new_remaining = 0
            index += 1
            continue

        if line.startswith("--- ") and index + 1 < len(lines) and lines[index + 1].startswith("+++ "):
            if not started or body:
                flush()
                meta, body = [], []
                started = True
            a_path = normalize_diff_path(line[4:].split("\t")[0])
            b_path = normalize_diff_path(lines[index + 1][4:].split("\t")[0])
            meta.extend([line, lines[index + 1]])
            index += 2
            continue

        if line.startswith("@@") and started:
            body.append(line)
            match = HUNK_HEADER_RE.match(line)
            if match:
                old_remaining = int(match.group("old_count") or "1")
                new_remaining = int(match.group("new_count") or "1")
            index += 1
            continue

        if started:
            if body:
                body.append(line)
            else:
                meta.append(line)
        index += 1

    flush()
    return files


def hunks_for_lines(hunks: list[Hunk], line_start: int, line_end: int, side: Side = "RIGHT") -> list[Hunk]:
    matches: list[Hunk] = []
    for hunk in hunks:
        if side == "LEFT":
            start, count = hunk.old_start, hunk.old_count
        else:
            start, count = hunk.new_start, hunk.new_count
        if ranges_overlap(line_start, line_end, start, start + count - 1):
            matches.append(hunk)
    return matches
