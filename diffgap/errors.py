from __future__ import annotations


class DiffGapError(RuntimeError):
    """Base class for errors raised by the gap expansion engine."""


class MalformedHunkHeader(DiffGapError):
    def __init__(self, header: str, position: int | None = None) -> None:
        self.header = header
        self.position = position
        super().__init__(f"Unsupported hunk header: {header}")


class ContentFetchFailure(DiffGapError):
    def __init__(self, file: str, reason: str) -> None:
        self.file = file
        self.reason = reason
        super().__init__(f"Failed to fetch original content for {file}: {reason}")


class UnresolvableAnnotation(DiffGapError):
    def __init__(self, file: str, line_start: int, line_end: int, reason: str) -> None:
        self.file = file
        self.line_start = line_start
        self.line_end = line_end
        self.reason = reason
        super().__init__(f"Cannot reveal {file}:{line_start}-{line_end}: {reason}")


class StaleGapReference(DiffGapError):
    """The gap was retired or split by an earlier operation."""

    def __init__(self, gap_id: str) -> None:
        self.gap_id = gap_id
        super().__init__(f"Gap is no longer active: {gap_id}")


class OrderingViolation(DiffGapError):
    """Composed line stream is no longer in old-side order. Never recoverable."""
