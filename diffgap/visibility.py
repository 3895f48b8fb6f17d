from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Mapping

from .coordinates import GapMatch, find_matching_gap, ranges_overlap
from .errors import ContentFetchFailure, UnresolvableAnnotation
from .expansion import ExpansionResult, GapExpansionEngine
from .gap_registry import GapRegistry
from .models import AnnotationTarget, Side

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["visible", "revealed", "unresolvable"]


@dataclass(frozen=True)
class AnnotationGroup:
    file: str
    line_start: int
    line_end: int
    side: Side = "RIGHT"


@dataclass(frozen=True)
class AnnotationOutcome:
    group: AnnotationGroup
    status: OutcomeStatus
    result: ExpansionResult | None = None
    error: UnresolvableAnnotation | None = None

    @property
    def resolved(self) -> bool:
        return self.status != "unresolvable"

    def to_dict(self) -> dict:
        return {
            "file": self.group.file,
            "line_start": self.group.line_start,
            "line_end": self.group.line_end,
            "side": self.group.side,
            "status": self.status,
            "reason": self.error.reason if self.error else None,
        }


def group_targets(targets: Iterable[AnnotationTarget]) -> list[AnnotationGroup]:
    """Group targets by file, side and start line, keeping the widest end."""
    merged: dict[tuple[str, Side, int], int] = {}
    for target in targets:
        key = (target.file, target.side, target.line_start)
        merged[key] = max(merged.get(key, target.end), target.end)
    return [AnnotationGroup(file, start, end, side) for (file, side, start), end in merged.items()]


def _match_gap(registry: GapRegistry, group: AnnotationGroup) -> GapMatch | None:
    if group.side == "RIGHT":
        return find_matching_gap(registry.gaps(), group.line_start, group.line_end)
    for gap in registry.gaps():
        if gap.old_end is not None and ranges_overlap(group.line_start, group.line_end, gap.old_start, gap.old_end):
            return GapMatch(gap, False)
    return None


class VisibilityResolver:
    def __init__(
        self,
        engine: GapExpansionEngine,
        registries: Mapping[str, GapRegistry],
        context_radius: int | None = None,
    ) -> None:
        self.engine = engine
        self.registries = registries
        self.context_radius = engine.config.context_radius if context_radius is None else context_radius

    def is_visible(self, registry: GapRegistry, group: AnnotationGroup) -> bool:
        visible = registry.visible_lines(group.side)
        return any(number in visible for number in range(group.line_start, group.line_end + 1))

    def _unresolvable(self, group: AnnotationGroup, reason: str) -> AnnotationOutcome:
        error = UnresolvableAnnotation(group.file, group.line_start, group.line_end, reason)
        logger.info("%s", error)
        return AnnotationOutcome(group, "unresolvable", error=error)

    async def resolve_group(self, group: AnnotationGroup) -> AnnotationOutcome:
        registry = self.registries.get(group.file)
        if registry is None or registry.closed:
            return self._unresolvable(group, "file not in diff")
        if self.is_visible(registry, group):
            return AnnotationOutcome(group, "visible")

        try:
            match = _match_gap(registry, group)
            # A RIGHT target matched only by old numbers may sit in the unvalidated trailing gap.
            old_side_only = match is not None and group.side == "RIGHT" and not match.matched_in_new_coords
            if (match is None or old_side_only) and registry.eof_gap() is not None:
                await self.engine.validate_eof_gap(registry)
                match = _match_gap(registry, group)
            if match is None:
                return self._unresolvable(group, "no hidden gap contains the lines")
            old_start, old_end = match.old_range(group.line_start, group.line_end)
            result = await self.engine.expand_range(
                registry, match.gap, old_start, old_end, self.context_radius
            )
        except ContentFetchFailure as error:
            return self._unresolvable(group, error.reason)

        if result.status in {"stale", "busy"}:
            return self._unresolvable(group, f"gap {result.status}")
        if result.status == "retired_empty":
            return self._unresolvable(group, "lines are past the end of the file")
        if not self.is_visible(registry, group):
            return self._unresolvable(group, "lines still hidden after expansion")
        return AnnotationOutcome(group, "revealed", result=result)

    async def resolve(self, targets: Iterable[AnnotationTarget]) -> list[AnnotationOutcome]:
        # Groups run one after another: each expansion reshapes the gaps the next one matches.
        outcomes: list[AnnotationOutcome] = []
        for group in group_targets(targets):
            outcomes.append(await self.resolve_group(group))
        return outcomes
