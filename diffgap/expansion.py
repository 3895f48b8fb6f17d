from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Literal

from .config import EngineConfig
from .content_source import ContentSource, OriginalContent
from .coordinates import CoordinateMapper
from .errors import ContentFetchFailure, StaleGapReference
from .gap_registry import GapRegistry
from .models import Gap, GapPosition, Line

logger = logging.getLogger(__name__)

ExpansionStatus = Literal["expanded", "validated", "retired_empty", "stale", "busy"]
Direction = Literal["up", "down"]


@dataclass(frozen=True)
class ExpansionResult:
    status: ExpansionStatus
    gap_id: str
    lines: tuple[Line, ...] = ()
    remainders: tuple[Gap, ...] = ()

    @property
    def changed(self) -> bool:
        return self.status in {"expanded", "validated", "retired_empty"}


def _end_of(gap: Gap) -> int:
    if gap.old_end is None:
        raise RuntimeError(f"Gap {gap.gap_id} has no validated end")
    return gap.old_end


def _reveal(gap: Gap, content: OriginalContent, old_start: int, old_end: int) -> tuple[Line, ...]:
    mapper = CoordinateMapper.for_gap(gap)
    return tuple(
        Line("context", content.line(number), number, mapper.to_new(number), None)
        for number in range(old_start, old_end + 1)
    )


class GapExpansionEngine:
    def __init__(self, source: ContentSource, config: EngineConfig | None = None) -> None:
        self.source = source
        self.config = config or EngineConfig()
        self._in_flight: set[str] = set()

    def in_flight(self, gap: Gap) -> bool:
        return gap.gap_id in self._in_flight

    async def _fetch(self, registry: GapRegistry, gap: Gap) -> tuple[Gap, OriginalContent] | ExpansionResult:
        try:
            live = registry.require(gap.gap_id)
        except StaleGapReference:
            logger.debug("Ignoring expansion of stale gap %s", gap.gap_id)
            return ExpansionResult("stale", gap.gap_id)
        if live.gap_id in self._in_flight:
            logger.debug("Expansion of %s already in flight", live.gap_id)
            return ExpansionResult("busy", live.gap_id)

        bounds = (live.old_start, live.old_end)
        self._in_flight.add(live.gap_id)
        try:
            content = await self.source.fetch_original_content(registry.original_file)
        finally:
            self._in_flight.discard(live.gap_id)

        try:
            live = registry.require(gap.gap_id)
        except StaleGapReference:
            logger.debug("Gap %s went away while fetching %s", gap.gap_id, registry.file)
            return ExpansionResult("stale", gap.gap_id)
        if (live.old_start, live.old_end) != bounds:
            return ExpansionResult("stale", gap.gap_id)
        return live, content

    def _settle_end(self, registry: GapRegistry, gap: Gap, content: OriginalContent) -> ExpansionResult | None:
        total = content.total_lines
        if gap.old_start > total:
            logger.debug("Gap %s starts past end of %s (%d lines); retiring", gap.gap_id, registry.file, total)
            registry.retire(gap)
            return ExpansionResult("retired_empty", gap.gap_id)
        if gap.old_end is None or gap.old_end > total:
            registry.resolve_eof(gap, total)
        return None

    async def validate_eof_gap(self, registry: GapRegistry, gap: Gap | None = None) -> ExpansionResult | None:
        gap = gap or registry.eof_gap()
        if gap is None or not gap.eof_unknown:
            return None
        fetched = await self._fetch(registry, gap)
        if isinstance(fetched, ExpansionResult):
            return fetched
        live, content = fetched
        settled = self._settle_end(registry, live, content)
        if settled is not None:
            return settled
        return ExpansionResult("validated", live.gap_id, remainders=(live,))

    async def validate_eof_gaps(
        self, registries: Iterable[GapRegistry]
    ) -> dict[str, ExpansionResult | ContentFetchFailure | None]:
        registries = list(registries)
        results = await asyncio.gather(
            *(self.validate_eof_gap(registry) for registry in registries),
            return_exceptions=True,
        )
        outcome: dict[str, ExpansionResult | ContentFetchFailure | None] = {}
        for registry, result in zip(registries, results):
            if isinstance(result, ContentFetchFailure):
                logger.warning("Trailing gap of %s not validated: %s", registry.file, result.reason)
                outcome[registry.file] = result
                continue
            if isinstance(result, BaseException):
                raise result
            outcome[registry.file] = result
        return outcome

    async def expand_all(self, registry: GapRegistry, gap: Gap) -> ExpansionResult:
        fetched = await self._fetch(registry, gap)
        if isinstance(fetched, ExpansionResult):
            return fetched
        live, content = fetched
        settled = self._settle_end(registry, live, content)
        if settled is not None:
            return settled
        return self._expand_all_fetched(registry, live, content)

    def _expand_all_fetched(self, registry: GapRegistry, gap: Gap, content: OriginalContent) -> ExpansionResult:
        lines = _reveal(gap, content, gap.old_start, _end_of(gap))
        registry.retire(gap, lines)
        logger.debug("Expanded all of %s (%d lines)", gap.gap_id, len(lines))
        return ExpansionResult("expanded", gap.gap_id, lines)

    async def expand_directional(
        self,
        registry: GapRegistry,
        gap: Gap,
        direction: Direction,
        count: int | None = None,
    ) -> ExpansionResult:
        """``up`` reveals the bottom edge of the gap, ``down`` the top edge."""
        if direction not in ("up", "down"):
            raise ValueError(f"Unknown expand direction: {direction!r}")
        count = self.config.default_expand_lines if count is None else count
        if count <= 0:
            raise ValueError(f"Expand count must be positive, got {count}")

        fetched = await self._fetch(registry, gap)
        if isinstance(fetched, ExpansionResult):
            return fetched
        live, content = fetched
        settled = self._settle_end(registry, live, content)
        if settled is not None:
            return settled
        old_end = _end_of(live)

        if count >= old_end - live.old_start + 1:
            return self._expand_all_fetched(registry, live, content)

        if direction == "up":
            lines = _reveal(live, content, old_end - count + 1, old_end)
            remainder = registry.shrink(live, live.old_start, old_end - count, lines)
        else:
            lines = _reveal(live, content, live.old_start, live.old_start + count - 1)
            remainder = registry.shrink(live, live.old_start + count, old_end, lines)
        logger.debug("Expanded %d lines %s in %s; %d still hidden", count, direction, live.gap_id, remainder.hidden_count)
        return ExpansionResult("expanded", live.gap_id, lines, (remainder,))

    async def expand_range(
        self,
        registry: GapRegistry,
        gap: Gap,
        target_start: int,
        target_end: int,
        context_radius: int | None = None,
    ) -> ExpansionResult:
        if target_end < target_start:
            raise ValueError(f"Invalid target range {target_start}-{target_end}")
        radius = self.config.context_radius if context_radius is None else context_radius

        fetched = await self._fetch(registry, gap)
        if isinstance(fetched, ExpansionResult):
            return fetched
        live, content = fetched
        settled = self._settle_end(registry, live, content)
        if settled is not None:
            return settled
        old_end = _end_of(live)

        reveal_start = max(live.old_start, target_start - radius)
        reveal_end = min(old_end, target_end + radius)
        if reveal_end < reveal_start:
            raise ValueError(
                f"Target {target_start}-{target_end} does not overlap gap {live.old_start}-{old_end}"
            )

        gap_size = old_end - live.old_start + 1
        coverage = (reveal_end - reveal_start + 1) / gap_size
        if gap_size <= self.config.small_gap_threshold or coverage >= self.config.full_expand_ratio:
            return self._expand_all_fetched(registry, live, content)

        remainders: list[tuple[int, int, GapPosition]] = []
        if reveal_start > live.old_start:
            remainders.append((live.old_start, reveal_start - 1, "above"))
        if reveal_end < old_end:
            remainders.append((reveal_end + 1, old_end, "below"))
        lines = _reveal(live, content, reveal_start, reveal_end)
        created = registry.split(live, remainders, lines)
        logger.debug(
            "Revealed %s-%s of %s; remainders %s",
            reveal_start,
            reveal_end,
            live.gap_id,
            [(item.old_start, item.old_end) for item in created],
        )
        return ExpansionResult("expanded", live.gap_id, lines, tuple(created))
