from __future__ import annotations

import logging
from typing import Any, Iterable

from .anchoring import CommentAnchor, anchor_comment
from .config import EngineConfig
from .content_source import ContentSource
from .errors import ContentFetchFailure, MalformedHunkHeader
from .expansion import ExpansionResult, GapExpansionEngine
from .gap_registry import GapRegistry, gap_controls
from .models import AnnotationTarget
from .patch_parser import ParsedPatch, parse_file_patch, split_unified_diff
from .visibility import AnnotationOutcome, VisibilityResolver

logger = logging.getLogger(__name__)

VALID_ACTIONS = {"all", "up", "down"}


class ReviewSession:
    def __init__(self, source: ContentSource, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.engine = GapExpansionEngine(source, self.config)
        self.registries: dict[str, GapRegistry] = {}
        self.patches: dict[str, ParsedPatch] = {}
        self.resolver = VisibilityResolver(self.engine, self.registries)

    @classmethod
    def from_unified_diff(
        cls,
        diff_text: str,
        source: ContentSource,
        config: EngineConfig | None = None,
    ) -> ReviewSession:
        session = cls(source, config)
        for file_patch in split_unified_diff(diff_text):
            session.add_file(file_patch.path, file_patch.patch, original_file=file_patch.a_path)
        return session

    def add_file(self, file: str, patch_text: str, original_file: str | None = None) -> GapRegistry:
        parsed = parse_file_patch(patch_text, file)
        registry = GapRegistry.from_patch(file, parsed, original_file)
        previous = self.registries.get(file)
        if previous is not None:
            previous.close()
        self.patches[file] = parsed
        self.registries[file] = registry
        return registry

    def files(self) -> list[str]:
        return list(self.registries)

    def registry(self, file: str) -> GapRegistry:
        registry = self.registries.get(file)
        if registry is None:
            raise LookupError(f"File not in diff: {file}")
        return registry

    def discard(self, file: str) -> None:
        registry = self.registries.pop(file, None)
        self.patches.pop(file, None)
        if registry is not None:
            registry.close()

    def parse_errors(self) -> dict[str, list[MalformedHunkHeader]]:
        return {file: parsed.errors for file, parsed in self.patches.items() if parsed.errors}

    async def validate_trailing_gaps(self) -> dict[str, ExpansionResult | ContentFetchFailure | None]:
        return await self.engine.validate_eof_gaps(list(self.registries.values()))

    async def auto_expand_small_gaps(self) -> list[ExpansionResult]:
        """Reveal tiny gaps on initial render; remainders of partial expansion are left alone."""
        results: list[ExpansionResult] = []
        threshold = self.config.auto_expand_threshold
        for registry in list(self.registries.values()):
            for gap in registry.gaps():
                if gap.state != "collapsed" or gap.hidden_count is None or gap.hidden_count >= threshold:
                    continue
                try:
                    results.append(await self.engine.expand_all(registry, gap))
                except ContentFetchFailure as error:
                    logger.warning("Could not auto-expand %s: %s", gap.gap_id, error.reason)
        return results

    async def prepare(self) -> dict[str, ExpansionResult | ContentFetchFailure | None]:
        validation = await self.validate_trailing_gaps()
        await self.auto_expand_small_gaps()
        return validation

    async def expand(self, file: str, gap_id: str, action: str = "all", count: int | None = None) -> ExpansionResult:
        if action not in VALID_ACTIONS:
            raise ValueError(f"Unknown expand action: {action!r}")
        registry = self.registry(file)
        gap = registry.get(gap_id)
        if gap is None:
            raise LookupError(f"Gap not found: {gap_id}")
        if action == "all":
            return await self.engine.expand_all(registry, gap)
        return await self.engine.expand_directional(registry, gap, action, count)  # type: ignore[arg-type]

    async def expand_everything(self) -> list[ExpansionResult]:
        results: list[ExpansionResult] = []
        for registry in list(self.registries.values()):
            for gap in registry.gaps():
                results.append(await self.engine.expand_all(registry, gap))
        return results

    async def ensure_visible(self, targets: Iterable[AnnotationTarget]) -> list[AnnotationOutcome]:
        return await self.resolver.resolve(targets)

    def anchor(self, file: str, line: int, side: str = "RIGHT") -> CommentAnchor:
        return anchor_comment(self.registry(file), line, side)

    def to_dict(self) -> dict[str, Any]:
        files: list[dict[str, Any]] = []
        for file, registry in self.registries.items():
            payload = registry.to_dict()
            payload["originalFile"] = registry.original_file
            payload["controls"] = {gap.gap_id: list(gap_controls(gap, self.config)) for gap in registry.gaps()}
            payload["errors"] = [str(error) for error in self.patches[file].errors]
            files.append(payload)
        return {"files": files}
