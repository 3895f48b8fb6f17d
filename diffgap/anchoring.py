from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import UnresolvableAnnotation
from .gap_registry import GapRegistry
from .models import Side, normalize_side


@dataclass(frozen=True)
class CommentAnchor:
    file: str
    line: int
    side: Side
    position: int | None

    @property
    def requires_file_level_fallback(self) -> bool:
        """Lines revealed by expansion were never in the uploaded patch and have no position."""
        return self.position is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.file,
            "line": self.line,
            "side": self.side,
            "position": self.position,
            "requiresFileLevelFallback": self.requires_file_level_fallback,
        }


def anchor_comment(registry: GapRegistry, line: int, side: Any = "RIGHT") -> CommentAnchor:
    """Resolve the diff position a review comment on ``line`` must be posted at.

    Raises ``UnresolvableAnnotation`` if the line is not visible at all.
    """
    resolved_side = normalize_side(side)
    found = registry.find_line(line, resolved_side)
    if found is None:
        raise UnresolvableAnnotation(registry.file, line, line, "line is not visible in the diff")
    return CommentAnchor(registry.file, line, resolved_side, found.diff_position)
