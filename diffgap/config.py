from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class EngineConfig:
    default_expand_lines: int = 20
    # Gaps this small get a single "expand all" control and are never split.
    small_gap_threshold: int = 10
    # A target range covering this share of a gap reveals the whole gap.
    full_expand_ratio: float = 0.7
    context_radius: int = 3
    # Gaps smaller than this are revealed on initial render.
    auto_expand_threshold: int = 6


def _positive_int(table: dict, key: str, default: int, *, allow_zero: bool = False) -> int:
    raw = table.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as error:
        raise RuntimeError(f"expansion.{key} must be an integer, got {raw!r}") from error
    if value < 0 or (value == 0 and not allow_zero):
        raise RuntimeError(f"expansion.{key} must be positive, got {value}")
    return value


def load_engine_config(path: Path) -> EngineConfig:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"Config not found: {path}") from error
    except tomllib.TOMLDecodeError as error:
        raise RuntimeError(f"Invalid TOML in {path}: {error}") from error

    expansion = data.get("expansion") or {}
    if not isinstance(expansion, dict):
        raise RuntimeError("config [expansion] must be a table")

    defaults = EngineConfig()
    ratio_raw = expansion.get("full_expand_ratio", defaults.full_expand_ratio)
    try:
        ratio = float(ratio_raw)
    except (TypeError, ValueError) as error:
        raise RuntimeError(f"expansion.full_expand_ratio must be a number, got {ratio_raw!r}") from error
    if not 0.0 < ratio <= 1.0:
        raise RuntimeError(f"expansion.full_expand_ratio must be in (0, 1], got {ratio}")

    return EngineConfig(
        default_expand_lines=_positive_int(expansion, "default_expand_lines", defaults.default_expand_lines),
        small_gap_threshold=_positive_int(
            expansion, "small_gap_threshold", defaults.small_gap_threshold, allow_zero=True
        ),
        full_expand_ratio=ratio,
        context_radius=_positive_int(expansion, "context_radius", defaults.context_radius, allow_zero=True),
        auto_expand_threshold=_positive_int(
            expansion, "auto_expand_threshold", defaults.auto_expand_threshold, allow_zero=True
        ),
    )
