from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import EngineConfig, load_engine_config
from .content_source import ContentSource, DirectoryContentSource, GitContentSource
from .models import AnnotationTarget
from .render import render_errors, render_file, render_outcomes
from .session import ReviewSession
from .visibility import AnnotationOutcome

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_view_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show a unified diff with expandable unchanged gaps.")
    parser.add_argument("diff", help="Path to a unified diff file ('-' reads stdin)")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--ref", help="Git ref holding the original file content (e.g. the base branch)")
    source.add_argument("--root", help="Directory holding the original file content")
    parser.add_argument("--repo", default=".", help="Repository used with --ref (default: current directory)")
    parser.add_argument(
        "--worktree-fallback",
        action="store_true",
        help="Read from the working tree when a file is missing at --ref",
    )
    parser.add_argument("--file", dest="file_filter", help="Only show this file")
    parser.add_argument("--expand-all", action="store_true", help="Reveal every gap")
    parser.add_argument("--annotations", help="JSON file with [{file, line_start, line_end, side}] to reveal")
    parser.add_argument("--config", help="TOML file with an [expansion] table")
    parser.add_argument("--max-lines", type=int, default=400, help="Max rows per file")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Output the line stream as JSON")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="WARNING", help="Logging level")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def build_source(args: argparse.Namespace) -> ContentSource:
    if args.root:
        return DirectoryContentSource(Path(args.root))
    return GitContentSource(
        Path(args.repo),
        args.ref or "HEAD",
        fallback_to_worktree=args.worktree_fallback,
    )


def read_diff(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    path = Path(value)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error


def load_annotations(path: Path) -> list[AnnotationTarget]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error
    except json.JSONDecodeError as error:
        raise RuntimeError(f"Invalid JSON: {error}") from error
    if not isinstance(payload, list):
        raise RuntimeError("annotations must be a JSON array")
    return [AnnotationTarget.from_dict(item) for item in payload if isinstance(item, dict)]


async def prepare_session(
    diff_text: str,
    source: ContentSource,
    config: EngineConfig,
    *,
    expand_all: bool,
    targets: list[AnnotationTarget],
) -> tuple[ReviewSession, list[AnnotationOutcome]]:
    session = ReviewSession.from_unified_diff(diff_text, source, config)
    await session.prepare()
    outcomes: list[AnnotationOutcome] = []
    if targets:
        outcomes = await session.ensure_visible(targets)
    if expand_all:
        await session.expand_everything()
    return session, outcomes


def run_view(argv: list[str]) -> int:
    args = parse_view_args(argv)
    configure_logging(args.log_level)
    console = Console()
    try:
        config = load_engine_config(Path(args.config)) if args.config else EngineConfig()
        diff_text = read_diff(args.diff)
        targets = load_annotations(Path(args.annotations)) if args.annotations else []
        session, outcomes = asyncio.run(
            prepare_session(
                diff_text,
                build_source(args),
                config,
                expand_all=args.expand_all,
                targets=targets,
            )
        )
        if args.file_filter:
            session.registry(args.file_filter)
    except LookupError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 2
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    files = [args.file_filter] if args.file_filter else session.files()
    if not files:
        print("[error] No files found in diff.", file=sys.stderr)
        return 2

    if args.as_json:
        payload = session.to_dict()
        payload["files"] = [item for item in payload["files"] if item["file"] in files]
        payload["annotations"] = [outcome.to_dict() for outcome in outcomes]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    errors = {file: [str(error) for error in items] for file, items in session.parse_errors().items()}
    render_errors(console, errors)
    for file in files:
        render_file(console, session.registry(file), config, args.max_lines)
    if outcomes:
        render_outcomes(console, outcomes)
    return 0


def main() -> None:
    raise SystemExit(run_view(sys.argv[1:]))
