"""Collaborators that supply the full original (pre-change) file content."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from .errors import ContentFetchFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OriginalContent:
    lines: tuple[str, ...]

    @property
    def total_lines(self) -> int:
        return len(self.lines)

    def line(self, number: int) -> str:
        return self.lines[number - 1]


class ContentSource(Protocol):
    async def fetch_original_content(self, file: str) -> OriginalContent: ...


def split_content(text: str) -> tuple[str, ...]:
    if not text:
        return ()
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return tuple(line[:-1] if line.endswith("\r") else line for line in lines)


def _checked(file: str, text: str) -> OriginalContent:
    lines = split_content(text)
    if not lines:
        raise ContentFetchFailure(file, "file is empty")
    return OriginalContent(lines)


def run_git(repo: Path, args: list[str]) -> str:
    process = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    if process.returncode != 0:
        message = process.stderr.strip() or process.stdout.strip()
        raise RuntimeError(f"git {' '.join(args)} failed: {message}")
    return process.stdout


def _read_inside(root: Path, file: str) -> str:
    real_root = root.resolve()
    real_path = (real_root / file).resolve()
    if real_path != real_root and real_root not in real_path.parents:
        raise ContentFetchFailure(file, "path outside repository")
    try:
        return real_path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as error:
        raise ContentFetchFailure(file, "file not found") from error
    except IsADirectoryError as error:
        raise ContentFetchFailure(file, "path is a directory") from error
    except OSError as error:
        raise ContentFetchFailure(file, str(error)) from error


class GitContentSource:
    """Reads ``<ref>:<file>`` from a repository, optionally falling back to the working tree."""

    def __init__(self, repo: Path, ref: str, *, fallback_to_worktree: bool = False) -> None:
        self.repo = repo
        self.ref = ref
        self.fallback_to_worktree = fallback_to_worktree

    def _read(self, file: str) -> str:
        try:
            return run_git(self.repo, ["show", f"{self.ref}:{file}"])
        except RuntimeError as error:
            if not self.fallback_to_worktree:
                raise ContentFetchFailure(file, str(error)) from error
            logger.debug("Could not read %s from %s (%s); using working tree", file, self.ref, error)
        return _read_inside(self.repo, file)

    async def fetch_original_content(self, file: str) -> OriginalContent:
        text = await asyncio.to_thread(self._read, file)
        return _checked(file, text)


class DirectoryContentSource:
    def __init__(self, root: Path) -> None:
        self.root = root

    async def fetch_original_content(self, file: str) -> OriginalContent:
        text = await asyncio.to_thread(_read_inside, self.root, file)
        return _checked(file, text)


class InMemoryContentSource:
    def __init__(self, files: Mapping[str, str | list[str]]) -> None:
        self.files = dict(files)
        self.fetch_count = 0

    async def fetch_original_content(self, file: str) -> OriginalContent:
        self.fetch_count += 1
        if file not in self.files:
            raise ContentFetchFailure(file, "file not found")
        value = self.files[file]
        if isinstance(value, list):
            if not value:
                raise ContentFetchFailure(file, "file is empty")
            return OriginalContent(tuple(value))
        return _checked(file, value)
