"""File walker: enumerates project files under the configured scan paths."""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

# Directories never worth descending into
_SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vscode",
    "node_modules",
    "vendor",
    ".phpunit.cache",
}

# Root-relative directories holding generated files (compiled views, caches)
_SKIP_PATHS = {"storage", "bootstrap/cache"}

DEFAULT_IGNORED_SEGMENTS = (
    "vendor",
    "test",
    "tests",
    "seeder",
    "seeders",
    "factory",
    "factories",
)

# Max file size to scan (1 MB)
_MAX_FILE_SIZE = 1_048_576


class PathFilter:
    """Decide whether a root-relative path is inside the scan paths and not excluded.

    Exclusions are case-insensitive globs matched against the whole relative
    path (``storage/*``, ``*/legacy/*``).
    """

    def __init__(self, analyze_paths: Iterable[str] = (), excluded: Iterable[str] = ()) -> None:
        self.analyze_paths = [p.strip("/") for p in analyze_paths]
        self.excluded = [p.lower() for p in excluded]

    def should_analyze(self, relative: str) -> bool:
        relative = relative.replace("\\", "/")
        if self.is_excluded(relative):
            return False
        return self.in_analyze_paths(relative)

    def is_excluded(self, relative: str) -> bool:
        lowered = relative.lower()
        return any(fnmatch.fnmatchcase(lowered, pattern) for pattern in self.excluded)

    def in_analyze_paths(self, relative: str) -> bool:
        if not self.analyze_paths:
            return True
        for base in self.analyze_paths:
            if base in ("", "."):
                return True
            if relative == base or relative.startswith(base + "/"):
                return True
        return False


class FileWalker:
    """Walks a project root yielding files that pass the path filter."""

    def __init__(
        self,
        root: str | Path,
        paths: Iterable[str] = (".",),
        excluded: Iterable[str] = (),
        ignored_segments: Iterable[str] = DEFAULT_IGNORED_SEGMENTS,
    ) -> None:
        self.root = Path(root).resolve()
        self.paths = list(paths)
        self.filter = PathFilter(self.paths, excluded)
        self.ignored_segments = {s.lower() for s in ignored_segments}

    def files(self, extensions: Iterable[str] = (".php",)) -> Iterator[Path]:
        """Yield files ending with one of *extensions*, in a stable order."""
        suffixes = tuple(extensions)
        seen: set[Path] = set()
        for start in self._start_dirs():
            for path in self._walk(start):
                if path in seen or not path.name.endswith(suffixes):
                    continue
                seen.add(path)
                yield path

    def has_files(self, extensions: Iterable[str] = (".php",)) -> bool:
        return next(self.files(extensions), None) is not None

    def relative(self, path: str | Path) -> str:
        try:
            return Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def is_ignored(self, relative: str) -> bool:
        """Whether a path crosses an ignored directory segment (tests, seeders, ...)."""
        parts = relative.replace("\\", "/").lower().split("/")[:-1]
        return any(part in self.ignored_segments for part in parts)

    def read(self, path: str | Path) -> str | None:
        """Read a file as text; unreadable files yield None."""
        try:
            return Path(path).read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.debug("Skipping %s: %s", path, e)
            return None

    def _start_dirs(self) -> list[Path]:
        starts: list[Path] = []
        for sub in self.paths or ["."]:
            candidate = (self.root / sub).resolve()
            if candidate.exists():
                starts.append(candidate)
        return starts

    def _walk(self, start: Path) -> Iterator[Path]:
        if start.is_file():
            if self._accept(start):
                yield start
            return
        for root, dirs, files in os.walk(start):
            # Prune skipped directories in-place
            dirs[:] = sorted(
                d
                for d in dirs
                if d not in _SKIP_DIRS and not self._pruned(Path(root) / d)
            )
            for name in sorted(files):
                path = Path(root) / name
                if self._accept(path):
                    yield path

    def _pruned(self, directory: Path) -> bool:
        relative = self.relative(directory)
        return relative in _SKIP_PATHS or self.filter.is_excluded(relative + "/")

    def _accept(self, path: Path) -> bool:
        relative = self.relative(path)
        if not self.filter.should_analyze(relative) or self.is_ignored(relative):
            return False
        try:
            if path.stat().st_size > _MAX_FILE_SIZE:
                logger.debug("Skipping %s: larger than %d bytes", relative, _MAX_FILE_SIZE)
                return False
        except OSError:
            return False
        return True
