"""
Core logic for parcopy package: task description, ignore filtering,
tree enumeration and work partitioning.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

import pathspec

logger = logging.getLogger(__name__)

# Exceptions
class ParcopyError(Exception):
    """Base exception for parcopy errors."""


class InvalidRootError(ParcopyError):
    """Raised when the source or destination root cannot be used."""


class InvalidTaskError(ParcopyError):
    """Raised when a CopyTask is built from unusable settings."""


class ConfigFileError(ParcopyError):
    """Raised when an ignore file cannot be read."""


# Defaults
DEFAULT_IGNORE_NAMES: List[str] = [
    "node_modules",
    ".pnpm-store",
    "$RECYCLE.BIN",
    "System Volume Information",
    ".next",
    ".git",
]

LARGE_FILE_THRESHOLD = 10 * 1024 * 1024  # 10 MiB
BATCH_SIZE = 100

IgnorePredicate = Callable[[str, bool], bool]


# Ignore predicate
def load_ignore_file(ignore_path: Path) -> "pathspec.PathSpec":
    """Read newline-separated patterns from *ignore_path* and compile a spec."""
    if not ignore_path.exists():
        raise ConfigFileError(f"Ignore file '{ignore_path}' does not exist")
    if not ignore_path.is_file():
        raise ConfigFileError(f"'{ignore_path}' is not a file")
    try:
        with ignore_path.open("r", encoding="utf-8") as fh:
            lines = [
                ln.strip()
                for ln in fh
                if ln.strip() and not ln.lstrip().startswith("#")
            ]
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Could not read ignore file '{ignore_path}': {e}")
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def build_ignore_predicate(
    names: Iterable[str] = DEFAULT_IGNORE_NAMES,
    spec: Optional["pathspec.PathSpec"] = None,
) -> IgnorePredicate:
    """
    Compile ignore *names* (and an optional ignore-file *spec*) into a
    predicate ``(relative_path, is_directory) -> bool``.

    • A path with any component equal to an ignore name is ignored.
    • A file whose relative path starts with an ignore name is ignored.
    • Directories are matched against *spec* with a trailing ``/`` so
      folder patterns only hit folders.
    """
    name_set = frozenset(names)
    prefixes = tuple(sorted(name_set))

    def should_ignore(relative_path: str, is_directory: bool) -> bool:
        rel = relative_path.replace("\\", "/").strip("/")
        if not rel:
            return False
        if any(part in name_set for part in rel.split("/")):
            return True
        if not is_directory and rel.startswith(prefixes):
            return True
        if spec is not None:
            return spec.match_file(rel + "/" if is_directory else rel)
        return False

    return should_ignore


# Task
def _default_worker_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class CopyTask:
    """Immutable description of one copy run."""

    source_root: Path
    destination_root: Path
    ignore_predicate: IgnorePredicate = field(
        default_factory=build_ignore_predicate, compare=False
    )
    worker_count: int = field(default_factory=_default_worker_count)
    large_file_threshold: int = LARGE_FILE_THRESHOLD

    def __post_init__(self) -> None:
        roots = (os.fspath(self.source_root), os.fspath(self.destination_root))
        # Path("") renders as "."
        if any(root in ("", ".") for root in roots):
            raise InvalidTaskError("Both source and destination are required")
        if self.worker_count < 1:
            raise InvalidTaskError(
                f"Worker count must be positive, got {self.worker_count}"
            )
        if self.large_file_threshold < 0:
            raise InvalidTaskError(
                f"Large file threshold must not be negative, got {self.large_file_threshold}"
            )
        object.__setattr__(self, "source_root", Path(self.source_root).absolute())
        object.__setattr__(self, "destination_root", Path(self.destination_root).absolute())


# Tree enumeration
def enumerate_files(source_root: Path, ignore_predicate: IgnorePredicate) -> List[str]:
    """
    Walk *source_root* depth-first and return the relative POSIX paths of
    every file the predicate keeps.

    Entries are visited in name order so a static tree always yields the
    same sequence. Directories that cannot be opened count as empty.
    Symlinked directories are neither descended nor listed.
    """
    result: List[str] = []

    def _walk(directory: Path, base: str) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Could not read directory '%s': %s", directory, e)
            return

        for entry in entries:
            rel = f"{base}/{entry.name}" if base else entry.name
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_link = entry.is_symlink()
            except OSError as e:
                logger.warning("Could not inspect '%s': %s", entry.path, e)
                continue

            if is_dir:
                if not ignore_predicate(rel, True):
                    _walk(Path(entry.path), rel)
                continue

            if is_link and _points_to_directory(entry):
                logger.debug("Not following symlinked directory '%s'", rel)
                continue

            if not ignore_predicate(rel, False):
                result.append(rel)

    _walk(Path(source_root), "")
    return result


def _points_to_directory(entry: "os.DirEntry[str]") -> bool:
    try:
        return entry.is_dir(follow_symlinks=True)
    except OSError:
        return False


# Work partitioning
def partition(files: Sequence[str], worker_count: int) -> List[List[str]]:
    """Split *files* into at most *worker_count* contiguous, non-empty chunks."""
    if worker_count < 1:
        raise InvalidTaskError(f"Worker count must be positive, got {worker_count}")
    if not files:
        return []
    chunk_size = math.ceil(len(files) / worker_count)
    return [list(files[i : i + chunk_size]) for i in range(0, len(files), chunk_size)]
