"""
Outcome events emitted by copy workers, and the aggregator that turns
them into running totals and a final summary.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, NamedTuple, Tuple, Union


# Events
@dataclass(frozen=True)
class Copied:
    chunk_id: int
    file: str


@dataclass(frozen=True)
class Skipped:
    chunk_id: int
    file: str
    reason: str


@dataclass(frozen=True)
class WorkerFailed:
    """The worker hit an unrecoverable condition; the rest of its chunk is unprocessed."""

    chunk_id: int
    reason: str


@dataclass(frozen=True)
class WorkerDone:
    """The worker finished (or was cancelled between files)."""

    chunk_id: int
    cancelled: bool = False


OutcomeEvent = Union[Copied, Skipped, WorkerFailed]
WorkerEvent = Union[Copied, Skipped, WorkerFailed, WorkerDone]


class SkippedFile(NamedTuple):
    file: str
    reason: str


class ProgressSnapshot(NamedTuple):
    copied: int
    skipped: int
    total: int

    @property
    def processed(self) -> int:
        return self.copied + self.skipped


@dataclass(frozen=True)
class RunSummary:
    total_files: int
    copied_count: int
    skipped_count: int
    elapsed: float
    skipped_details: Tuple[SkippedFile, ...] = ()
    worker_failures: Tuple[Tuple[int, str], ...] = ()
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        """True when every file in the work set received an outcome."""
        return (
            not self.worker_failures
            and not self.cancelled
            and self.copied_count + self.skipped_count == self.total_files
        )

    @property
    def degraded(self) -> bool:
        return not self.complete or self.skipped_count > 0


# Aggregator
class ProgressAggregator:
    """
    Running totals for one copy run.

    ``record`` is called from the coordinator's event loop; ``snapshot`` may
    be called from any thread. Counters only ever grow.
    """

    def __init__(self, total_files: int = 0) -> None:
        self._lock = threading.Lock()
        self._total = total_files
        self._copied = 0
        self._skipped = 0
        self._skipped_details: List[SkippedFile] = []
        self._failures: List[Tuple[int, str]] = []
        self._cancelled = False

    def set_total(self, total_files: int) -> None:
        with self._lock:
            self._total = total_files

    def record(self, event: WorkerEvent) -> None:
        with self._lock:
            if isinstance(event, Copied):
                self._copied += 1
            elif isinstance(event, Skipped):
                self._skipped += 1
                self._skipped_details.append(SkippedFile(event.file, event.reason))
            elif isinstance(event, WorkerFailed):
                self._failures.append((event.chunk_id, event.reason))
            elif isinstance(event, WorkerDone):
                self._cancelled = self._cancelled or event.cancelled
            else:
                raise TypeError(f"Unknown worker event: {event!r}")

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(self._copied, self._skipped, self._total)

    def summarize(self, elapsed: float) -> RunSummary:
        with self._lock:
            return RunSummary(
                total_files=self._total,
                copied_count=self._copied,
                skipped_count=self._skipped,
                elapsed=elapsed,
                skipped_details=tuple(self._skipped_details),
                worker_failures=tuple(self._failures),
                cancelled=self._cancelled,
            )
