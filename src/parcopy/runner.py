"""
Run coordinator: enumerate, partition, fan out to copy workers, collect
their events and produce the final summary.
"""

from __future__ import annotations

import enum
import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .core import (
    CopyTask,
    IgnorePredicate,
    InvalidRootError,
    ParcopyError,
    enumerate_files,
    partition,
)
from .progress import (
    ProgressAggregator,
    RunSummary,
    WorkerDone,
    WorkerEvent,
    WorkerFailed,
)
from .worker import CopyWorker

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1

EventCallback = Callable[[WorkerEvent], None]


class RunState(str, enum.Enum):
    IDLE = "idle"
    COUNTING = "counting"
    COPYING = "copying"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class CopyRun:
    """
    One execution of a :class:`CopyTask`.

    ``aggregator`` can be polled from another thread while :meth:`run` is
    in progress; ``on_event`` is called from the coordinator thread for
    every event after it has been counted.
    """

    def __init__(
        self,
        task: CopyTask,
        on_event: Optional[EventCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.task = task
        self.on_event = on_event
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.aggregator = ProgressAggregator()
        self.state = RunState.IDLE
        self.files: List[str] = []
        self.chunks: List[List[str]] = []
        self.summary: Optional[RunSummary] = None

    def run(self) -> RunSummary:
        if self.state is not RunState.IDLE:
            raise ParcopyError(f"Run already {self.state.value}")
        started = time.monotonic()

        self.state = RunState.COUNTING
        try:
            predicate = self._effective_predicate()
        except InvalidRootError:
            self.state = RunState.FAILED
            raise
        logger.info(
            "Copying from %s to %s", self.task.source_root, self.task.destination_root
        )
        self.files = enumerate_files(self.task.source_root, predicate)
        self.aggregator.set_total(len(self.files))
        self.chunks = partition(self.files, self.task.worker_count)

        self.state = RunState.COPYING
        if self.chunks:
            self._copy_chunks()

        self.state = RunState.FINALIZING
        self.summary = self.aggregator.summarize(time.monotonic() - started)
        self.state = RunState.DONE
        logger.info(
            "Copy finished in %.2fs: %d total, %d copied, %d skipped",
            self.summary.elapsed,
            self.summary.total_files,
            self.summary.copied_count,
            self.summary.skipped_count,
        )
        return self.summary

    def _effective_predicate(self) -> IgnorePredicate:
        source = self.task.source_root
        if not source.exists():
            raise InvalidRootError(f"Source directory '{source}' does not exist")
        if not source.is_dir():
            raise InvalidRootError(f"Source path '{source}' is not a directory")
        try:
            with os.scandir(source):
                pass
        except OSError as e:
            raise InvalidRootError(f"Could not read source directory '{source}': {e}")

        try:
            source = source.resolve()
            destination = self.task.destination_root.resolve()
        except (OSError, RuntimeError) as e:
            raise InvalidRootError(f"Could not resolve paths: {e}")
        if destination == source:
            raise InvalidRootError("Source and destination are the same directory")
        if _is_within(source, destination):
            # every write would land back inside the tree being read
            raise InvalidRootError(
                f"Source '{source}' lies inside destination '{destination}'"
            )

        base = self.task.ignore_predicate
        if not _is_within(destination, source):
            return base

        # keep the copy from feeding on its own output
        nested = destination.relative_to(source).as_posix()

        def predicate(relative_path: str, is_directory: bool) -> bool:
            if is_directory and relative_path == nested:
                return True
            return base(relative_path, is_directory)

        return predicate

    def _copy_chunks(self) -> None:
        events: "queue.Queue[WorkerEvent]" = queue.Queue()
        threads: Dict[int, threading.Thread] = {}
        for chunk_id, chunk in enumerate(self.chunks):
            worker = CopyWorker(chunk_id, chunk, self.task, events.put, self.cancel_event)
            thread = threading.Thread(
                target=worker.run, name=f"parcopy-worker-{chunk_id}"
            )
            threads[chunk_id] = thread
            thread.start()
        logger.debug("Started %d workers for %d files", len(threads), len(self.files))

        pending = set(threads)
        while pending:
            try:
                try:
                    event = events.get(timeout=POLL_INTERVAL)
                except queue.Empty:
                    self._reap_silent_workers(threads, pending, events)
                    continue
                if isinstance(event, (WorkerDone, WorkerFailed)):
                    pending.discard(event.chunk_id)
                self._dispatch(event)
            except KeyboardInterrupt:
                # workers stop between files; keep draining until each one reports
                logger.warning("Interrupted, waiting for workers to finish their current file")
                self.cancel_event.set()

        for thread in threads.values():
            thread.join()

    def _reap_silent_workers(
        self,
        threads: Dict[int, threading.Thread],
        pending: set,
        events: "queue.Queue[WorkerEvent]",
    ) -> None:
        # liveness must be checked before emptiness: a dead thread's puts are all queued
        for chunk_id in sorted(pending):
            if not threads[chunk_id].is_alive() and events.empty():
                self._dispatch(
                    WorkerFailed(chunk_id, "Worker exited without reporting completion")
                )
                pending.discard(chunk_id)

    def _dispatch(self, event: WorkerEvent) -> None:
        self.aggregator.record(event)
        if isinstance(event, WorkerFailed):
            logger.error("Worker %d stopped early: %s", event.chunk_id, event.reason)
        if self.on_event is not None:
            self.on_event(event)


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def run_copy(
    task: CopyTask,
    on_event: Optional[EventCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunSummary:
    """Copy *task.source_root* into *task.destination_root* and return the summary."""
    return CopyRun(task, on_event=on_event, cancel_event=cancel_event).run()
