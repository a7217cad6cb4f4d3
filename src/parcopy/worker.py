"""
Copy worker: processes one chunk of the work set and reports a per-file
outcome for every file it touches.
"""

from __future__ import annotations

import logging
import ntpath
import os
import shutil
import stat
import threading
from typing import Callable, Optional, Sequence, Union

from .core import BATCH_SIZE, CopyTask
from .progress import Copied, Skipped, WorkerDone, WorkerEvent, WorkerFailed

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"
STREAM_CHUNK_SIZE = 1024 * 1024

_LONG_PREFIX = "\\\\?\\"
_UNC_PREFIX = "\\\\?\\UNC\\"

Emit = Callable[[WorkerEvent], None]
PathLike = Union[str, "os.PathLike[str]"]


# Path helpers
def long_path(path: PathLike, windows: bool = IS_WINDOWS) -> str:
    """
    Return an absolute path usable beyond the platform path-length limit.

    On Windows this is the ``\\\\?\\`` extended form (``\\\\?\\UNC\\`` for
    network shares); elsewhere the plain absolute path.
    """
    raw = os.fspath(path)
    if not windows:
        return os.path.abspath(raw)
    if raw.startswith(_LONG_PREFIX):
        return raw
    full = ntpath.abspath(raw)
    if full.startswith("\\\\"):
        return _UNC_PREFIX + full[2:]
    return _LONG_PREFIX + full


# Copy strategies
def make_writable(path: str) -> None:
    """Give the owner write access to an existing *path* so it can be overwritten."""
    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        return
    if not mode & stat.S_IWUSR:
        os.chmod(path, stat.S_IMODE(mode) | stat.S_IWUSR)


def copy_small(src: str, dst: str) -> None:
    shutil.copy2(src, dst)


def copy_large(src: str, dst: str) -> None:
    """Stream *src* into *dst* in fixed-size blocks, then carry over metadata."""
    with open(src, "rb") as fsrc, open(dst, "wb") as fdst:
        shutil.copyfileobj(fsrc, fdst, STREAM_CHUNK_SIZE)
    shutil.copystat(src, dst)


# Worker
class CopyWorker:
    """Copies one chunk in order; file-level failures become ``Skipped`` events."""

    def __init__(
        self,
        chunk_id: int,
        chunk: Sequence[str],
        task: CopyTask,
        emit: Emit,
        cancel_event: Optional[threading.Event] = None,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.chunk_id = chunk_id
        self.chunk = list(chunk)
        self.task = task
        self.emit = emit
        self.cancel_event = cancel_event
        self.batch_size = max(1, batch_size)

    def run(self) -> None:
        try:
            cancelled = self._process_chunk()
        except Exception as e:
            logger.error("Worker %d failed: %s", self.chunk_id, e)
            self.emit(WorkerFailed(self.chunk_id, f"{type(e).__name__}: {e}"))
            return
        self.emit(WorkerDone(self.chunk_id, cancelled=cancelled))

    def _process_chunk(self) -> bool:
        for start in range(0, len(self.chunk), self.batch_size):
            for rel in self.chunk[start : start + self.batch_size]:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    logger.info("Worker %d cancelled", self.chunk_id)
                    return True
                self.emit(self.copy_one(rel))
        return False

    def copy_one(self, rel: str) -> Union[Copied, Skipped]:
        src = long_path(self.task.source_root / rel)
        dst = long_path(self.task.destination_root / rel)

        try:
            os.makedirs(os.path.dirname(dst), exist_ok=True)
        except OSError as e:
            return self._skip(rel, f"Could not create directory: {e}")

        try:
            size = os.stat(src).st_size
        except OSError as e:
            return self._skip(rel, f"Could not stat file: {e}")

        try:
            make_writable(dst)
            if size > self.task.large_file_threshold:
                logger.debug("Streaming large file %s (%d bytes)", rel, size)
                copy_large(src, dst)
            else:
                copy_small(src, dst)
        except OSError as e:
            return self._skip(rel, f"Failed to copy file: {e}")

        return Copied(self.chunk_id, rel)

    def _skip(self, rel: str, reason: str) -> Skipped:
        logger.warning("Error copying %s: %s", rel, reason)
        return Skipped(self.chunk_id, rel, reason)
