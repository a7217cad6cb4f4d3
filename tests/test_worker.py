"""Tests for the copy worker and its path helpers."""

import os
import stat
import threading
from pathlib import Path

import pytest

from parcopy import worker as worker_mod
from parcopy.core import CopyTask, InvalidTaskError
from parcopy.progress import Copied, Skipped, WorkerDone, WorkerFailed
from parcopy.worker import CopyWorker, long_path


def _run(task, chunk, **kwargs):
    events = []
    CopyWorker(0, chunk, task, events.append, **kwargs).run()
    return events


class TestLongPath:
    def test_posix_is_plain_absolute(self, tmp_path: Path):
        assert long_path(tmp_path / "a" / ".." / "b", windows=False) == str(tmp_path / "b")

    def test_windows_drive_path(self):
        assert long_path("C:\\data\\file.txt", windows=True) == "\\\\?\\C:\\data\\file.txt"

    def test_windows_unc_path(self):
        assert (
            long_path("\\\\server\\share\\f.txt", windows=True)
            == "\\\\?\\UNC\\server\\share\\f.txt"
        )

    def test_windows_already_extended(self):
        raw = "\\\\?\\C:\\x"
        assert long_path(raw, windows=True) == raw


class TestCopyWorker:
    def test_copies_in_order_then_done(self, make_tree, dest):
        root = make_tree({"a.txt": "a", "sub/deeper/b.txt": "b", "c.txt": "c"})
        task = CopyTask(root, dest, worker_count=1)
        events = _run(task, ["a.txt", "sub/deeper/b.txt", "c.txt"])

        assert events == [
            Copied(0, "a.txt"),
            Copied(0, "sub/deeper/b.txt"),
            Copied(0, "c.txt"),
            WorkerDone(0),
        ]
        assert (dest / "sub" / "deeper" / "b.txt").read_text() == "b"

    def test_missing_source_is_skipped_not_fatal(self, make_tree, dest):
        root = make_tree({"a.txt": "a", "c.txt": "c"})
        task = CopyTask(root, dest, worker_count=1)
        events = _run(task, ["a.txt", "gone.txt", "c.txt"])

        assert events[0] == Copied(0, "a.txt")
        assert isinstance(events[1], Skipped)
        assert events[1].file == "gone.txt"
        assert "stat" in events[1].reason
        assert events[2:] == [Copied(0, "c.txt"), WorkerDone(0)]

    def test_copy_error_is_skipped(self, make_tree, dest, monkeypatch):
        root = make_tree({"locked.txt": "x", "ok.txt": "y"})
        real_copy = worker_mod.copy_small

        def fake_copy(src, dst):
            if src.endswith("locked.txt"):
                raise PermissionError(13, "Permission denied", src)
            real_copy(src, dst)

        monkeypatch.setattr(worker_mod, "copy_small", fake_copy)
        events = _run(CopyTask(root, dest, worker_count=1), ["locked.txt", "ok.txt"])

        assert isinstance(events[0], Skipped)
        assert "Permission denied" in events[0].reason
        assert events[1:] == [Copied(0, "ok.txt"), WorkerDone(0)]

    def test_mkdir_failure_is_skipped(self, make_tree, dest):
        root = make_tree({"sub/a.txt": "a"})
        dest.mkdir()
        (dest / "sub").write_text("a file where a directory should be")
        events = _run(CopyTask(root, dest, worker_count=1), ["sub/a.txt"])

        assert isinstance(events[0], Skipped)
        assert "directory" in events[0].reason
        assert events[-1] == WorkerDone(0)

    def test_strategy_by_size(self, make_tree, dest, monkeypatch):
        root = make_tree({"small.bin": b"x" * 10, "big.bin": b"y" * 2048})
        used = []
        monkeypatch.setattr(
            worker_mod, "copy_small", lambda s, d: used.append(("small", Path(s).name))
        )
        monkeypatch.setattr(
            worker_mod, "copy_large", lambda s, d: used.append(("large", Path(d).name))
        )
        task = CopyTask(root, dest, worker_count=1, large_file_threshold=1024)
        _run(task, ["small.bin", "big.bin"])
        assert used == [("small", "small.bin"), ("large", "big.bin")]

    def test_large_copy_is_byte_identical(self, make_tree, dest):
        payload = bytes(range(256)) * 5000
        root = make_tree({"big.bin": payload, "tiny.bin": payload[:1]})
        task = CopyTask(root, dest, worker_count=1, large_file_threshold=1)
        _run(task, ["big.bin", "tiny.bin"])
        assert (dest / "big.bin").read_bytes() == payload
        assert (dest / "tiny.bin").read_bytes() == payload[:1]

    def test_batches_do_not_change_events(self, make_tree, dest):
        files = {f"f{i:02d}.txt": str(i) for i in range(7)}
        root = make_tree(files)
        task = CopyTask(root, dest, worker_count=1)
        events = _run(task, sorted(files), batch_size=3)
        assert [e.file for e in events[:-1]] == sorted(files)
        assert events[-1] == WorkerDone(0)

    def test_unexpected_error_is_fatal(self, make_tree, dest, monkeypatch):
        root = make_tree({"a.txt": "a", "b.txt": "b", "c.txt": "c"})

        def boom(src, dst):
            if src.endswith("b.txt"):
                raise RuntimeError("channel closed")
            Path(dst).write_text("ok")

        monkeypatch.setattr(worker_mod, "copy_small", boom)
        events = _run(CopyTask(root, dest, worker_count=1), ["a.txt", "b.txt", "c.txt"])

        assert events[0] == Copied(0, "a.txt")
        assert isinstance(events[1], WorkerFailed)
        assert "channel closed" in events[1].reason
        assert len(events) == 2
        assert not (dest / "c.txt").exists()

    def test_cancel_between_files(self, make_tree, dest):
        root = make_tree({"a.txt": "a", "b.txt": "b"})
        cancel = threading.Event()
        events = []

        def emit(event):
            events.append(event)
            cancel.set()

        CopyWorker(3, ["a.txt", "b.txt"], CopyTask(root, dest, worker_count=1), emit, cancel).run()
        assert events == [Copied(3, "a.txt"), WorkerDone(3, cancelled=True)]
        assert not (dest / "b.txt").exists()

    def test_read_only_destination_is_overwritten(self, make_tree, dest, monkeypatch):
        root = make_tree({"ro.txt": "v1"})
        task = CopyTask(root, dest, worker_count=1)
        dest.mkdir()
        (dest / "ro.txt").write_text("old")
        os.chmod(dest / "ro.txt", 0o444)
        real_copy = worker_mod.copy_small
        modes = []

        def copy(src, dst):
            modes.append(os.stat(dst).st_mode)
            real_copy(src, dst)

        monkeypatch.setattr(worker_mod, "copy_small", copy)
        events = _run(task, ["ro.txt"])

        assert events == [Copied(0, "ro.txt"), WorkerDone(0)]
        assert modes[0] & stat.S_IWUSR
        assert (dest / "ro.txt").read_text() == "v1"

    @pytest.mark.skipif(
        not hasattr(os, "geteuid") or os.geteuid() == 0,
        reason="root bypasses file permissions",
    )
    def test_read_only_source_copied_twice(self, make_tree, dest):
        root = make_tree({"ro.txt": "v1", "big.bin": b"z" * 4096})
        os.chmod(root / "ro.txt", 0o444)
        os.chmod(root / "big.bin", 0o444)
        task = CopyTask(root, dest, worker_count=1, large_file_threshold=1024)

        for _ in range(2):
            events = _run(task, ["big.bin", "ro.txt"])
            assert events == [Copied(0, "big.bin"), Copied(0, "ro.txt"), WorkerDone(0)]
        assert (dest / "ro.txt").read_text() == "v1"


class TestCopyTask:
    def test_defaults(self, tmp_path):
        task = CopyTask(tmp_path / "s", tmp_path / "d")
        assert task.worker_count >= 1
        assert task.large_file_threshold == 10 * 1024 * 1024
        assert not task.ignore_predicate("anything", False)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"source_root": "", "destination_root": "/d"},
            {"source_root": "/s", "destination_root": ""},
            {"source_root": Path(""), "destination_root": "/d"},
            {"source_root": "/s", "destination_root": Path("")},
            {"source_root": "/s", "destination_root": "/d", "worker_count": 0},
            {"source_root": "/s", "destination_root": "/d", "large_file_threshold": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidTaskError):
            CopyTask(**kwargs)
