"""
CLI entrypoint for parcopy package.
"""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

from . import __version__
from .core import (
    DEFAULT_IGNORE_NAMES,
    LARGE_FILE_THRESHOLD,
    CopyTask,
    ParcopyError,
    build_ignore_predicate,
    load_ignore_file,
)
from .progress import Copied, RunSummary, Skipped, WorkerEvent, WorkerFailed
from .runner import CopyRun


def _echo(msg: str, color: str = "", err: bool = False) -> None:
    text = f"[parcopy] {msg}"
    if color:
        text = color + text + Style.RESET_ALL
    tqdm.write(text, file=sys.stderr if err else sys.stdout)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="parcopy",
        description="Copy a directory tree in parallel, skipping ignored folders.",
    )
    p.add_argument("--source", type=Path, required=True, help="Directory to copy from")
    p.add_argument(
        "--destination", type=Path, required=True, help="Directory to copy into"
    )
    p.add_argument(
        "--ignore-file",
        type=Path,
        help="Path to a file with extra ignore patterns (one per line)",
    )
    p.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="NAME",
        help="Extra folder name to ignore anywhere in the tree (repeatable)",
    )
    p.add_argument(
        "--workers",
        type=int,
        help="Number of parallel copy workers (default: CPU count)",
    )
    p.add_argument(
        "--large-file-threshold",
        type=int,
        default=LARGE_FILE_THRESHOLD,
        help="Files above this many bytes are streamed (default 10 MiB)",
    )
    p.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def _build_task(ns: argparse.Namespace) -> CopyTask:
    spec = load_ignore_file(ns.ignore_file.resolve()) if ns.ignore_file else None
    predicate = build_ignore_predicate([*DEFAULT_IGNORE_NAMES, *ns.ignore], spec)
    kwargs = {}
    if ns.workers is not None:
        kwargs["worker_count"] = ns.workers
    return CopyTask(
        source_root=ns.source.resolve(),
        destination_root=ns.destination.resolve(),
        ignore_predicate=predicate,
        large_file_threshold=ns.large_file_threshold,
        **kwargs,
    )


def _report(summary: RunSummary) -> None:
    print(f"\nCopy completed in {summary.elapsed:.2f} seconds.")
    print(f"Total files: {summary.total_files}")
    print(f"Copied files: {summary.copied_count}")
    print(f"Skipped files: {summary.skipped_count}")
    for item in summary.skipped_details:
        _echo(f"- {item.file}: {item.reason}", Fore.YELLOW)
    for chunk_id, reason in summary.worker_failures:
        _echo(f"Worker {chunk_id} failed: {reason}", Fore.RED, err=True)
    if summary.cancelled:
        _echo("Cancelled: workers stopped between files.", Fore.YELLOW, err=True)
    if summary.complete:
        _echo("Done.", Fore.GREEN)
    else:
        _echo(
            f"Incomplete: {summary.copied_count + summary.skipped_count} of "
            f"{summary.total_files} files processed.",
            Fore.RED,
            err=True,
        )


def main(argv: Optional[List[str]] = None) -> None:
    colorama_init()
    cancel_event = threading.Event()
    try:
        ns = _parse_args(argv)
        if ns.verbose:
            logging.basicConfig(
                level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
            )

        try:
            task = _build_task(ns)
        except ParcopyError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"Copying from {task.source_root} to {task.destination_root}")
        bar = tqdm(
            total=0,
            desc="Overall Progress",
            unit="file",
            disable=ns.no_progress,
        )
        run = CopyRun(task, cancel_event=cancel_event)

        def on_event(event: WorkerEvent) -> None:
            snap = run.aggregator.snapshot()
            if bar.total != snap.total:
                bar.total = snap.total
            if isinstance(event, (Copied, Skipped)):
                bar.update(1)
            if isinstance(event, Skipped):
                _echo(f"Error copying {event.file}: {event.reason}", Fore.YELLOW, err=True)
            elif isinstance(event, WorkerFailed):
                _echo(f"Worker error: {event.reason}", Fore.RED, err=True)

        run.on_event = on_event
        try:
            summary = run.run()
        except ParcopyError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        finally:
            bar.close()

        _report(summary)
        if summary.worker_failures or summary.cancelled:
            sys.exit(1)

    except KeyboardInterrupt:
        cancel_event.set()
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
