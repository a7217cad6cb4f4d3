"""
parcopy - copy a directory tree with a pool of parallel workers.

The tree is enumerated once (skipping ignored folders such as
``node_modules`` and ``.git``), split into one contiguous chunk per
worker, and copied concurrently. Every file produces an outcome event
that feeds a live progress aggregator and, at the end, a run summary.
"""

import logging

__version__ = "0.1.0"

from .core import (  # noqa: E402
    DEFAULT_IGNORE_NAMES,
    LARGE_FILE_THRESHOLD,
    ConfigFileError,
    CopyTask,
    InvalidRootError,
    InvalidTaskError,
    ParcopyError,
    build_ignore_predicate,
    enumerate_files,
    load_ignore_file,
    partition,
)
from .progress import (  # noqa: E402
    Copied,
    ProgressAggregator,
    ProgressSnapshot,
    RunSummary,
    Skipped,
    WorkerDone,
    WorkerFailed,
)
from .runner import CopyRun, RunState, run_copy  # noqa: E402

logging.getLogger(__name__).addHandler(logging.NullHandler())
