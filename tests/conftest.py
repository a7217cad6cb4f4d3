from pathlib import Path
from typing import Callable, Dict, Union

import pytest

TreeSpec = Dict[str, Union[str, bytes]]


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[TreeSpec], Path]:
    """Build a source tree from ``{"rel/path": content}`` under tmp_path/src."""

    def _make(files: TreeSpec, root_name: str = "src") -> Path:
        root = tmp_path / root_name
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def dest(tmp_path: Path) -> Path:
    return tmp_path / "dst"
