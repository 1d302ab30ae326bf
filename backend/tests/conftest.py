from pathlib import Path
from typing import List

import pytest

from stubs import png_bytes


@pytest.fixture
def leaf_png() -> bytes:
    return png_bytes()


@pytest.fixture
def leaf_path(tmp_path: Path, leaf_png: bytes) -> Path:
    path = tmp_path / "leaf.png"
    path.write_bytes(leaf_png)
    return path


@pytest.fixture
def agreeing_rows() -> List[List[float]]:
    return [[0.05, 0.1, 0.8, 0.05]] * 5
