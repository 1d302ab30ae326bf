import struct
import zlib
from io import BytesIO
from pathlib import Path
from typing import Sequence

import numpy as np
import torch
from PIL import Image
from torch import nn

from plantcare.services.model_pool import LoadedModel


class ScriptedModule(nn.Module):
    """Returns the scripted probability rows in turn, one row per call."""

    def __init__(self, rows: Sequence[Sequence[float]]) -> None:
        super().__init__()
        self.rows = [list(r) for r in rows]
        self.calls = 0

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        row = self.rows[self.calls % len(self.rows)]
        self.calls += 1
        return torch.tensor([row] * x.shape[0], dtype=torch.float64)


class FailingModule(nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        raise RuntimeError("backend exploded")


def make_model(rows: Sequence[Sequence[float]], path: str = "stub") -> LoadedModel:
    return LoadedModel(
        path=Path(path),
        module=ScriptedModule(rows),
        num_classes=len(rows[0]),
        outputs_probabilities=True,
    )


def png_bytes(size=(64, 48), color=(40, 160, 60), mode: str = "RGB") -> bytes:
    if mode == "L":
        img = Image.new("L", size, color=120)
    else:
        arr = np.zeros((size[1], size[0], 3), dtype=np.uint8)
        arr[..., 0], arr[..., 1], arr[..., 2] = color
        arr[:, : size[0] // 2, 1] = 220  # left half brighter so a flip is observable
        img = Image.fromarray(arr)
    with BytesIO() as buf:
        img.save(buf, format="PNG")
        return buf.getvalue()


def _png_chunk(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))


def oversized_png_bytes(width: int = 20000, height: int = 20000) -> bytes:
    """PNG whose header declares a huge canvas; Pillow refuses it before decoding pixels."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", header) + _png_chunk(b"IEND", b"")
