from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Callable, List, Tuple, Union

import numpy as np
import torch
from PIL import Image, UnidentifiedImageError

from plantcare.core.exceptions import ImageDecodeError, ImageNotFoundError

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes]


class ImagePreprocessor:
    """Turn an uploaded leaf photo into the tensor variants scored by the ensemble.

    Every variant is a float32 tensor of shape (1, 3, size, size) with values in
    [0, 1]. The base tensor always comes first and the augmentations follow in
    a fixed order: horizontal flip, brighten, darken, contrast.
    """

    def __init__(
        self,
        image_size: int = 224,
        brightness_delta: float = 0.1,
        darken_factor: float = 0.9,
        contrast_factor: float = 1.1,
    ) -> None:
        self.image_size = int(image_size)
        self.brightness_delta = float(brightness_delta)
        self.darken_factor = float(darken_factor)
        self.contrast_factor = float(contrast_factor)

    @property
    def augmentations(self) -> List[Tuple[str, Callable[[torch.Tensor], torch.Tensor]]]:
        return [
            ("flip", self.flip),
            ("brighten", self.brighten),
            ("darken", self.darken),
            ("contrast", self.contrast),
        ]

    def load_image(self, source: ImageSource) -> Image.Image:
        """Decode raw bytes or a file on disk into an RGB PIL image."""
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        else:
            path = Path(source)
            if not path.is_file():
                raise ImageNotFoundError(f"Image file not found: {path}")
            data = path.read_bytes()

        try:
            with BytesIO(data) as buf:
                img = Image.open(buf)
                return img.convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise ImageDecodeError(f"Could not decode image: {exc}") from exc

    def to_tensor(self, image: Image.Image) -> torch.Tensor:
        img = image.resize((self.image_size, self.image_size))
        arr = np.asarray(img, dtype=np.float32) / 255.0  # (H, W, C)
        if arr.ndim == 2:  # grayscale
            arr = np.stack([arr] * 3, axis=-1)
        arr = np.transpose(arr, (2, 0, 1))  # (C, H, W)
        return torch.from_numpy(np.ascontiguousarray(arr)).unsqueeze(0)

    def flip(self, tensor: torch.Tensor) -> torch.Tensor:
        return torch.flip(tensor, dims=[-1])

    def brighten(self, tensor: torch.Tensor) -> torch.Tensor:
        return (tensor + self.brightness_delta).clamp(0.0, 1.0)

    def darken(self, tensor: torch.Tensor) -> torch.Tensor:
        return (tensor * self.darken_factor).clamp(0.0, 1.0)

    def contrast(self, tensor: torch.Tensor) -> torch.Tensor:
        mean = tensor.mean()
        return ((tensor - mean) * self.contrast_factor + mean).clamp(0.0, 1.0)

    def augment(self, base: torch.Tensor) -> List[torch.Tensor]:
        """Derive the augmented variants from the base tensor.

        A step that fails contributes the unaugmented base tensor instead, so
        the number of variants never shrinks.
        """
        variants: List[torch.Tensor] = []
        for name, step in self.augmentations:
            try:
                variants.append(step(base))
            except Exception as exc:
                logger.warning("Augmentation '%s' failed, using the base tensor instead: %s", name, exc)
                variants.append(base)
        return variants

    def preprocess(self, source: ImageSource) -> List[torch.Tensor]:
        image = self.load_image(source)
        base = self.to_tensor(image)
        return [base, *self.augment(base)]
