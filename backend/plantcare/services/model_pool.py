from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import torch
from torch import nn

from plantcare.core.exceptions import (
    DetectionError,
    ModelConfigurationError,
    ModelPoolUnavailableError,
)
from plantcare.models.classifier import inspect_classifier, load_classifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedModel:
    """One ensemble member. Stateless between requests."""

    path: Path
    module: nn.Module
    num_classes: int
    labels: Tuple[str, ...] = ()
    outputs_probabilities: bool = False
    device: str = "cpu"

    def predict(self, batch: torch.Tensor) -> torch.Tensor:
        """Return a (batch, num_classes) tensor of class probabilities."""
        with torch.no_grad():
            output = self.module(batch.to(self.device))
            if self.outputs_probabilities:
                return output
            return torch.softmax(output, dim=-1)


ModelLoader = Callable[[Path, str], LoadedModel]


def load_pool_member(path: Path, device: str = "cpu") -> LoadedModel:
    """Default loader: a checkpoint directory written by the training CLI."""
    artifacts = load_classifier(path, device=device)
    image_size = int(artifacts.config.get("image_size", 224))
    info = inspect_classifier(artifacts.model, image_size=image_size, device=device)
    return LoadedModel(
        path=Path(path),
        module=artifacts.model,
        num_classes=info.num_classes,
        labels=tuple(artifacts.idx_to_class),
        outputs_probabilities=bool(artifacts.config.get("outputs_probabilities", False)),
        device=device,
    )


class ModelPool:
    """Lazily loaded, read-only set of classifiers shared by all requests.

    The first caller of :meth:`get_models` loads every configured path; callers
    arriving during that load wait on the same lock and observe the same
    result. A failed initialisation is remembered and raised to every later
    caller instead of being retried.
    """

    def __init__(
        self,
        model_paths: Iterable[Path],
        loader: ModelLoader = load_pool_member,
        expected_classes: Optional[int] = None,
        device: str = "cpu",
    ) -> None:
        self.model_paths: List[Path] = [Path(p) for p in model_paths]
        self.expected_classes = expected_classes
        self.device = device
        self._loader = loader
        self._lock = asyncio.Lock()
        self._models: Optional[Tuple[LoadedModel, ...]] = None
        self._error: Optional[DetectionError] = None

    @property
    def ready(self) -> bool:
        return self._models is not None

    @property
    def failed(self) -> bool:
        return self._error is not None

    async def get_models(self) -> Tuple[LoadedModel, ...]:
        if self._models is not None:
            return self._models

        async with self._lock:
            if self._models is None and self._error is None:
                try:
                    self._models = await asyncio.to_thread(self._load_all)
                except DetectionError as exc:
                    logger.error("Model pool initialisation failed: %s", exc)
                    self._error = exc
            if self._error is not None:
                raise self._error
            return self._models

    def _load_all(self) -> Tuple[LoadedModel, ...]:
        loaded: List[LoadedModel] = []
        for path in self.model_paths:
            if not path.exists():
                logger.warning("Model path %s does not exist, skipping.", path)
                continue
            try:
                model = self._loader(path, self.device)
            except FileNotFoundError as exc:
                logger.warning("Incomplete model at %s, skipping: %s", path, exc)
                continue
            except Exception:
                logger.exception("Failed to load model from %s", path)
                continue

            if self.expected_classes is not None and model.num_classes != self.expected_classes:
                raise ModelConfigurationError(
                    f"Model at {path} predicts {model.num_classes} classes, "
                    f"expected {self.expected_classes}."
                )
            loaded.append(model)
            logger.info("Model loaded successfully from %s (%d classes)", path, model.num_classes)

        if not loaded:
            raise ModelPoolUnavailableError("No models found. Please train at least one model first.")
        return tuple(loaded)

    def describe(self) -> List[Dict[str, object]]:
        if self._models is None:
            return [{"path": str(p), "loaded": False} for p in self.model_paths]
        return [
            {
                "path": str(m.path),
                "loaded": True,
                "num_classes": m.num_classes,
                "labels": list(m.labels),
            }
            for m in self._models
        ]
