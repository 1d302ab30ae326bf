from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import torch
from torch import nn
from torchvision import models

logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "classifier.pt"
CLASSES_NAME = "classes.json"
SUPPORTED_ARCHITECTURES = ("mobilenet_v3_small", "resnet18", "efficientnet_b0")


@dataclass(frozen=True)
class ClassifierArtifacts:
    """Container returned by the loader for convenient access."""

    model: nn.Module
    idx_to_class: List[str]
    config: Dict[str, object]


@dataclass(frozen=True)
class ClassifierInfo:
    input_shape: Tuple[int, ...]
    output_shape: Tuple[int, ...]
    num_classes: int
    num_parameters: int


def _replace_head(model: nn.Module, arch: str, num_classes: int, dropout: float) -> nn.Module:
    if arch == "resnet18":
        in_features = model.fc.in_features
        model.fc = nn.Sequential(nn.Dropout(dropout), nn.Linear(in_features, num_classes))
    else:
        # mobilenet/efficientnet keep their head as a Sequential ending in Linear.
        last = model.classifier[-1]
        model.classifier[-1] = nn.Linear(last.in_features, num_classes)
        for layer in model.classifier:
            if isinstance(layer, nn.Dropout):
                layer.p = dropout
    return model


def create_classifier(
    num_classes: int,
    arch: str = "mobilenet_v3_small",
    pretrained: bool = False,
    dropout: float = 0.2,
) -> nn.Module:
    """Build a torchvision CNN backbone with a leaf-disease classification head."""
    if arch not in SUPPORTED_ARCHITECTURES:
        raise ValueError(f"Unsupported architecture '{arch}'. Choose one of {SUPPORTED_ARCHITECTURES}.")

    weights = "DEFAULT" if pretrained else None
    model = getattr(models, arch)(weights=weights)
    return _replace_head(model, arch, num_classes, dropout)


def save_classifier_checkpoint(
    output_dir: Path,
    model: nn.Module,
    class_to_idx: Dict[str, int],
    config: Dict[str, object],
) -> None:
    """Persist model weights plus metadata needed for inference."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    torch.save({"model_state": model.state_dict(), "config": config}, output_dir / CHECKPOINT_NAME)
    (output_dir / CLASSES_NAME).write_text(json.dumps(class_to_idx, indent=2, sort_keys=True))


def load_classifier(
    model_dir: Path,
    device: torch.device | str = "cpu",
) -> ClassifierArtifacts:
    """Load a trained classifier checkpoint from disk for inference."""
    model_dir = Path(model_dir)

    ckpt_path = model_dir / CHECKPOINT_NAME
    classes_path = model_dir / CLASSES_NAME
    if not (ckpt_path.exists() and classes_path.exists()):
        raise FileNotFoundError(
            f"Missing classifier checkpoint files in {model_dir}. "
            f"Expected {CHECKPOINT_NAME} and {CLASSES_NAME}."
        )

    class_to_idx = json.loads(classes_path.read_text())
    idx_to_class = [""] * len(class_to_idx)
    for label, idx in class_to_idx.items():
        idx_to_class[int(idx)] = label

    ckpt = torch.load(ckpt_path, map_location=device)
    config = ckpt.get("config", {})

    model = create_classifier(
        num_classes=len(idx_to_class),
        arch=str(config.get("arch", "mobilenet_v3_small")),
        pretrained=False,  # weights come from the checkpoint
        dropout=float(config.get("dropout", 0.2)),
    )
    model.load_state_dict(ckpt["model_state"])
    model.to(device)
    model.eval()

    return ClassifierArtifacts(model=model, idx_to_class=idx_to_class, config=config)


def inspect_classifier(
    model: nn.Module,
    image_size: int = 224,
    device: torch.device | str = "cpu",
) -> ClassifierInfo:
    """Run a blank image through the model to discover its output width."""
    dummy = torch.zeros((1, 3, image_size, image_size), device=device)
    with torch.no_grad():
        output = model(dummy)

    info = ClassifierInfo(
        input_shape=tuple(dummy.shape),
        output_shape=tuple(output.shape),
        num_classes=int(output.shape[-1]),
        num_parameters=sum(p.numel() for p in model.parameters()),
    )
    logger.info(
        "Classifier inspected: input=%s output=%s parameters=%d",
        info.input_shape,
        info.output_shape,
        info.num_parameters,
    )
    return info
