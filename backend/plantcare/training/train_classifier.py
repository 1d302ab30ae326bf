from __future__ import annotations

import argparse
import json
import random
from pathlib import Path
from typing import Dict, List, Tuple

import matplotlib.pyplot as plt
import numpy as np
import torch
from torch import nn
from torch.utils.data import DataLoader, Subset
from torchvision import datasets, transforms

from plantcare.models.classifier import (
    SUPPORTED_ARCHITECTURES,
    create_classifier,
    save_classifier_checkpoint,
)


def set_seed(seed: int) -> None:
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)


def split_indices(num_samples: int, val_split: float, seed: int) -> Tuple[List[int], List[int]]:
    """Shuffle sample indices and cut them into train/validation parts."""
    indices = list(range(num_samples))
    random.Random(seed).shuffle(indices)
    cut = int(num_samples * (1.0 - val_split))
    return indices[:cut], indices[cut:]


def build_dataloaders(
    data_root: Path,
    image_size: int,
    batch_size: int,
    num_workers: int,
    val_split: float,
    seed: int,
) -> Tuple[Dict[str, DataLoader], Dict[str, int]]:
    """Create train/val dataloaders from one folder per class.

    Inference feeds the model plain [0, 1] pixels, so no mean/std normalisation
    is applied here either.
    """
    data_root = Path(data_root)
    if not data_root.is_dir():
        raise FileNotFoundError(f"Expected a directory with one sub-folder per class at {data_root}")

    train_tfms = transforms.Compose(
        [
            transforms.Resize((image_size, image_size)),
            transforms.RandomHorizontalFlip(),
            transforms.ColorJitter(brightness=0.1, contrast=0.1),
            transforms.ToTensor(),
        ]
    )
    eval_tfms = transforms.Compose(
        [
            transforms.Resize((image_size, image_size)),
            transforms.ToTensor(),
        ]
    )

    train_view = datasets.ImageFolder(data_root, transform=train_tfms)
    eval_view = datasets.ImageFolder(data_root, transform=eval_tfms)
    if len(train_view) < 2:
        raise ValueError(f"Not enough images under {data_root} to build a train/validation split.")

    train_idx, val_idx = split_indices(len(train_view), val_split, seed)
    loaders = {
        "train": DataLoader(Subset(train_view, train_idx), batch_size=batch_size, shuffle=True, num_workers=num_workers),
        "val": DataLoader(Subset(eval_view, val_idx), batch_size=batch_size, shuffle=False, num_workers=num_workers),
    }
    return loaders, train_view.class_to_idx


def run_epoch(
    model: nn.Module,
    loader: DataLoader,
    criterion: nn.Module,
    device: torch.device,
    optimiser: torch.optim.Optimizer | None = None,
) -> Tuple[float, float]:
    """One pass over a loader; trains when an optimiser is given."""
    training = optimiser is not None
    model.train(training)
    total_loss = 0.0
    correct = 0
    seen = 0

    with torch.set_grad_enabled(training):
        for images, labels in loader:
            images = images.to(device)
            labels = labels.to(device)

            logits = model(images)
            loss = criterion(logits, labels)
            if training:
                optimiser.zero_grad()
                loss.backward()
                optimiser.step()

            total_loss += loss.item() * labels.size(0)
            correct += (logits.argmax(dim=1) == labels).sum().item()
            seen += labels.size(0)

    return total_loss / max(1, seen), correct / max(1, seen)


def plot_history(history: Dict[str, List[float]], output_dir: Path) -> None:
    epochs_axis = range(1, len(history["train_acc"]) + 1)
    for metric, ylabel in (("acc", "Accuracy"), ("loss", "Loss")):
        plt.figure()
        plt.plot(epochs_axis, history[f"train_{metric}"], label="train")
        plt.plot(epochs_axis, history[f"val_{metric}"], label="validation")
        plt.xlabel("Epoch")
        plt.ylabel(ylabel)
        plt.title(f"Leaf disease classifier {ylabel.lower()}")
        plt.legend()
        plt.tight_layout()
        plt.savefig(output_dir / f"{metric}_curve.png")
        plt.close()


def train(
    data_root: Path,
    output_dir: Path,
    arch: str,
    epochs: int,
    batch_size: int,
    image_size: int,
    lr: float,
    dropout: float,
    val_split: float,
    num_workers: int,
    pretrained: bool,
    device: str,
    seed: int,
) -> Dict[str, object]:
    set_seed(seed)
    device_t = torch.device(device)

    loaders, class_to_idx = build_dataloaders(
        data_root=data_root,
        image_size=image_size,
        batch_size=batch_size,
        num_workers=num_workers,
        val_split=val_split,
        seed=seed,
    )

    model = create_classifier(
        num_classes=len(class_to_idx),
        arch=arch,
        pretrained=pretrained,
        dropout=dropout,
    ).to(device_t)
    criterion = nn.CrossEntropyLoss()
    optimiser = torch.optim.Adam(model.parameters(), lr=lr)

    history: Dict[str, List[float]] = {"train_loss": [], "train_acc": [], "val_loss": [], "val_acc": []}
    best_state = None
    best_val_acc = -1.0
    best_epoch = 0

    for epoch in range(1, epochs + 1):
        train_loss, train_acc = run_epoch(model, loaders["train"], criterion, device_t, optimiser)
        val_loss, val_acc = run_epoch(model, loaders["val"], criterion, device_t)
        for key, value in (("train_loss", train_loss), ("train_acc", train_acc), ("val_loss", val_loss), ("val_acc", val_acc)):
            history[key].append(value)

        if val_acc > best_val_acc:
            best_val_acc = val_acc
            best_epoch = epoch
            best_state = {k: v.detach().cpu().clone() for k, v in model.state_dict().items()}

        print(
            f"Epoch {epoch:02d}/{epochs} "
            f"train_loss={train_loss:.4f} train_acc={train_acc:.4f} "
            f"val_loss={val_loss:.4f} val_acc={val_acc:.4f}"
        )

    if best_state is None:
        raise RuntimeError("Training did not produce any checkpoint.")
    model.load_state_dict(best_state)

    output_dir.mkdir(parents=True, exist_ok=True)
    config = {
        "arch": arch,
        "image_size": image_size,
        "dropout": dropout,
        "lr": lr,
        "pretrained": pretrained,
        "num_classes": len(class_to_idx),
        "best_val_acc": best_val_acc,
        "best_epoch": best_epoch,
        "seed": seed,
    }
    save_classifier_checkpoint(output_dir, model.cpu(), class_to_idx, config)
    (output_dir / "metrics.json").write_text(json.dumps({**history, "best_val_acc": best_val_acc}, indent=2))
    plot_history(history, output_dir)

    print(f"Training complete. Best val acc={best_val_acc:.4f} at epoch {best_epoch}")
    print(f"Artifacts saved to: {output_dir}")
    return config


def main() -> None:
    parser = argparse.ArgumentParser(description="Train a leaf disease classifier for the detection ensemble.")
    parser.add_argument(
        "--data-root",
        type=Path,
        default=Path("training_data"),
        help="Directory containing one sub-folder of images per class.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("trained_models/plant_disease_model"),
        help="Directory where the checkpoint, class map and plots will be written.",
    )
    parser.add_argument("--arch", choices=SUPPORTED_ARCHITECTURES, default="mobilenet_v3_small")
    parser.add_argument("--epochs", type=int, default=20, help="Number of training epochs.")
    parser.add_argument("--batch-size", type=int, default=32, help="Mini-batch size.")
    parser.add_argument("--image-size", type=int, default=224, help="Input resolution.")
    parser.add_argument("--lr", type=float, default=1e-3, help="Learning rate.")
    parser.add_argument("--dropout", type=float, default=0.2, help="Dropout before the classification layer.")
    parser.add_argument("--val-split", type=float, default=0.2, help="Fraction of images held out for validation.")
    parser.add_argument("--num-workers", type=int, default=4, help="DataLoader workers.")
    parser.add_argument("--pretrained", action="store_true", help="Start from ImageNet weights.")
    parser.add_argument("--device", type=str, default="cuda" if torch.cuda.is_available() else "cpu")
    parser.add_argument("--seed", type=int, default=42, help="Random seed.")

    args = parser.parse_args()
    train(
        data_root=args.data_root,
        output_dir=args.output_dir,
        arch=args.arch,
        epochs=args.epochs,
        batch_size=args.batch_size,
        image_size=args.image_size,
        lr=args.lr,
        dropout=args.dropout,
        val_split=args.val_split,
        num_workers=args.num_workers,
        pretrained=args.pretrained,
        device=args.device,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
