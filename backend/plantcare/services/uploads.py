from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Optional

from plantcare.core.exceptions import InvalidUploadError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})


def build_upload_name(original_name: Optional[str]) -> str:
    suffix = Path(original_name or "").suffix.lower()
    return f"plant-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"


def save_upload(
    data: bytes,
    original_name: Optional[str],
    content_type: Optional[str],
    upload_dir: Path,
    max_bytes: int,
) -> Path:
    """Validate an uploaded image and store it under a unique name."""
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidUploadError("Invalid file type. Only JPEG, PNG, and WebP images are allowed.")
    if not data:
        raise InvalidUploadError("Uploaded file is empty.")
    if len(data) > max_bytes:
        raise InvalidUploadError(f"Uploaded file exceeds the {max_bytes // (1024 * 1024)} MB limit.")

    upload_dir = Path(upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / build_upload_name(original_name)
    target.write_bytes(data)
    logger.debug("Stored upload %s (%d bytes) at %s", original_name, len(data), target)
    return target
