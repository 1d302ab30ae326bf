"""Errors raised by the detection core.

The core never picks HTTP semantics; the API layer maps these to responses.
"""


class DetectionError(Exception):
    """Base class for every error raised while running a detection."""


class ImageNotFoundError(DetectionError):
    """Raised when the image to analyse does not exist on disk."""


class ImageDecodeError(DetectionError):
    """Raised when the uploaded bytes cannot be decoded as an image."""


class ModelPoolUnavailableError(DetectionError):
    """Raised when no classifier could be loaded. Permanent for the process."""


class ModelConfigurationError(DetectionError):
    """Raised when a classifier disagrees with the configured class count."""


class InferenceError(DetectionError):
    """Raised when a classifier fails while scoring a variant."""


class InvalidUploadError(ValueError):
    """Raised when an upload is not an accepted image type or is too large."""
