from __future__ import annotations


class FaceDetKitError(Exception):
    """Base class for errors raised by facedet_kit."""


class InvalidInputKind(FaceDetKitError, TypeError):
    """Input is not an image, a list of images or a pre-batched array."""


class ModelNotLoaded(FaceDetKitError, RuntimeError):
    """A forward pass was requested before an inference function was attached."""


class InvalidConfiguration(FaceDetKitError, ValueError):
    """Detector configuration is inconsistent with the chosen detector variant."""
