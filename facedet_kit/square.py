from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidInputKind
from .types import Dimensions


@dataclass(frozen=True)
class SquareTransform:
    """
    Mapping between an original image and its `input_size` square canvas.

    The canvas pixel of original pixel p is `p * scale + offset`; the shorter
    side fills the canvas exactly and the longer side is center-cropped.
    """

    input_size: int
    orig_size: Tuple[int, int]  # (width, height)
    scale: float
    scaled_size: Tuple[float, float]
    offset: Tuple[float, float]  # (dx, dy), <= 0

    @property
    def input_dims(self) -> Dimensions:
        return Dimensions(*self.orig_size)

    @property
    def reshaped_dims(self) -> Dimensions:
        return Dimensions(*self.scaled_size)

    def to_original(self, boxes_xyxy: np.ndarray) -> np.ndarray:
        """
        Map normalized canvas boxes (N,4) back to original pixel coordinates,
        clamped to the image.
        """

        out = np.asarray(boxes_xyxy, dtype=np.float64).reshape(-1, 4) * self.input_size
        dx, dy = self.offset
        out[:, [0, 2]] = (out[:, [0, 2]] - dx) / self.scale
        out[:, [1, 3]] = (out[:, [1, 3]] - dy) / self.scale

        orig_w, orig_h = self.orig_size
        out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0, orig_w)
        out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0, orig_h)
        return out


def square_transform(width: int, height: int, input_size: int) -> SquareTransform:
    if width <= 0 or height <= 0:
        raise InvalidInputKind(f"Image dimensions must be positive, got {width}x{height}")
    scale = input_size / min(height, width)
    scaled_w = scale * width
    scaled_h = scale * height
    dx = -abs(scaled_w - input_size) / 2
    dy = -abs(scaled_h - input_size) / 2
    return SquareTransform(
        input_size=int(input_size),
        orig_size=(int(width), int(height)),
        scale=scale,
        scaled_size=(scaled_w, scaled_h),
        offset=(dx, dy),
    )


def check_image(image) -> None:
    if not isinstance(image, np.ndarray):
        raise InvalidInputKind(f"Expected an image as np.ndarray, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidInputKind(f"Expected image shape (H, W, 3), got {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidInputKind(f"Image dimensions must be positive, got {image.shape}")


def image_to_square(image: np.ndarray, input_size: int, center_image: bool = False) -> np.ndarray:
    """
    Scale `image` so its shorter side equals `input_size` and draw it into a
    new `input_size x input_size` canvas, cropping the longer side evenly.

    `center_image` is accepted for call-site symmetry; both detector families
    always center, so the offsets are the same either way.

    Returns:
        canvas: (input_size, input_size, 3) array with the dtype of `image`
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for image_to_square(). Install with `pip install opencv-python`.") from e

    check_image(image)
    h, w = image.shape[:2]
    t = square_transform(w, h, input_size)
    dx, dy = t.offset
    m = np.array([[t.scale, 0.0, dx], [0.0, t.scale, dy]], dtype=np.float64)
    return cv2.warpAffine(
        image,
        m,
        (t.input_size, t.input_size),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0),
    )
