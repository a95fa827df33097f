from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """
    Axis-aligned box as (x, y, width, height).

    Units depend on context: normalized [0, 1] inside the decoders, pixels once
    a Detection has been assembled.
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "Rect":
        return cls(float(x1), float(y1), float(x2 - x1), float(y2 - y1))

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        if self.width <= 0 or self.height <= 0:
            return 0.0
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.right, self.bottom

    def rescale(self, sx: float, sy: Optional[float] = None) -> "Rect":
        sy = sx if sy is None else sy
        return Rect(self.x * sx, self.y * sy, self.width * sx, self.height * sy)


@dataclass(frozen=True)
class Candidate:
    """
    One decoded location before suppression. `box` is in normalized units.
    """

    box: Rect
    score: float
    class_score: float = 1.0
    label: int = 0


@dataclass(frozen=True)
class Detection:
    """
    Final detection in original image pixel coordinates.
    """

    score: float
    box: Rect
    image_dims: Dimensions
    class_score: float = 1.0
    class_id: int = 0
    class_label: Optional[str] = None

    @property
    def relative_box(self) -> Rect:
        return self.box.rescale(1.0 / self.image_dims.width, 1.0 / self.image_dims.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()
