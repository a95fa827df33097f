from __future__ import annotations

from typing import Sequence

import numpy as np

from .types import Rect


def sigmoid(x):
    """
    Overflow-safe logistic function. NaN inputs map to NaN.
    """

    x = np.asarray(x, dtype=np.float64)
    out = np.empty_like(x)
    pos = x >= 0
    neg = ~pos
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    ex = np.exp(x[neg])
    out[neg] = ex / (1.0 + ex)
    return out if out.ndim else float(out)


def softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    shifted = x - np.max(x, axis=axis, keepdims=True)
    ex = np.exp(shifted)
    return ex / np.sum(ex, axis=axis, keepdims=True)


def normalize_mean_rgb(batch: np.ndarray, mean_rgb: Sequence[float]) -> np.ndarray:
    """
    Subtract a per-channel mean from an NHWC RGB batch. Returns a new array.
    """

    mean = np.asarray(mean_rgb, dtype=np.float32).reshape(1, 1, 1, 3)
    return batch - mean


def iou(a: Rect, b: Rect) -> float:
    """
    Intersection over union of two rects. Degenerate rects have zero area and
    an empty union yields 0.
    """

    ix = max(0.0, min(a.right, b.right) - max(a.x, b.x))
    iy = max(0.0, min(a.bottom, b.bottom) - max(a.y, b.y))
    inter = ix * iy if a.area > 0 and b.area > 0 else 0.0
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union
