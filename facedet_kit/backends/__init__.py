"""
Feature-extractor adapters for facedet_kit.

Each backend wraps one inference runtime behind `infer(blob)`, taking the
NHWC pixel batch and returning the network's raw outputs as NumPy arrays.
Runtimes are imported lazily so decoding and NMS work without them.
"""

from __future__ import annotations

from typing import Tuple, Union

import numpy as np

RawOutput = Union[np.ndarray, Tuple[np.ndarray, ...]]


def to_channels_first(blob: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(np.transpose(blob, (0, 3, 1, 2)))


def to_channels_last(out: np.ndarray) -> np.ndarray:
    # only 4-D feature maps carry a channel axis to move
    if out.ndim != 4:
        return out
    return np.ascontiguousarray(np.transpose(out, (0, 2, 3, 1)))


__all__ = ["RawOutput", "to_channels_first", "to_channels_last"]
