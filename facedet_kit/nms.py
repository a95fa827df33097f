from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .types import Rect


@dataclass
class NMSConfig:
    iou_threshold: float = 0.5
    max_detections: Optional[int] = None
    min_confidence: Optional[float] = None


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.

    Exact score ties keep original index order. Boxes with non-positive width
    or height (or non-finite coordinates) rank after every proper box, are
    dropped by any accepted box that touches them, and are only accepted when
    nothing else is left.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes and scores length mismatch: {boxes.shape[0]} != {scores.shape[0]}")

    empty = np.empty((0,), dtype=np.int64)
    if scores.size == 0:
        return empty
    if cfg.max_detections is not None and cfg.max_detections <= 0:
        return empty

    finite = np.all(np.isfinite(boxes), axis=1)
    boxes = np.where(finite[:, None], boxes, 0.0)
    x1, y1, x2, y2 = boxes.T
    valid = finite & (x2 - x1 > 0) & (y2 - y1 > 0)
    areas = np.where(valid, (x2 - x1) * (y2 - y1), 0.0)

    candidates = np.flatnonzero(np.isfinite(scores))
    if cfg.min_confidence is not None:
        candidates = candidates[scores[candidates] >= cfg.min_confidence]
    if candidates.size == 0:
        return empty

    # lexsort: last key is primary
    order = candidates[np.lexsort((candidates, -scores[candidates], ~valid[candidates]))]

    keep = []
    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)
        rest = order[1:]
        if rest.size == 0:
            break

        w = np.minimum(x2[i], x2[rest]) - np.maximum(x1[i], x1[rest])
        h = np.minimum(y2[i], y2[rest]) - np.maximum(y1[i], y1[rest])
        inter = np.where(valid[i] & valid[rest], np.maximum(w, 0.0) * np.maximum(h, 0.0), 0.0)
        union = areas[i] + areas[rest] - inter
        overlap = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)

        suppressed = overlap > cfg.iou_threshold
        # degenerate boxes are tested on their ordered extents
        lo_x, hi_x = np.minimum(x1[rest], x2[rest]), np.maximum(x1[rest], x2[rest])
        lo_y, hi_y = np.minimum(y1[rest], y2[rest]), np.maximum(y1[rest], y2[rest])
        touch_w = np.minimum(x2[i], hi_x) - np.maximum(x1[i], lo_x)
        touch_h = np.minimum(y2[i], hi_y) - np.maximum(y1[i], lo_y)
        touching = ~valid[rest] & finite[rest] & (touch_w >= 0) & (touch_h >= 0)
        order = rest[~(suppressed | touching)]

    return np.array(keep, dtype=np.int64)


def non_max_suppression(
    rects: Sequence[Rect],
    scores: Sequence[float],
    max_results: Optional[int] = None,
    iou_threshold: float = 0.5,
    min_confidence: Optional[float] = None,
) -> list:
    """
    Rect-based front end to `nms`, returning plain int indices.
    """

    boxes = np.array([r.as_xyxy() for r in rects], dtype=np.float64).reshape(-1, 4)
    cfg = NMSConfig(iou_threshold=iou_threshold, max_detections=max_results, min_confidence=min_confidence)
    return [int(i) for i in nms(boxes, np.asarray(scores, dtype=np.float64), cfg)]
