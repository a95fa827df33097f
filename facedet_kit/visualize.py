from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import numpy as np

from .types import Detection

_PALETTE = [
    (56, 56, 255),
    (151, 157, 255),
    (31, 112, 255),
    (29, 178, 255),
    (49, 210, 207),
    (10, 249, 72),
    (23, 204, 146),
    (134, 219, 61),
    (52, 147, 26),
    (187, 212, 0),
]


def _color_for_class_id(class_id: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color; ids past the palette get a seeded random color.
    """

    if 0 <= class_id < len(_PALETTE):
        return _PALETTE[class_id]
    rng = np.random.default_rng(int(class_id))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    show_score: bool = True,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw boxes and labels on a copy of an OpenCV BGR image.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    for det in detections:
        x1, y1, x2, y2 = (int(round(v)) for v in det.as_xyxy())
        x1, x2 = int(np.clip(x1, 0, w - 1)), int(np.clip(x2, 0, w - 1))
        y1, y2 = int(np.clip(y1, 0, h - 1)), int(np.clip(y2, 0, h - 1))

        color = _color_for_class_id(det.class_id)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, thickness=box_thickness)

        label = det.class_label or str(det.class_id)
        if show_score:
            label = f"{label} {det.score:.2f}"

        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # above the box when it fits, else inside
        y_text_top = y1 - th - baseline
        if y_text_top < 0:
            y_text_top = y1

        cv2.rectangle(
            out,
            (x1, y_text_top),
            (min(x1 + tw, w - 1), min(y_text_top + th + baseline, h - 1)),
            color,
            thickness=-1,
        )
        cv2.putText(
            out,
            label,
            (x1, min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out


def feature_map_to_grayscale(feature_map: np.ndarray, channels: Sequence[int]) -> np.ndarray:
    """
    Render selected channels of an NHWC feature map as RGBA grayscale tiles.

    Each channel of batch item 0 is min-max scaled to 0..255 on its own; a flat
    channel renders black.

    Returns:
        uint8 array shaped (len(channels), H, W, 4)
    """

    fmap = np.asarray(feature_map, dtype=np.float64)
    if fmap.ndim == 4:
        fmap = fmap[0]
    if fmap.ndim != 3:
        raise ValueError(f"Expected feature map (H, W, C) or (1, H, W, C), got {feature_map.shape}")

    tiles = []
    for c in channels:
        if not 0 <= c < fmap.shape[2]:
            raise IndexError(f"channel {c} out of range for {fmap.shape[2]} channels")
        ch = fmap[:, :, c]
        lo, hi = float(np.min(ch)), float(np.max(ch))
        gray = np.zeros_like(ch) if hi <= lo else (ch - lo) * 255.0 / (hi - lo)
        gray = np.round(gray).astype(np.uint8)
        alpha = np.full_like(gray, 255)
        tiles.append(np.stack([gray, gray, gray, alpha], axis=-1))
    return np.stack(tiles, axis=0)
