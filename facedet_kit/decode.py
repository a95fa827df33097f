from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .class_scores import ClassScorer
from .config import Anchor, SsdMobilenetv1Config, TinyYolov2Config
from .errors import InvalidConfiguration
from .ops import sigmoid
from .types import Candidate, Dimensions, Rect


@dataclass(frozen=True)
class Candidates:
    """
    Parallel arrays of decoded candidates for one image.

    boxes are normalized xyxy clamped to [0, 1]; scores are detection
    confidences; class_scores are confidence * class probability.
    """

    boxes: np.ndarray
    scores: np.ndarray
    class_scores: np.ndarray
    labels: np.ndarray

    @classmethod
    def empty(cls) -> "Candidates":
        return cls(
            boxes=np.zeros((0, 4), dtype=np.float64),
            scores=np.zeros((0,), dtype=np.float64),
            class_scores=np.zeros((0,), dtype=np.float64),
            labels=np.zeros((0,), dtype=np.int64),
        )

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def __getitem__(self, idx: int) -> Candidate:
        return Candidate(
            box=Rect.from_xyxy(*self.boxes[idx]),
            score=float(self.scores[idx]),
            class_score=float(self.class_scores[idx]),
            label=int(self.labels[idx]),
        )


@dataclass(frozen=True)
class DecodeContext:
    score_threshold: Optional[float] = None
    # (x, y) multipliers; 1.0 for square inputs
    correction: Tuple[float, float] = (1.0, 1.0)

    @classmethod
    def from_reshaped_dims(
        cls, reshaped: Dimensions, score_threshold: Optional[float] = None
    ) -> "DecodeContext":
        size = min(reshaped.width, reshaped.height)
        return cls(score_threshold=score_threshold, correction=(size / size, size / size))


def _finite(a: np.ndarray) -> np.ndarray:
    # NaN -> 0, infinities survive and get clamped later
    return np.nan_to_num(np.asarray(a, dtype=np.float64), nan=0.0, posinf=np.inf, neginf=-np.inf)


class BoxDecoder(abc.ABC):
    @abc.abstractmethod
    def decode(self, raw: Any, ctx: DecodeContext) -> Candidates:
        """Decode one image's raw network output into candidates."""


class DirectRegressionDecoder(BoxDecoder):
    """
    Single-shot detector head emitting normalized [top, left, bottom, right]
    boxes with a parallel score vector.
    """

    def decode(
        self,
        raw: Union[Tuple[np.ndarray, np.ndarray], Mapping[str, np.ndarray]],
        ctx: DecodeContext,
    ) -> Candidates:
        if isinstance(raw, Mapping):
            boxes, scores = raw["boxes"], raw["scores"]
        else:
            boxes, scores = raw

        boxes = _finite(boxes)
        scores = _finite(scores)
        if boxes.ndim == 3:
            if boxes.shape[0] != 1:
                raise ValueError(f"Batch > 1 is not supported (got shape {boxes.shape}). Pass one image at a time.")
            boxes = boxes[0]
        scores = scores.reshape(-1)
        if boxes.ndim != 2 or boxes.shape[1] != 4:
            raise ValueError(f"Expected boxes shape (N, 4), got {boxes.shape}")
        if boxes.shape[0] != scores.shape[0]:
            raise ValueError(f"boxes/scores length mismatch: {boxes.shape[0]} != {scores.shape[0]}")
        if boxes.shape[0] == 0:
            return Candidates.empty()

        pad_x, pad_y = ctx.correction
        clamped = np.clip(boxes, 0.0, 1.0)
        top, left, bottom, right = clamped.T
        # inverted extents collapse to zero-area boxes
        bottom = np.maximum(top, bottom)
        right = np.maximum(left, right)
        boxes_xyxy = np.stack([left * pad_x, top * pad_y, right * pad_x, bottom * pad_y], axis=1)
        scores = np.clip(scores, 0.0, 1.0)

        return Candidates(
            boxes=boxes_xyxy,
            scores=scores,
            class_scores=scores.copy(),
            labels=np.zeros(scores.shape, dtype=np.int64),
        )


class AnchorGridDecoder(BoxDecoder):
    """
    Grid detector head: `cells x cells` locations, each with one raw vector
    [tx, ty, tw, th, tc, class logits...] per anchor.
    """

    def __init__(self, anchors: Sequence[Anchor], class_scorer: ClassScorer):
        self.anchors = tuple(anchors)
        self.class_scorer = class_scorer
        self._anchor_xy = np.array([[a.x, a.y] for a in self.anchors], dtype=np.float64)

    @property
    def box_encoding_size(self) -> int:
        return 5 + self.class_scorer.num_classes

    def decode_cell(
        self,
        field: Sequence[float],
        row: int,
        col: int,
        anchor: int,
        num_cells: int,
        correction: Tuple[float, float] = (1.0, 1.0),
    ) -> Tuple[float, float, float, float, float]:
        """
        Closed-form decode of one raw vector. Returns (cx, cy, w, h, confidence)
        in normalized units, unclamped.
        """

        tx, ty, tw, th, tc = (float(v) for v in field[:5])
        corr_x, corr_y = correction
        a = self.anchors[anchor]
        cx = (col + sigmoid(tx)) / num_cells * corr_x
        cy = (row + sigmoid(ty)) / num_cells * corr_y
        w = np.exp(tw) * a.x / num_cells * corr_x
        h = np.exp(th) * a.y / num_cells * corr_y
        return cx, cy, float(w), float(h), sigmoid(tc)

    def decode(self, raw: np.ndarray, ctx: DecodeContext) -> Candidates:
        out = np.asarray(raw)
        if out.ndim == 4:
            if out.shape[0] != 1:
                raise ValueError(f"Batch > 1 is not supported (got shape {out.shape}). Pass one image at a time.")
            out = out[0]

        num_anchors = len(self.anchors)
        enc = self.box_encoding_size
        if out.ndim != 3 or out.shape[0] != out.shape[1] or out.shape[2] != num_anchors * enc:
            raise ValueError(
                f"Expected grid output (cells, cells, {num_anchors * enc}) for {num_anchors} anchors, got {out.shape}"
            )

        cells = out.shape[0]
        grid = _finite(out).reshape(cells, cells, num_anchors, enc)
        corr_x, corr_y = ctx.correction

        rows = np.arange(cells, dtype=np.float64)[:, None, None]
        cols = np.arange(cells, dtype=np.float64)[None, :, None]
        anchor_x = self._anchor_xy[None, None, :, 0]
        anchor_y = self._anchor_xy[None, None, :, 1]

        with np.errstate(over="ignore"):
            cx = (cols + sigmoid(grid[..., 0])) / cells * corr_x
            cy = (rows + sigmoid(grid[..., 1])) / cells * corr_y
            w = np.exp(grid[..., 2]) * anchor_x / cells * corr_x
            h = np.exp(grid[..., 3]) * anchor_y / cells * corr_y
        confidence = sigmoid(grid[..., 4]).reshape(-1)

        # C order flattening walks row, col, anchor
        boxes = np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=-1).reshape(-1, 4)
        class_logits = grid[..., 5:].reshape(cells * cells * num_anchors, enc - 5)

        if ctx.score_threshold:
            keep = confidence > ctx.score_threshold
            boxes, confidence, class_logits = boxes[keep], confidence[keep], class_logits[keep]
        if confidence.size == 0:
            return Candidates.empty()

        labels, class_scores = self.class_scorer.score(class_logits, confidence)
        return Candidates(
            boxes=np.clip(boxes, 0.0, 1.0),
            scores=confidence,
            class_scores=class_scores,
            labels=labels,
        )


def make_box_decoder(config: Union[TinyYolov2Config, SsdMobilenetv1Config]) -> BoxDecoder:
    if isinstance(config, TinyYolov2Config):
        num_classes = len(config.classes) if config.class_scoring else 0
        return AnchorGridDecoder(config.anchors, ClassScorer(num_classes))
    if isinstance(config, SsdMobilenetv1Config):
        return DirectRegressionDecoder()
    raise InvalidConfiguration(f"No box decoder for config type {type(config).__name__}")
