from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import numpy as np

from .decode import BoxDecoder, Candidates, DecodeContext
from .nms import NMSConfig, nms
from .square import SquareTransform
from .types import Detection, Rect

logger = logging.getLogger(__name__)


@dataclass
class DetectionPostConfig:
    """
    Suppression settings applied after decoding.
    """

    iou_threshold: float = 0.5
    max_detections: Optional[int] = 100
    min_confidence: Optional[float] = None
    # If False, runs NMS per label then merges results by score.
    class_agnostic_nms: bool = True


class DetectionAssembler:
    """
    Maps surviving candidates back into original image pixels.
    """

    def __init__(self, class_names: Optional[Sequence[str]] = None):
        self.class_names = tuple(class_names) if class_names is not None else None

    def _label(self, class_id: int) -> Optional[str]:
        if self.class_names is None or not 0 <= class_id < len(self.class_names):
            return None
        return self.class_names[class_id]

    def assemble(self, candidates: Candidates, indices: np.ndarray, transform: SquareTransform) -> List[Detection]:
        indices = np.asarray(indices, dtype=np.int64)
        if indices.size == 0:
            return []

        pixels = transform.to_original(candidates.boxes[indices])
        dims = transform.input_dims
        return [
            Detection(
                score=float(candidates.scores[idx]),
                box=Rect.from_xyxy(*px),
                image_dims=dims,
                class_score=float(candidates.class_scores[idx]),
                class_id=int(candidates.labels[idx]),
                class_label=self._label(int(candidates.labels[idx])),
            )
            for idx, px in zip(indices, pixels)
        ]


class DetectionPostprocessor:
    """
    decode -> NMS -> assemble for a single image.

    The decoder decides how raw output is read (direct regression or anchor
    grid); everything after that is shared.
    """

    def __init__(
        self,
        decoder: BoxDecoder,
        cfg: DetectionPostConfig,
        class_names: Optional[Sequence[str]] = None,
    ):
        self.decoder = decoder
        self.cfg = cfg
        self.assembler = DetectionAssembler(class_names)

    def process(
        self,
        raw: Any,
        transform: SquareTransform,
        score_threshold: Optional[float] = None,
    ) -> List[Detection]:
        """
        Args:
            raw: one image's network output, in the layout the decoder expects
            transform: square transform recorded for that image
            score_threshold: optional confidence gate applied while decoding
        """

        ctx = DecodeContext.from_reshaped_dims(transform.reshaped_dims, score_threshold)
        candidates = self.decoder.decode(raw, ctx)
        if len(candidates) == 0:
            logger.debug("No candidates after decoding")
            return []

        keep = self._apply_nms(candidates)
        logger.debug("NMS kept %d of %d candidates", keep.size, len(candidates))
        return self.assembler.assemble(candidates, keep, transform)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _nms_config(self) -> NMSConfig:
        return NMSConfig(
            iou_threshold=self.cfg.iou_threshold,
            max_detections=self.cfg.max_detections,
            min_confidence=self.cfg.min_confidence,
        )

    def _apply_nms(self, candidates: Candidates) -> np.ndarray:
        nms_cfg = self._nms_config()
        if self.cfg.class_agnostic_nms:
            return nms(candidates.boxes, candidates.scores, nms_cfg)

        kept: List[int] = []
        for label in np.unique(candidates.labels):
            idx = np.flatnonzero(candidates.labels == label)
            keep_local = nms(candidates.boxes[idx], candidates.scores[idx], nms_cfg)
            kept.extend(idx[keep_local].tolist())

        if not kept:
            return np.empty((0,), dtype=np.int64)

        kept_arr = np.array(kept, dtype=np.int64)
        kept_arr = kept_arr[np.lexsort((kept_arr, -candidates.scores[kept_arr]))]
        if self.cfg.max_detections is not None:
            kept_arr = kept_arr[: self.cfg.max_detections]
        return kept_arr
