from __future__ import annotations

from typing import Tuple

import numpy as np

from .ops import softmax


class ClassScorer:
    """
    Turns per-location class logits into (label, combined class score).

    With `num_classes == 0` scoring is disabled: every location gets label 0
    and its confidence as the combined score.
    """

    def __init__(self, num_classes: int):
        if num_classes < 0:
            raise ValueError("num_classes must be >= 0")
        self.num_classes = num_classes

    @property
    def enabled(self) -> bool:
        return self.num_classes > 0

    def score(self, class_logits: np.ndarray, confidence: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Args:
            class_logits: (N, K) raw logits, ignored when disabled
            confidence: (N,) detection confidence in [0, 1]

        Returns:
            labels (N,) int64 and class scores (N,) = confidence * softmax[label]
        """

        confidence = np.asarray(confidence, dtype=np.float64).reshape(-1)
        n = confidence.shape[0]
        if not self.enabled:
            return np.zeros((n,), dtype=np.int64), confidence.copy()

        logits = np.asarray(class_logits, dtype=np.float64).reshape(n, self.num_classes)
        logits = np.clip(np.nan_to_num(logits, nan=0.0), -1e30, 1e30)
        probs = softmax(logits, axis=1)
        # argmax returns the first index on ties
        labels = np.argmax(probs, axis=1).astype(np.int64)
        best = probs[np.arange(n), labels]
        return labels, confidence * best
