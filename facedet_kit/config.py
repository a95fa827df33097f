from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anchor:
    x: float
    y: float


def _check_unit_interval(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfiguration(f"{name} must be a number")
    if not 0.0 <= value <= 1.0:
        raise InvalidConfiguration(f"{name} must be in [0, 1], got {value}")


def _check_max_results(value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidConfiguration(f"max_results must be a positive integer or None, got {value!r}")


def _check_input_size(value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidConfiguration(f"input_size must be a positive integer, got {value!r}")
    if value % 32 != 0:
        raise InvalidConfiguration(f"input_size must be a multiple of 32, got {value}")


@dataclass(frozen=True)
class TinyYolov2Config:
    """
    Static description of an anchor-grid detector.

    Class scoring is on when `with_class_scores` is set or more than one class
    is configured; the network then emits 5 + len(classes) channels per anchor,
    otherwise 5.
    """

    anchors: Tuple[Anchor, ...]
    classes: Tuple[str, ...] = ("face",)
    with_class_scores: bool = False
    with_separable_convs: bool = False
    iou_threshold: float = 0.4
    max_results: Optional[int] = 100
    mean_rgb: Optional[Tuple[float, float, float]] = None
    filter_sizes: Optional[Tuple[int, ...]] = None
    is_first_layer_conv2d: bool = False

    def __post_init__(self) -> None:
        if not self.anchors:
            raise InvalidConfiguration("anchors must contain at least one anchor")
        for a in self.anchors:
            if not isinstance(a, Anchor):
                raise InvalidConfiguration(f"anchors must be Anchor instances, got {a!r}")
            if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in (a.x, a.y)):
                raise InvalidConfiguration(f"anchor priors must be numbers, got {a}")
            if a.x <= 0 or a.y <= 0:
                raise InvalidConfiguration(f"anchor priors must be > 0, got {a}")
        if not self.classes:
            raise InvalidConfiguration("classes must not be empty")
        if any(not isinstance(c, str) for c in self.classes):
            raise InvalidConfiguration("classes must be strings")
        _check_unit_interval("iou_threshold", self.iou_threshold)
        _check_max_results(self.max_results)
        if self.mean_rgb is not None and len(self.mean_rgb) != 3:
            raise InvalidConfiguration(f"mean_rgb must have 3 entries, got {len(self.mean_rgb)}")
        if self.filter_sizes is not None and len(self.filter_sizes) not in (7, 8, 9):
            raise InvalidConfiguration(
                f"expected 7 | 8 | 9 convolutional filters, but found {len(self.filter_sizes)} filter_sizes"
            )

    @property
    def class_scoring(self) -> bool:
        return self.with_class_scores or len(self.classes) > 1

    @property
    def box_encoding_size(self) -> int:
        return 5 + (len(self.classes) if self.class_scoring else 0)

    @property
    def num_anchors(self) -> int:
        return len(self.anchors)


@dataclass(frozen=True)
class TinyYolov2Options:
    input_size: int = 416
    score_threshold: float = 0.5

    def __post_init__(self) -> None:
        _check_input_size(self.input_size)
        _check_unit_interval("score_threshold", self.score_threshold)


@dataclass(frozen=True)
class SsdMobilenetv1Config:
    input_size: int = 512
    iou_threshold: float = 0.5

    def __post_init__(self) -> None:
        _check_input_size(self.input_size)
        _check_unit_interval("iou_threshold", self.iou_threshold)


@dataclass(frozen=True)
class SsdMobilenetv1Options:
    min_confidence: float = 0.5
    max_results: Optional[int] = 100

    def __post_init__(self) -> None:
        _check_unit_interval("min_confidence", self.min_confidence)
        _check_max_results(self.max_results)


TINY_FACE_DETECTOR_CONFIG = TinyYolov2Config(
    anchors=(
        Anchor(1.603231, 2.094468),
        Anchor(6.041143, 7.080126),
        Anchor(2.882459, 3.518061),
        Anchor(4.266906, 5.178857),
        Anchor(9.041765, 10.66308),
    ),
    classes=("face",),
    with_separable_convs=True,
    iou_threshold=0.4,
    mean_rgb=(117.001, 114.697, 97.404),
)

VOC_TINY_YOLOV2_CONFIG = TinyYolov2Config(
    anchors=(
        Anchor(1.08, 1.19),
        Anchor(3.42, 4.41),
        Anchor(6.63, 11.38),
        Anchor(9.42, 5.11),
        Anchor(16.62, 10.52),
    ),
    classes=(
        "aeroplane", "bicycle", "bird", "boat", "bottle", "bus", "car", "cat", "chair", "cow",
        "diningtable", "dog", "horse", "motorbike", "person", "pottedplant", "sheep", "sofa",
        "train", "tvmonitor",
    ),
    with_class_scores=True,
    iou_threshold=0.4,
)


def _parse_anchors(value: Any) -> Tuple[Anchor, ...]:
    if not isinstance(value, list):
        raise InvalidConfiguration("anchors must be a list of {x, y} objects")
    anchors = []
    for item in value:
        if not isinstance(item, dict) or set(item.keys()) != {"x", "y"}:
            raise InvalidConfiguration(f"anchor must be an object with x and y, got {item!r}")
        try:
            anchors.append(Anchor(float(item["x"]), float(item["y"])))
        except (TypeError, ValueError) as exc:
            raise InvalidConfiguration(f"anchor coordinates must be numbers, got {item!r}") from exc
    return tuple(anchors)


def _optional_tuple(payload: Dict[str, Any], key: str) -> Optional[tuple]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise InvalidConfiguration(f"{key} must be a list")
    return tuple(value)


def tiny_yolov2_config_from_dict(payload: Dict[str, Any]) -> TinyYolov2Config:
    allowed = {
        "anchors",
        "classes",
        "with_class_scores",
        "with_separable_convs",
        "iou_threshold",
        "max_results",
        "mean_rgb",
        "filter_sizes",
        "is_first_layer_conv2d",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise InvalidConfiguration(f"Unknown detector config keys: {unknown}")
    if "anchors" not in payload:
        raise InvalidConfiguration("Missing required key: anchors")

    kwargs: Dict[str, Any] = {"anchors": _parse_anchors(payload["anchors"])}
    classes = _optional_tuple(payload, "classes")
    if classes is not None:
        kwargs["classes"] = classes
    for key in ("with_class_scores", "with_separable_convs", "is_first_layer_conv2d"):
        if key in payload:
            if not isinstance(payload[key], bool):
                raise InvalidConfiguration(f"{key} must be a boolean")
            kwargs[key] = payload[key]
    if "iou_threshold" in payload:
        kwargs["iou_threshold"] = payload["iou_threshold"]
    if "max_results" in payload:
        kwargs["max_results"] = payload["max_results"]
    kwargs["mean_rgb"] = _optional_tuple(payload, "mean_rgb")
    kwargs["filter_sizes"] = _optional_tuple(payload, "filter_sizes")
    return TinyYolov2Config(**kwargs)


def load_tiny_yolov2_config(path: Path) -> TinyYolov2Config:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Detector config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidConfiguration(f"Invalid detector config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise InvalidConfiguration("Detector config must be a JSON object")

    cfg = tiny_yolov2_config_from_dict(payload)
    logger.debug("Loaded detector config from %s (%d anchors, %d classes)", path, cfg.num_anchors, len(cfg.classes))
    return cfg


def classes_from_names(names: Dict[int, str]) -> Tuple[str, ...]:
    """
    Turn an {id: name} map into a dense class tuple; ids must be 0..K-1.
    """

    ids: Sequence[int] = sorted(names)
    if ids != list(range(len(ids))):
        raise InvalidConfiguration(f"class ids must be contiguous from 0, got {list(ids)}")
    return tuple(names[i] for i in ids)
