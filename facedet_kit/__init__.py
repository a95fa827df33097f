"""
Face/object detection post-processing for square-input detectors.

Covers the numeric contract between an opaque network and the final box
list: square preprocessing, box decoding (direct regression and anchor grid),
softmax class scoring, greedy NMS and mapping back to image pixels. Networks
run through pluggable backends (ONNX Runtime, TorchScript) or any callable.
"""

from .config import (
    Anchor,
    SsdMobilenetv1Config,
    SsdMobilenetv1Options,
    TINY_FACE_DETECTOR_CONFIG,
    TinyYolov2Config,
    TinyYolov2Options,
    VOC_TINY_YOLOV2_CONFIG,
    classes_from_names,
    load_tiny_yolov2_config,
)
from .decode import AnchorGridDecoder, Candidates, DecodeContext, DirectRegressionDecoder, make_box_decoder
from .class_scores import ClassScorer
from .errors import FaceDetKitError, InvalidConfiguration, InvalidInputKind, ModelNotLoaded
from .metadata import load_class_names
from .net_input import NetInput, to_net_input
from .nms import NMSConfig, nms, non_max_suppression
from .ops import iou
from .postprocess import DetectionAssembler, DetectionPostConfig, DetectionPostprocessor
from .runtime import Detector, SsdMobilenetv1, TinyYolov2, load_detector, resolve_path
from .square import SquareTransform, image_to_square, square_transform
from .types import Candidate, Detection, Dimensions, Rect
from .visualize import draw_detections, feature_map_to_grayscale

__all__ = [
    "Anchor",
    "SsdMobilenetv1Config",
    "SsdMobilenetv1Options",
    "TINY_FACE_DETECTOR_CONFIG",
    "TinyYolov2Config",
    "TinyYolov2Options",
    "VOC_TINY_YOLOV2_CONFIG",
    "classes_from_names",
    "load_tiny_yolov2_config",
    "AnchorGridDecoder",
    "Candidates",
    "DecodeContext",
    "DirectRegressionDecoder",
    "make_box_decoder",
    "ClassScorer",
    "FaceDetKitError",
    "InvalidConfiguration",
    "InvalidInputKind",
    "ModelNotLoaded",
    "load_class_names",
    "NetInput",
    "to_net_input",
    "NMSConfig",
    "nms",
    "non_max_suppression",
    "iou",
    "DetectionAssembler",
    "DetectionPostConfig",
    "DetectionPostprocessor",
    "Detector",
    "SsdMobilenetv1",
    "TinyYolov2",
    "load_detector",
    "resolve_path",
    "SquareTransform",
    "image_to_square",
    "square_transform",
    "Candidate",
    "Detection",
    "Dimensions",
    "Rect",
    "draw_detections",
    "feature_map_to_grayscale",
]
