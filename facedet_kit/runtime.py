from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .backends import RawOutput
from .config import (
    SsdMobilenetv1Config,
    SsdMobilenetv1Options,
    TINY_FACE_DETECTOR_CONFIG,
    TinyYolov2Config,
    TinyYolov2Options,
)
from .decode import make_box_decoder
from .errors import ModelNotLoaded
from .net_input import NetInput, NetInputLike, to_net_input
from .ops import normalize_mean_rgb
from .postprocess import DetectionPostConfig, DetectionPostprocessor
from .types import Detection

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], RawOutput]
# Receives (name, array) for intermediate arrays of a forward pass.
Observer = Callable[[str, np.ndarray], None]


def resolve_path(path: PathLike, root: Optional[PathLike] = None) -> Path:
    """
    Absolute paths are returned as-is; relative ones resolve against `root`
    (or the current directory).
    """

    p = Path(path)
    if p.is_absolute():
        return p
    base = Path(root).resolve() if root is not None else Path.cwd()
    return (base / p).resolve()


class Detector:
    """
    Shared plumbing for both detector families: the inference callable, the
    optional debug observer and per-pass scratch scoping.

    Detectors hold no per-call state, so one instance can serve concurrent
    calls as long as `infer_fn` itself is reentrant.
    """

    name = "Detector"

    def __init__(
        self,
        infer_fn: Optional[InferFn] = None,
        *,
        observer: Optional[Observer] = None,
        backend: Optional[object] = None,
    ):
        self._infer_fn = infer_fn
        self.observer = observer
        self.backend = backend

    @property
    def is_loaded(self) -> bool:
        return self._infer_fn is not None

    def load(self, infer_fn: InferFn, backend: Optional[object] = None) -> None:
        self._infer_fn = infer_fn
        self.backend = backend

    def _require_loaded(self) -> InferFn:
        if self._infer_fn is None:
            raise ModelNotLoaded(f"{self.name} - load model before inference")
        return self._infer_fn

    def _notify(self, name: str, array: np.ndarray) -> None:
        if self.observer is not None:
            self.observer(name, array)

    @contextmanager
    def _forward_scope(self) -> Iterator[Dict[str, Any]]:
        """
        Owns the arrays of one forward pass. The input blob is released as soon
        as the network returns; the raw outputs stay here while the batch items
        are decoded (per-item slices are views into them) and are dropped when
        the scope exits, on every exit path.
        """

        scratch: Dict[str, Any] = {}
        try:
            yield scratch
        finally:
            scratch.clear()


def _split_boxes_scores(raw: Any) -> Tuple[np.ndarray, np.ndarray]:
    if isinstance(raw, Mapping):
        boxes, scores = raw["boxes"], raw["scores"]
    elif isinstance(raw, (tuple, list)) and len(raw) == 2:
        boxes, scores = raw
    else:
        raise ValueError("Expected (boxes, scores) output from the single-shot network.")

    boxes = np.asarray(boxes)
    scores = np.asarray(scores)
    if boxes.ndim == 2:
        boxes = boxes[None, ...]
    if scores.ndim == 1:
        scores = scores[None, ...]
    if boxes.ndim != 3 or boxes.shape[-1] != 4:
        raise ValueError(f"Expected boxes shape (B, N, 4), got {boxes.shape}")
    scores = scores.reshape(scores.shape[0], -1)
    return boxes, scores


class SsdMobilenetv1(Detector):
    """
    Single-shot face detector: the network regresses normalized boxes and
    scores directly, at a fixed 512 input.
    """

    name = "SsdMobilenetv1"

    def __init__(
        self,
        infer_fn: Optional[InferFn] = None,
        *,
        config: SsdMobilenetv1Config = SsdMobilenetv1Config(),
        observer: Optional[Observer] = None,
        backend: Optional[object] = None,
    ):
        super().__init__(infer_fn, observer=observer, backend=backend)
        self.config = config
        self.decoder = make_box_decoder(config)

    @staticmethod
    def normalize(batch: np.ndarray) -> np.ndarray:
        # [0, 255] -> [-1, 1]
        return (batch * np.float32(0.007843137718737125) - np.float32(1.0)).astype(np.float32)

    def _forward(self, net_input: NetInput, scratch: Dict[str, Any]) -> Tuple[np.ndarray, np.ndarray]:
        infer = self._require_loaded()
        scratch["batch"] = net_input.to_batch_tensor(self.config.input_size, True)
        scratch["input"] = self.normalize(scratch["batch"])
        self._notify("input", scratch["input"])

        raw = infer(scratch["input"])
        del scratch["batch"], scratch["input"]
        boxes, scores = _split_boxes_scores(raw)
        scratch["boxes"], scratch["scores"] = boxes, scores
        self._notify("boxes", boxes)
        self._notify("scores", scores)
        return boxes, scores

    def forward_input(self, inputs: NetInputLike) -> Tuple[np.ndarray, np.ndarray]:
        with self._forward_scope() as scratch:
            return self._forward(to_net_input(inputs), scratch)

    def locate_faces_batch(
        self,
        inputs: NetInputLike,
        options: Optional[SsdMobilenetv1Options] = None,
    ) -> List[List[Detection]]:
        options = options or SsdMobilenetv1Options()
        self._require_loaded()
        net_input = to_net_input(inputs)
        post = DetectionPostprocessor(
            self.decoder,
            DetectionPostConfig(
                iou_threshold=self.config.iou_threshold,
                max_detections=options.max_results,
                min_confidence=options.min_confidence,
            ),
        )

        with self._forward_scope() as scratch:
            self._forward(net_input, scratch)
            num_results = scratch["boxes"].shape[0]
            if num_results != net_input.batch_size:
                raise ValueError(f"Network returned {num_results} results for {net_input.batch_size} inputs")
            results = [
                post.process((scratch["boxes"][i], scratch["scores"][i]), net_input.get_transform(i))
                for i in range(net_input.batch_size)
            ]

        logger.debug("%s located %s faces", self.name, [len(r) for r in results])
        return results

    def locate_faces(self, inputs: NetInputLike, options: Optional[SsdMobilenetv1Options] = None) -> List[Detection]:
        return self.locate_faces_batch(inputs, options)[0]


class TinyYolov2(Detector):
    """
    Anchor-grid detector (Tiny YOLO v2 family), optionally multi-class.
    """

    name = "TinyYolov2"

    def __init__(
        self,
        config: TinyYolov2Config,
        infer_fn: Optional[InferFn] = None,
        *,
        observer: Optional[Observer] = None,
        backend: Optional[object] = None,
    ):
        super().__init__(infer_fn, observer=observer, backend=backend)
        self.config = config
        self.decoder = make_box_decoder(config)

    @property
    def with_class_scores(self) -> bool:
        return self.config.class_scoring

    @property
    def box_encoding_size(self) -> int:
        return self.config.box_encoding_size

    def normalize(self, batch: np.ndarray) -> np.ndarray:
        x = normalize_mean_rgb(batch, self.config.mean_rgb) if self.config.mean_rgb else batch
        return (x / np.float32(256.0)).astype(np.float32)

    def _forward(self, net_input: NetInput, input_size: int, scratch: Dict[str, Any]) -> np.ndarray:
        infer = self._require_loaded()
        scratch["batch"] = net_input.to_batch_tensor(input_size, False)
        scratch["input"] = self.normalize(scratch["batch"])
        self._notify("input", scratch["input"])

        raw = infer(scratch["input"])
        del scratch["batch"], scratch["input"]
        if isinstance(raw, (tuple, list)):
            raw = raw[0]
        out = np.asarray(raw)
        if out.ndim == 3:
            out = out[None, ...]
        scratch["output"] = out
        self._notify("output", out)
        return out

    def forward_input(self, inputs: NetInputLike, input_size: int) -> np.ndarray:
        with self._forward_scope() as scratch:
            return self._forward(to_net_input(inputs), input_size, scratch)

    def detect_batch(
        self,
        inputs: NetInputLike,
        options: Optional[TinyYolov2Options] = None,
    ) -> List[List[Detection]]:
        options = options or TinyYolov2Options()
        self._require_loaded()
        net_input = to_net_input(inputs)
        post = DetectionPostprocessor(
            self.decoder,
            DetectionPostConfig(iou_threshold=self.config.iou_threshold, max_detections=self.config.max_results),
            class_names=self.config.classes,
        )

        with self._forward_scope() as scratch:
            self._forward(net_input, options.input_size, scratch)
            num_results = scratch["output"].shape[0]
            if num_results != net_input.batch_size:
                raise ValueError(f"Network returned {num_results} results for {net_input.batch_size} inputs")
            results = [
                post.process(
                    scratch["output"][i], net_input.get_transform(i), score_threshold=options.score_threshold
                )
                for i in range(net_input.batch_size)
            ]

        logger.debug("%s detected %s objects", self.name, [len(r) for r in results])
        return results

    def detect(self, inputs: NetInputLike, options: Optional[TinyYolov2Options] = None) -> List[Detection]:
        return self.detect_batch(inputs, options)[0]


def _make_backend(
    resolved: Path,
    backend: Optional[str],
    *,
    channels_first: Optional[bool],
    onnx_providers: Optional[Sequence[str]],
    torch_device: str,
    torch_half: bool,
):
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(providers=onnx_providers, channels_first=bool(channels_first)),
        )

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return TorchScriptBackend(
            resolved,
            TorchScriptBackendConfig(
                device=torch_device,
                half=torch_half,
                channels_first=True if channels_first is None else channels_first,
            ),
        )

    raise ValueError(f"Unsupported backend: {backend!r}")


def load_detector(
    model_path: PathLike,
    *,
    kind: str = "tiny_face_detector",
    config: Optional[Union[TinyYolov2Config, SsdMobilenetv1Config]] = None,
    backend: Optional[str] = None,
    root: Optional[PathLike] = None,
    channels_first: Optional[bool] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    observer: Optional[Observer] = None,
) -> Detector:
    """
    Build a detector around a model file on disk.

    Args:
        model_path: exported network; relative paths resolve against `root` or the cwd
        kind: "tiny_face_detector", "tiny_yolov2" (needs `config`) or "ssd_mobilenetv1"
        backend: "onnxruntime" or "torchscript"; None infers it from the extension
        channels_first: whether the exported network takes NCHW input
    """

    kind = kind.lower()
    if kind == "tiny_yolov2" and not isinstance(config, TinyYolov2Config):
        raise ValueError("kind='tiny_yolov2' needs a TinyYolov2Config")
    if kind not in {"tiny_face_detector", "tiny_yolov2", "ssd_mobilenetv1"}:
        raise ValueError(f"Unsupported detector kind: {kind!r}")

    resolved = resolve_path(model_path, root=root)
    be = _make_backend(
        resolved,
        backend,
        channels_first=channels_first,
        onnx_providers=onnx_providers,
        torch_device=torch_device,
        torch_half=torch_half,
    )
    logger.info("Loaded %s detector from %s via %s", kind, resolved, type(be).__name__)

    if kind == "ssd_mobilenetv1":
        ssd_cfg = config if isinstance(config, SsdMobilenetv1Config) else SsdMobilenetv1Config()
        return SsdMobilenetv1(be.infer, config=ssd_cfg, observer=observer, backend=be)

    yolo_cfg = config if isinstance(config, TinyYolov2Config) else TINY_FACE_DETECTOR_CONFIG
    return TinyYolov2(yolo_cfg, be.infer, observer=observer, backend=be)
