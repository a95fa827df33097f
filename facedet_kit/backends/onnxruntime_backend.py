from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from . import RawOutput, to_channels_first, to_channels_last

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name: override the auto-selected input
    - output_names: outputs to fetch, in order; None fetches every model output
    - channels_first: the exported model expects NCHW input (feature maps are moved back to NHWC)
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_names: Optional[Sequence[str]] = None
    channels_first: bool = False


class OnnxRuntimeBackend:
    """
    ONNX Runtime feature extractor.

    Returns a single array when one output is fetched, otherwise a tuple in
    `output_names` order (e.g. (boxes, scores) for a single-shot head).
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=ort.SessionOptions(), providers=providers)
        self.channels_first = cfg.channels_first

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        if cfg.output_names is not None:
            self.output_names = list(cfg.output_names)
        else:
            self.output_names = [o.name for o in self.session.get_outputs()]
        logger.info(
            "Loaded ONNX model %s (providers=%s, outputs=%s)",
            self.model_path.name,
            self.session.get_providers(),
            self.output_names,
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        return tuple(self.session.get_providers())

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> RawOutput:
        x = to_channels_first(blob) if self.channels_first else np.ascontiguousarray(blob, dtype=np.float32)
        inputs: Dict[str, Any] = {self.input_name: x}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run(self.output_names, inputs)
        if self.channels_first:
            outputs = [to_channels_last(np.asarray(o)) for o in outputs]
        if len(outputs) == 1:
            return outputs[0]
        return tuple(outputs)
