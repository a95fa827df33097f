from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np

from . import RawOutput, to_channels_first, to_channels_last

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    - channels_first: the scripted module takes NCHW input (PyTorch convention)
    """

    device: str = "cpu"
    half: bool = False
    channels_first: bool = True


class TorchScriptBackend:
    """
    TorchScript feature extractor loaded with `torch.jit.load`.

    Tuple/list outputs are returned as a tuple of arrays, which is how a
    single-shot head hands back (boxes, scores).
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.device = torch.device(cfg.device)
        self.half = cfg.half
        self.channels_first = cfg.channels_first

        model = torch.jit.load(str(self.model_path), map_location=self.device)
        model.eval()
        self.model = model
        logger.info("Loaded TorchScript model %s on %s", self.model_path.name, self.device)

    def _to_numpy(self, y) -> np.ndarray:
        if hasattr(y, "detach"):
            y = y.detach()
        out = y.float().to("cpu").numpy()
        return to_channels_last(out) if self.channels_first else out

    def infer(self, blob: np.ndarray) -> RawOutput:
        torch = self._torch
        if self.channels_first:
            blob = to_channels_first(blob)
        x = torch.as_tensor(blob, device=self.device)
        x = x.half() if self.half else x.float()

        with torch.no_grad():
            y = self.model(x.contiguous())

        if isinstance(y, (tuple, list)):
            return tuple(self._to_numpy(t) for t in y)
        return self._to_numpy(y)
