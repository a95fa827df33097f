from __future__ import annotations

from typing import List, Optional, Sequence, Union

import numpy as np

from .errors import InvalidInputKind
from .square import SquareTransform, check_image, image_to_square, square_transform
from .types import Dimensions


NetInputLike = Union[np.ndarray, Sequence[np.ndarray], "NetInput"]


class NetInput:
    """
    One or more images waiting to be turned into a square pixel batch.

    Images are OpenCV-style (H, W, 3) arrays, BGR unless `bgr=False`. A 4-D
    array is treated as an already batched stack of images.
    """

    def __init__(self, images: Sequence[np.ndarray], *, bgr: bool = True):
        if len(images) == 0:
            raise InvalidInputKind("NetInput needs at least one image.")
        for image in images:
            check_image(image)
        self._images: List[np.ndarray] = list(images)
        self.bgr = bgr
        self._input_size: Optional[int] = None
        self._transforms: List[Optional[SquareTransform]] = [None] * len(self._images)

    @property
    def batch_size(self) -> int:
        return len(self._images)

    @property
    def input_size(self) -> Optional[int]:
        return self._input_size

    def get_input_width(self, batch_idx: int) -> int:
        return int(self._images[batch_idx].shape[1])

    def get_input_height(self, batch_idx: int) -> int:
        return int(self._images[batch_idx].shape[0])

    def get_input_dimensions(self, batch_idx: int) -> Dimensions:
        return Dimensions(self.get_input_width(batch_idx), self.get_input_height(batch_idx))

    def get_transform(self, batch_idx: int) -> SquareTransform:
        t = self._transforms[batch_idx]
        if t is None:
            raise RuntimeError("to_batch_tensor() has not been called for this input.")
        return t

    def get_reshaped_input_dimensions(self, batch_idx: int) -> Dimensions:
        return self.get_transform(batch_idx).reshaped_dims

    def to_batch_tensor(self, input_size: int, is_center_image: bool = True) -> np.ndarray:
        """
        Square every image to `input_size` and stack them.

        Returns:
            read-only float32 array shaped (batch, input_size, input_size, 3), RGB, 0..255
        """

        squares = []
        for i, image in enumerate(self._images):
            h, w = image.shape[:2]
            self._transforms[i] = square_transform(w, h, input_size)
            sq = image_to_square(image, input_size, center_image=is_center_image)
            if self.bgr:
                sq = sq[:, :, ::-1]
            squares.append(sq.astype(np.float32))

        self._input_size = int(input_size)
        batch = np.stack(squares, axis=0)
        batch.setflags(write=False)
        return batch


def to_net_input(inputs: NetInputLike, *, bgr: bool = True) -> NetInput:
    if isinstance(inputs, NetInput):
        return inputs
    if isinstance(inputs, np.ndarray):
        if inputs.ndim == 4:
            return NetInput(list(inputs), bgr=bgr)
        return NetInput([inputs], bgr=bgr)
    if isinstance(inputs, (list, tuple)):
        return NetInput(list(inputs), bgr=bgr)
    raise InvalidInputKind(
        f"Expected np.ndarray image(s), a 4-D batch or NetInput, got {type(inputs).__name__}"
    )
