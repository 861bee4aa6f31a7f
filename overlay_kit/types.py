from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import ModelContractError


@dataclass(frozen=True)
class BoundingBox:
    """
    One detection mapped into display space.

    The display surface is addressed from its center, so `center_x`/`center_y`
    are offsets from the middle of the display (y grows downwards).
    """

    center_x: float
    center_y: float
    width: float
    height: float
    label: str

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        half_w = self.width / 2
        half_h = self.height / 2
        return (
            self.center_x - half_w,
            self.center_y - half_h,
            self.center_x + half_w,
            self.center_y + half_h,
        )


@dataclass(frozen=True)
class DetectionOutputs:
    """
    The two outputs of the post-processing graph, index-aligned.

    - coords: (N, 4) float32 as cx, cy, w, h in model input pixels
    - label_ids: (N,) int64 class indices
    """

    coords: np.ndarray
    label_ids: np.ndarray

    def __post_init__(self) -> None:
        coords = np.asarray(self.coords, dtype=np.float32)
        if coords.size == 0:
            coords = coords.reshape(0, 4)
        if coords.ndim != 2 or coords.shape[1] != 4:
            raise ModelContractError(f"coords must have shape (N, 4), got {coords.shape}.")
        label_ids = np.asarray(self.label_ids).reshape(-1)
        if label_ids.size and not np.issubdtype(label_ids.dtype, np.integer):
            raise ModelContractError(f"label_ids must be integers, got dtype {label_ids.dtype}.")
        if coords.shape[0] != label_ids.shape[0]:
            raise ModelContractError(
                f"coords and label_ids are not aligned ({coords.shape[0]} vs {label_ids.shape[0]})."
            )
        object.__setattr__(self, "coords", coords)
        object.__setattr__(self, "label_ids", label_ids.astype(np.int64))

    def __len__(self) -> int:
        return int(self.coords.shape[0])

    @classmethod
    def empty(cls) -> "DetectionOutputs":
        return cls(coords=np.zeros((0, 4), dtype=np.float32), label_ids=np.zeros((0,), dtype=np.int64))
