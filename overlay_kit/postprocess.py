from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import ModelContractError
from .nms import NMSConfig, nms
from .types import DetectionOutputs

logger = logging.getLogger(__name__)

# Right-multiplying an (N, 4) [cx, cy, w, h] array gives [x1, y1, x2, y2].
CENTERS_TO_CORNERS = np.array(
    [
        [1.0, 0.0, 1.0, 0.0],
        [0.0, 1.0, 0.0, 1.0],
        [-0.5, 0.0, 0.5, 0.0],
        [0.0, -0.5, 0.0, 0.5],
    ],
    dtype=np.float32,
)


def centers_to_corners(boxes: np.ndarray) -> np.ndarray:
    return np.asarray(boxes, dtype=np.float32).reshape(-1, 4) @ CENTERS_TO_CORNERS


@dataclass(frozen=True)
class PostprocessConfig:
    """
    Thresholds baked into the detection graph. Changing them means building a
    new graph.
    """

    iou_threshold: float = 0.5
    score_threshold: float = 0.5

    def __post_init__(self) -> None:
        self.nms_config()

    def nms_config(self) -> NMSConfig:
        return NMSConfig(iou_threshold=self.iou_threshold, score_threshold=self.score_threshold)


@dataclass(frozen=True)
class RawOutputLayout:
    """
    Raw detector output layout (1, 4 + K, C): four box rows (cx, cy, w, h)
    followed by K class-score rows, across C candidate anchors.
    """

    num_classes: int
    num_candidates: int

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (1, 4 + self.num_classes, self.num_candidates)

    @classmethod
    def from_shape(cls, shape: Sequence[object], num_classes: Optional[int] = None) -> "RawOutputLayout":
        dims = tuple(shape)
        if len(dims) != 3 or not all(isinstance(d, (int, np.integer)) for d in dims):
            raise ModelContractError(f"Raw detector output must have a static 3-D shape (1, 4+K, C), got {dims}.")
        batch, channels, candidates = (int(d) for d in dims)
        if batch != 1:
            raise ModelContractError(f"Batch > 1 is not supported (got shape {dims}).")
        if channels <= 4 or candidates < 1:
            raise ModelContractError(f"Expected (1, 4+K, C) with K >= 1 and C >= 1, got {dims}.")
        if num_classes is not None and channels != 4 + int(num_classes):
            raise ModelContractError(
                f"Detector emits {channels - 4} class scores but the label table has {num_classes} labels "
                f"(raw output shape {dims})."
            )
        return cls(num_classes=channels - 4, num_candidates=candidates)


class DetectionGraph:
    """
    Post-processing applied to every raw detector output:

        raw (1, 4+K, C)
          -> box_coords (C, 4), all_scores (K, C)
          -> scores = max over classes, class_ids = argmax over classes
          -> corners = box_coords @ CENTERS_TO_CORNERS
          -> indices = nms(corners, scores)
          -> coords = box_coords[indices], label_ids = class_ids[indices]

    Center-form boxes are emitted; corner form is only used for suppression.
    """

    def __init__(self, layout: RawOutputLayout, cfg: PostprocessConfig):
        self.layout = layout
        self.cfg = cfg
        self._nms_cfg = cfg.nms_config()

    def __call__(self, raw: np.ndarray) -> DetectionOutputs:
        p = np.asarray(raw)
        if p.shape != self.layout.shape:
            raise ModelContractError(f"Raw output shape {p.shape} does not match the built layout {self.layout.shape}.")

        box_coords = p[0, 0:4, :].T.astype(np.float32)  # (C, 4)
        all_scores = p[0, 4:, :]  # (K, C)

        scores = all_scores.max(axis=0)
        class_ids = all_scores.argmax(axis=0)

        corners = centers_to_corners(box_coords)
        indices = nms(corners, scores, self._nms_cfg)

        return DetectionOutputs(coords=box_coords[indices], label_ids=class_ids[indices])


def build_detection_graph(
    output_shape: Sequence[object],
    cfg: PostprocessConfig = PostprocessConfig(),
    *,
    num_classes: Optional[int] = None,
) -> DetectionGraph:
    """
    Validate the detector's raw output shape and return the graph for it.

    Raises ModelContractError when the layout is not (1, 4+K, C) or when K
    disagrees with `num_classes`.
    """

    layout = RawOutputLayout.from_shape(output_shape, num_classes=num_classes)
    graph = DetectionGraph(layout, cfg)
    logger.info(
        "Built detection graph: classes=%d candidates=%d iou=%.2f score=%.2f",
        layout.num_classes,
        layout.num_candidates,
        cfg.iou_threshold,
        cfg.score_threshold,
    )
    return graph
