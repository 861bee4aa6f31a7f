from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.5
    score_threshold: float = 0.5
    # None keeps every survivor.
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError(f"iou_threshold must be within [0, 1], got {self.iou_threshold}")
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ValueError(f"score_threshold must be within [0, 1], got {self.score_threshold}")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 (or None)")


def box_iou(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against an (M, 4) array of xyxy boxes.
    """

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area = max(0.0, float(box[2] - box[0])) * max(0.0, float(box[3] - box[1]))
    areas = np.maximum(0.0, boxes[:, 2] - boxes[:, 0]) * np.maximum(0.0, boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    return inter / np.maximum(union, 1e-6)


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).

    Candidates scoring below `score_threshold` are dropped before suppression.
    A candidate is suppressed when its IoU with an already kept box is strictly
    greater than `iou_threshold`. Returns indices into the original arrays,
    ordered by descending score (equal scores keep their input order).
    """

    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes and scores differ in length ({boxes.shape[0]} vs {scores.shape[0]})")

    candidates = np.flatnonzero(scores >= cfg.score_threshold)
    if candidates.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = candidates[np.argsort(-scores[candidates], kind="stable")]
    keep = []

    while order.size > 0:
        i = order[0]
        keep.append(i)
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break

        rest = order[1:]
        iou = box_iou(boxes[i], boxes[rest])
        order = rest[iou <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)
