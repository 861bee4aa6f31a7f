from __future__ import annotations

from typing import List, Tuple

from .metadata import LabelTable
from .types import BoundingBox, DetectionOutputs

MAX_BOXES_PER_FRAME = 200


class BoxDecoder:
    """
    Maps graph outputs from model input pixels into display space.

    Display coordinates are centred: (0, 0) is the middle of the display.
    Only the first `max_boxes` detections (NMS order, best first) are decoded.
    """

    def __init__(
        self,
        labels: LabelTable,
        *,
        input_size: Tuple[int, int] = (640, 640),
        max_boxes: int = MAX_BOXES_PER_FRAME,
    ):
        if input_size[0] <= 0 or input_size[1] <= 0:
            raise ValueError(f"input_size must be positive, got {input_size}")
        if max_boxes < 0:
            raise ValueError("max_boxes must be >= 0")
        self.labels = labels
        self.input_size = (int(input_size[0]), int(input_size[1]))
        self.max_boxes = int(max_boxes)

    def _scales(self, display_size: Tuple[float, float]) -> Tuple[float, float]:
        display_w, display_h = display_size
        if display_w <= 0 or display_h <= 0:
            raise ValueError(f"display_size must be positive, got {display_size}")
        return display_w / self.input_size[0], display_h / self.input_size[1]

    def decode_one(self, outputs: DetectionOutputs, i: int, display_size: Tuple[float, float]) -> BoundingBox:
        scale_x, scale_y = self._scales(display_size)
        display_w, display_h = display_size
        cx, cy, w, h = (float(v) for v in outputs.coords[i])
        return BoundingBox(
            center_x=cx * scale_x - display_w / 2,
            center_y=cy * scale_y - display_h / 2,
            width=w * scale_x,
            height=h * scale_y,
            label=self.labels[int(outputs.label_ids[i])],
        )

    def decode(self, outputs: DetectionOutputs, display_size: Tuple[float, float]) -> List[BoundingBox]:
        count = min(len(outputs), self.max_boxes)
        return [self.decode_one(outputs, n, display_size) for n in range(count)]
