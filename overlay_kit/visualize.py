from __future__ import annotations

from typing import Tuple

import numpy as np

from .pool import AnnotationPool, AnnotationVisual

LABEL_INSET_PX = 20


class OpenCVCanvas:
    """
    Render target backed by an OpenCV BGR image of a fixed display size.

    The background frame is scaled to the display size and every active visual
    of the pool is painted as a box outline with its label in the top-left
    corner, inset from the left edge.
    """

    def __init__(self, width: int, height: int, *, box_thickness: int = 2, font_thickness: int = 1):
        if width <= 0 or height <= 0:
            raise ValueError(f"Display size must be positive, got {(width, height)}")
        self.width = int(width)
        self.height = int(height)
        self.box_thickness = int(box_thickness)
        self.font_thickness = int(font_thickness)

    @property
    def display_size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_pixel_rect(self, visual: AnnotationVisual) -> Tuple[int, int, int, int]:
        # Visual positions are centre-origin with y up; pixels are top-left origin with y down.
        px = visual.position[0] + self.width / 2
        py = self.height / 2 - visual.position[1]
        w, h = visual.size
        x1 = int(np.clip(round(px - w / 2), 0, self.width - 1))
        y1 = int(np.clip(round(py - h / 2), 0, self.height - 1))
        x2 = int(np.clip(round(px + w / 2), 0, self.width - 1))
        y2 = int(np.clip(round(py + h / 2), 0, self.height - 1))
        return x1, y1, x2, y2

    def draw(self, image_bgr: np.ndarray, pool: AnnotationPool) -> np.ndarray:
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for OpenCVCanvas. Install with `pip install opencv-python`.") from e

        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        if image_bgr.shape[:2] != (self.height, self.width):
            out = cv2.resize(image_bgr, (self.width, self.height), interpolation=cv2.INTER_LINEAR)
        else:
            out = image_bgr.copy()

        for visual in pool.active_visuals():
            x1, y1, x2, y2 = self.to_pixel_rect(visual)
            cv2.rectangle(out, (x1, y1), (x2, y2), visual.color, thickness=self.box_thickness)

            if not visual.label:
                continue
            font_scale = cv2.getFontScaleFromHeight(cv2.FONT_HERSHEY_SIMPLEX, max(1, visual.font_size), self.font_thickness)
            (_, th), _ = cv2.getTextSize(visual.label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, self.font_thickness)
            cv2.putText(
                out,
                visual.label,
                (x1 + LABEL_INSET_PX, min(y1 + th, self.height - 1)),
                cv2.FONT_HERSHEY_SIMPLEX,
                font_scale,
                visual.color,
                thickness=self.font_thickness,
                lineType=cv2.LINE_AA,
            )

        return out
