from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .types import BoundingBox

# BGR
YELLOW = (0, 255, 255)
DEFAULT_FONT_SIZE = 40


@dataclass
class AnnotationVisual:
    """
    A reusable overlay entity: one box outline plus its label.

    `position` is the box centre relative to the display centre with y pointing
    up, the way the display surface is addressed.
    """

    slot: int
    position: Tuple[float, float] = (0.0, 0.0)
    size: Tuple[float, float] = (0.0, 0.0)
    label: str = ""
    font_size: int = DEFAULT_FONT_SIZE
    color: Tuple[int, int, int] = YELLOW
    active: bool = True


class AnnotationPool:
    """
    Growth-only arena of overlay visuals indexed by slot.

    Every frame starts by deactivating all visuals; detection n then reuses
    slot n if it exists and appends a new visual otherwise. Visuals are never
    destroyed, so the pool size is the high-water mark of simultaneous
    detections.
    """

    def __init__(self, color: Tuple[int, int, int] = YELLOW):
        self.color = color
        self._visuals: List[AnnotationVisual] = []

    def __len__(self) -> int:
        return len(self._visuals)

    @property
    def visuals(self) -> Tuple[AnnotationVisual, ...]:
        return tuple(self._visuals)

    @property
    def high_water_mark(self) -> int:
        # Growth-only, so the size is the most visuals ever active at once.
        return len(self._visuals)

    @property
    def active_count(self) -> int:
        return sum(1 for v in self._visuals if v.active)

    def active_visuals(self) -> List[AnnotationVisual]:
        return [v for v in self._visuals if v.active]

    def clear(self) -> None:
        for visual in self._visuals:
            visual.active = False

    def _create(self) -> AnnotationVisual:
        visual = AnnotationVisual(slot=len(self._visuals), color=self.color)
        self._visuals.append(visual)
        return visual

    def draw(self, box: BoundingBox, slot: int, font_size: float) -> AnnotationVisual:
        if slot < 0 or slot > len(self._visuals):
            raise IndexError(f"slot {slot} is outside the pool (size={len(self._visuals)}); fill slots in order")

        if slot < len(self._visuals):
            visual = self._visuals[slot]
            visual.active = True
        else:
            visual = self._create()

        visual.position = (box.center_x, -box.center_y)
        visual.size = (box.width, box.height)
        visual.label = box.label
        visual.font_size = int(font_size)
        return visual

    def render(self, boxes: Iterable[BoundingBox], font_size: float) -> int:
        """
        Show exactly `boxes` for this frame. Returns the number drawn.
        """

        self.clear()
        drawn = 0
        for n, box in enumerate(boxes):
            self.draw(box, n, font_size)
            drawn += 1
        return drawn
