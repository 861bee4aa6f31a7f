import unittest

import numpy as np

from overlay_kit.pool import YELLOW, AnnotationPool
from overlay_kit.types import BoundingBox
from overlay_kit.visualize import OpenCVCanvas


def _boxes(n: int):
    return [BoundingBox(center_x=10.0 * i, center_y=5.0 * i, width=20.0, height=30.0, label=f"obj{i}") for i in range(n)]


class TestAnnotationPool(unittest.TestCase):
    def test_pool_never_shrinks(self) -> None:
        pool = AnnotationPool()
        high_water = 0
        for count in [2, 5, 1, 0, 3, 7, 2]:
            pool.render(_boxes(count), font_size=36)
            high_water = max(high_water, count)
            self.assertEqual(len(pool), high_water)
            self.assertEqual(pool.high_water_mark, high_water)
            self.assertEqual(pool.active_count, count)

    def test_zero_detections_deactivate_everything(self) -> None:
        pool = AnnotationPool()
        pool.render(_boxes(4), font_size=36)
        self.assertEqual(pool.active_count, 4)
        drawn = pool.render([], font_size=36)
        self.assertEqual(drawn, 0)
        self.assertEqual(len(pool), 4)
        self.assertTrue(all(not v.active for v in pool.visuals))

    def test_visuals_are_reused_by_slot(self) -> None:
        pool = AnnotationPool()
        pool.render(_boxes(2), font_size=36)
        first = pool.visuals
        pool.render(_boxes(3), font_size=18.9)
        self.assertIs(pool.visuals[0], first[0])
        self.assertIs(pool.visuals[1], first[1])
        self.assertEqual([v.slot for v in pool.visuals], [0, 1, 2])
        self.assertEqual(pool.visuals[2].font_size, 18)

    def test_visual_is_restyled_from_box(self) -> None:
        pool = AnnotationPool()
        visual = pool.draw(BoundingBox(center_x=12.0, center_y=-40.0, width=8.0, height=6.0, label="giraffe"), 0, 32.0)
        self.assertEqual(visual.position, (12.0, 40.0))
        self.assertEqual(visual.size, (8.0, 6.0))
        self.assertEqual(visual.label, "giraffe")
        self.assertEqual(visual.color, YELLOW)
        self.assertTrue(visual.active)

    def test_slots_fill_in_order(self) -> None:
        pool = AnnotationPool()
        with self.assertRaises(IndexError):
            pool.draw(_boxes(1)[0], 1, 20)


class TestOpenCVCanvas(unittest.TestCase):
    def test_pixel_rect_from_centred_position(self) -> None:
        canvas = OpenCVCanvas(200, 100)
        pool = AnnotationPool()
        # 20x10 box centred 30 px right of and 10 px below the display centre
        visual = pool.draw(BoundingBox(center_x=30.0, center_y=10.0, width=20.0, height=10.0, label="x"), 0, 5)
        self.assertEqual(canvas.to_pixel_rect(visual), (120, 55, 140, 65))

    def test_draws_only_active_visuals(self) -> None:
        canvas = OpenCVCanvas(200, 100, box_thickness=1)
        pool = AnnotationPool()
        pool.render([BoundingBox(center_x=0.0, center_y=0.0, width=40.0, height=20.0, label="")], font_size=5)
        background = np.zeros((50, 100, 3), dtype=np.uint8)

        painted = canvas.draw(background, pool)
        self.assertEqual(painted.shape, (100, 200, 3))
        self.assertEqual(tuple(int(v) for v in painted[40, 90]), YELLOW)

        pool.render([], font_size=5)
        cleared = canvas.draw(background, pool)
        self.assertEqual(int(cleared.sum()), 0)


if __name__ == "__main__":
    unittest.main()
