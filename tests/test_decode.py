import unittest

import numpy as np

from overlay_kit.decode import BoxDecoder
from overlay_kit.errors import LabelIndexError
from overlay_kit.metadata import LabelTable
from overlay_kit.types import DetectionOutputs

LABELS = LabelTable(names=("person", "giraffe", "car"))


def _outputs(coords, label_ids) -> DetectionOutputs:
    return DetectionOutputs(coords=np.asarray(coords, dtype=np.float32), label_ids=np.asarray(label_ids, dtype=np.int64))


class TestBoxDecoder(unittest.TestCase):
    def test_maps_into_centred_display_space(self) -> None:
        decoder = BoxDecoder(LABELS, input_size=(640, 640))
        boxes = decoder.decode(_outputs([[320, 320, 64, 64], [0, 640, 10, 20]], [1, 2]), (1280, 720))

        self.assertEqual(len(boxes), 2)
        self.assertAlmostEqual(boxes[0].center_x, 0.0)
        self.assertAlmostEqual(boxes[0].center_y, 0.0)
        self.assertAlmostEqual(boxes[0].width, 128.0)
        self.assertAlmostEqual(boxes[0].height, 72.0)
        self.assertEqual(boxes[0].label, "giraffe")

        self.assertAlmostEqual(boxes[1].center_x, -640.0)
        self.assertAlmostEqual(boxes[1].center_y, 360.0)
        self.assertEqual(boxes[1].label, "car")

    def test_scale_linear_in_display_width(self) -> None:
        decoder = BoxDecoder(LABELS, input_size=(640, 640))
        outputs = _outputs([[100, 200, 30, 40], [500, 50, 80, 10]], [0, 0])
        narrow = decoder.decode(outputs, (800, 600))
        wide = decoder.decode(outputs, (1600, 600))
        for a, b in zip(narrow, wide):
            self.assertAlmostEqual(b.center_x, 2 * a.center_x, places=4)
            self.assertAlmostEqual(b.width, 2 * a.width, places=4)
            self.assertAlmostEqual(b.center_y, a.center_y, places=4)
            self.assertAlmostEqual(b.height, a.height, places=4)

    def test_caps_boxes_in_emission_order(self) -> None:
        n = 250
        coords = np.tile(np.array([[10, 10, 5, 5]], dtype=np.float32), (n, 1))
        coords[:, 0] = np.arange(n)
        decoder = BoxDecoder(LABELS)
        boxes = decoder.decode(_outputs(coords, np.zeros(n, dtype=np.int64)), (640, 640))
        self.assertEqual(len(boxes), 200)
        self.assertAlmostEqual(boxes[-1].center_x, 199 - 320)

        small = BoxDecoder(LABELS, max_boxes=3).decode(_outputs(coords, np.zeros(n, dtype=np.int64)), (640, 640))
        self.assertEqual(len(small), 3)

    def test_zero_detections(self) -> None:
        self.assertEqual(BoxDecoder(LABELS).decode(DetectionOutputs.empty(), (640, 480)), [])

    def test_label_out_of_range_fails(self) -> None:
        decoder = BoxDecoder(LABELS)
        with self.assertRaises(LabelIndexError):
            decoder.decode(_outputs([[1, 1, 1, 1], [2, 2, 2, 2]], [0, 3]), (640, 640))

    def test_invalid_display_size(self) -> None:
        with self.assertRaises(ValueError):
            BoxDecoder(LABELS).decode_one(_outputs([[1, 1, 1, 1]], [0]), 0, (0, 480))


if __name__ == "__main__":
    unittest.main()
