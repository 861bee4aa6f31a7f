import unittest
from typing import List, Optional

import numpy as np

from Live_Overlay.ingest import ThreadedFrameSource
from Live_Overlay.runner import OverlayRunner
from overlay_kit.decode import BoxDecoder
from overlay_kit.errors import LabelIndexError
from overlay_kit.metadata import LabelTable
from overlay_kit.pool import AnnotationPool
from overlay_kit.postprocess import PostprocessConfig
from overlay_kit.runtime import build_pipeline
from overlay_kit.visualize import OpenCVCanvas

NUM_CLASSES = 3
CANDIDATES = 16
LABELS = LabelTable(names=("person", "giraffe", "zebra"))


class QueueBackend:
    """Returns one queued raw output per inference."""

    def __init__(self, raws: List[np.ndarray]):
        self.raws = list(raws)
        self.output_shape = (1, 4 + NUM_CLASSES, CANDIDATES)
        self.calls = 0

    def infer(self, blob: np.ndarray) -> np.ndarray:
        self.calls += 1
        return self.raws.pop(0)

    def close(self) -> None:
        pass


class ListSource:
    def __init__(self, frames: List[Optional[np.ndarray]]):
        self.frames = list(frames)
        self.closed = False

    @property
    def exhausted(self) -> bool:
        return not self.frames

    def read(self) -> Optional[np.ndarray]:
        return self.frames.pop(0) if self.frames else None

    def close(self) -> None:
        self.closed = True


class DroppedCameraSource:
    exhausted = False

    def read(self) -> Optional[np.ndarray]:
        raise RuntimeError("Reconnect failed after 3 tries.")

    def close(self) -> None:
        pass


def _raw(detections) -> np.ndarray:
    """detections: list of (cx, cy, w, h, class_id, score) on separate anchors."""
    raw = np.zeros((1, 4 + NUM_CLASSES, CANDIDATES), dtype=np.float32)
    for anchor, (cx, cy, w, h, cls, score) in enumerate(detections):
        raw[0, 0:4, anchor] = [cx, cy, w, h]
        raw[0, 4 + cls, anchor] = score
    return raw


def _frame() -> np.ndarray:
    return np.zeros((360, 640, 3), dtype=np.uint8)


THREE_APART = [
    (100, 100, 40, 40, 0, 0.9),
    (300, 300, 40, 40, 1, 0.8),
    (500, 500, 40, 40, 2, 0.7),
]


class TestOverlayRunner(unittest.TestCase):
    def _runner(self, raws: List[np.ndarray], labels: LabelTable = LABELS) -> OverlayRunner:
        pipeline = build_pipeline(QueueBackend(raws), post_cfg=PostprocessConfig(0.5, 0.5), input_size=(640, 640))
        return OverlayRunner(
            pipeline,
            BoxDecoder(labels, input_size=(640, 640)),
            AnnotationPool(),
            OpenCVCanvas(1280, 720),
            font_fraction=0.05,
        )

    def test_tick_draws_detections(self) -> None:
        runner = self._runner([_raw(THREE_APART)])
        tick = runner.tick(ListSource([_frame()]))
        self.assertTrue(tick.ran)
        self.assertEqual([b.label for b in tick.boxes], ["person", "giraffe", "zebra"])
        self.assertEqual(tick.image.shape, (720, 1280, 3))
        self.assertEqual(runner.pool.active_count, 3)
        self.assertEqual(runner.pool.visuals[0].font_size, 36)

    def test_missing_frame_keeps_stale_overlays(self) -> None:
        runner = self._runner([_raw(THREE_APART)])
        source = ListSource([_frame(), None])
        runner.tick(source)
        before = [(v.position, v.label, v.active) for v in runner.pool.visuals]

        tick = runner.tick(source)
        self.assertFalse(tick.ran)
        self.assertEqual([(v.position, v.label, v.active) for v in runner.pool.visuals], before)
        self.assertEqual(runner.pipeline.backend.calls, 1)

    def test_zero_detections_clear_overlays(self) -> None:
        runner = self._runner([_raw(THREE_APART), _raw([])])
        source = ListSource([_frame(), _frame()])
        runner.tick(source)
        tick = runner.tick(source)
        self.assertTrue(tick.ran)
        self.assertEqual(tick.boxes, ())
        self.assertEqual(len(runner.pool), 3)
        self.assertEqual(runner.pool.active_count, 0)

    def test_overlapping_boxes_end_to_end(self) -> None:
        overlapping = [
            (100, 100, 50, 50, 1, 0.9),
            (105, 100, 50, 50, 1, 0.8),
            (100, 105, 50, 50, 1, 0.3),
        ]
        runner = self._runner([_raw(overlapping)])
        tick = runner.tick(ListSource([_frame()]))
        self.assertEqual(len(tick.boxes), 1)
        self.assertEqual(tick.boxes[0].label, "giraffe")
        self.assertAlmostEqual(tick.boxes[0].center_x, 100 * 2 - 640)
        self.assertAlmostEqual(tick.boxes[0].center_y, 100 * 1.125 - 360)

    def test_label_outside_table_is_fatal(self) -> None:
        runner = self._runner([_raw([(100, 100, 40, 40, 2, 0.9)])], labels=LabelTable(names=("person", "giraffe")))
        with self.assertRaises(LabelIndexError):
            runner.tick(ListSource([_frame()]))

    def test_run_collects_stats(self) -> None:
        raws = [_raw(THREE_APART), _raw(THREE_APART[:1]), _raw([])]
        runner = self._runner(raws)
        source = ListSource([_frame(), None, _frame(), _frame(), _frame()])
        stats = runner.run(source, target_fps=0, max_frames=3)
        self.assertEqual(stats.frames_processed, 3)
        self.assertEqual(stats.skipped_ticks, 1)
        self.assertEqual(stats.max_boxes_seen, 3)
        self.assertEqual(stats.pool_size, 3)
        self.assertEqual(len(source.frames), 1)

    def test_run_stops_when_source_exhausted(self) -> None:
        runner = self._runner([_raw([])])
        stats = runner.run(ListSource([_frame()]), target_fps=0)
        self.assertEqual(stats.frames_processed, 1)
        self.assertEqual(stats.pool_size, 0)

    def test_run_raises_capture_thread_failure(self) -> None:
        runner = self._runner([])
        source = ThreadedFrameSource(DroppedCameraSource())
        try:
            with self.assertRaises(RuntimeError) as ctx:
                runner.run(source, target_fps=0)
            self.assertIn("Reconnect failed", str(ctx.exception.__cause__))
        finally:
            source.close()
        self.assertEqual(runner.pipeline.backend.calls, 0)


if __name__ == "__main__":
    unittest.main()
