import tempfile
import unittest
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from overlay_kit.errors import ModelContractError
from overlay_kit.letterbox import aspect_crop, letterbox
from overlay_kit.metadata import LabelTable
from overlay_kit.postprocess import PostprocessConfig
from overlay_kit.runtime import build_pipeline, load_pipeline


class FakeBackend:
    def __init__(
        self,
        raw: np.ndarray,
        *,
        output_shape: Optional[Tuple[int, ...]] = None,
        input_shape: Optional[Tuple[int, ...]] = None,
    ):
        self.raw = raw
        self.output_shape = output_shape
        self.input_shape = input_shape
        self.blobs: List[np.ndarray] = []
        self.closed = False

    def infer(self, blob: np.ndarray) -> np.ndarray:
        self.blobs.append(blob)
        return self.raw

    def close(self) -> None:
        self.closed = True


def _raw_one_box(num_classes: int = 2, candidates: int = 8) -> np.ndarray:
    raw = np.zeros((1, 4 + num_classes, candidates), dtype=np.float32)
    raw[0, 0:4, 0] = [320, 240, 100, 50]
    raw[0, 4 + num_classes - 1, 0] = 0.9
    return raw


class TestResizePolicies(unittest.TestCase):
    def test_aspect_crop_samples_left_square_of_landscape(self) -> None:
        img = np.full((720, 1280, 3), 255, dtype=np.uint8)
        img[:, :720] = 0
        out = aspect_crop(img, (640, 640))
        self.assertEqual(out.shape, (640, 640, 3))
        self.assertEqual(int(out.max()), 0)

    def test_aspect_crop_clamps_portrait_edge(self) -> None:
        img = np.zeros((640, 320, 3), dtype=np.uint8)
        img[:, -1] = 200
        out = aspect_crop(img, (640, 640))
        self.assertEqual(out.shape, (640, 640, 3))
        self.assertTrue(np.all(out[:, 400:] == 200))
        self.assertEqual(int(out[:, :300].max()), 0)

    def test_letterbox_pads_to_square(self) -> None:
        img = np.zeros((320, 640, 3), dtype=np.uint8)
        out = letterbox(img, (640, 640))
        self.assertEqual(out.shape, (640, 640, 3))
        self.assertEqual(tuple(int(v) for v in out[0, 0]), (114, 114, 114))
        self.assertEqual(int(out[320, 320].max()), 0)


class TestDetectionPipeline(unittest.TestCase):
    def test_preprocess_layout(self) -> None:
        backend = FakeBackend(_raw_one_box(), output_shape=(1, 6, 8))
        pipeline = build_pipeline(backend)
        img = np.zeros((480, 640, 3), dtype=np.uint8)
        img[..., 0] = 255  # blue in BGR

        prep = pipeline.preprocess(img)
        self.assertEqual(prep.blob.shape, (1, 3, 640, 640))
        self.assertEqual(prep.blob.dtype, np.float32)
        self.assertEqual(prep.image.shape, (640, 640, 3))
        self.assertTrue(np.allclose(prep.blob[0, 2], 1.0))
        self.assertTrue(np.allclose(prep.blob[0, 0], 0.0))

    def test_preprocess_rejects_bad_frames(self) -> None:
        pipeline = build_pipeline(FakeBackend(_raw_one_box(), output_shape=(1, 6, 8)))
        with self.assertRaises(TypeError):
            pipeline.preprocess(None)
        with self.assertRaises(ValueError):
            pipeline.preprocess(np.zeros((10, 10), dtype=np.uint8))

    def test_frame_to_outputs(self) -> None:
        labels = LabelTable(names=("person", "giraffe"))
        backend = FakeBackend(_raw_one_box(), output_shape=(1, 6, 8))
        with build_pipeline(backend, labels=labels, post_cfg=PostprocessConfig(0.5, 0.5)) as pipeline:
            result = pipeline(np.zeros((720, 1280, 3), dtype=np.uint8))
        self.assertTrue(backend.closed)
        self.assertEqual(len(result.outputs), 1)
        self.assertTrue(np.allclose(result.outputs.coords[0], [320, 240, 100, 50]))
        self.assertEqual(result.outputs.label_ids.tolist(), [1])
        self.assertEqual(len(backend.blobs), 1)

    def test_probe_when_shape_not_declared(self) -> None:
        backend = FakeBackend(_raw_one_box())
        pipeline = build_pipeline(backend, input_size=(320, 320))
        self.assertEqual(pipeline.graph.layout.shape, (1, 6, 8))
        self.assertEqual(backend.blobs[0].shape, (1, 3, 320, 320))
        self.assertEqual(float(np.abs(backend.blobs[0]).sum()), 0.0)

    def test_malformed_model_fails_at_startup(self) -> None:
        backend = FakeBackend(np.zeros((1, 8400, 84), dtype=np.float32), output_shape=(1, 8400, 84))
        with self.assertRaises(ModelContractError):
            build_pipeline(backend, labels=LabelTable(names=tuple(f"c{i}" for i in range(80))))
        self.assertTrue(backend.closed)

    def test_label_table_must_match_class_count(self) -> None:
        backend = FakeBackend(_raw_one_box(num_classes=2), output_shape=(1, 6, 8))
        with self.assertRaises(ModelContractError):
            build_pipeline(backend, labels=LabelTable(names=("only-one",)))

    def test_input_shape_must_match(self) -> None:
        backend = FakeBackend(_raw_one_box(), output_shape=(1, 6, 8), input_shape=(1, 3, 320, 320))
        with self.assertRaises(ModelContractError):
            build_pipeline(backend, input_size=(640, 640))

    def test_closed_pipeline_refuses_frames(self) -> None:
        backend = FakeBackend(_raw_one_box(), output_shape=(1, 6, 8))
        pipeline = build_pipeline(backend)
        pipeline.close()
        pipeline.close()
        self.assertTrue(pipeline.closed)
        with self.assertRaises(RuntimeError):
            pipeline(np.zeros((64, 64, 3), dtype=np.uint8))

    def test_unknown_resize_policy(self) -> None:
        with self.assertRaises(ValueError):
            build_pipeline(FakeBackend(_raw_one_box(), output_shape=(1, 6, 8)), resize_policy="pad")

    def test_load_pipeline_unknown_extension(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "model.bin"
        path.write_bytes(b"")
        with self.assertRaises(ValueError):
            load_pipeline(path)
        with self.assertRaises(ValueError):
            load_pipeline(path, backend="tensorrt")


if __name__ == "__main__":
    unittest.main()
