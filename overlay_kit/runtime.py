from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from .errors import ModelContractError
from .letterbox import RESIZE_POLICIES, resize_to_input
from .metadata import LabelTable
from .postprocess import DetectionGraph, PostprocessConfig, build_detection_graph
from .types import DetectionOutputs


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


class InferenceBackend(Protocol):
    @property
    def output_shape(self) -> Optional[Tuple[int, ...]]:
        ...

    def infer(self, blob: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, so `Models/...` paths work from any cwd.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root`, or the project root when
      `root` is "auto"/None.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PreprocessResult:
    # Square model-input image (BGR), also what the overlay is drawn on.
    image: np.ndarray
    blob: np.ndarray


@dataclass(frozen=True)
class FrameResult:
    image: np.ndarray
    outputs: DetectionOutputs


class DetectionPipeline:
    """
    Owns the inference backend and the detection graph for the lifetime of a run.

    One call handles one frame synchronously: resize -> NCHW blob -> blocking
    inference -> graph. Nothing is carried over between frames. Use as a
    context manager (or call `close()`) to release the backend.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        graph: DetectionGraph,
        *,
        backend_name: Optional[str] = None,
        input_size: Tuple[int, int] = (640, 640),
        resize_policy: str = "aspect_crop",
    ):
        if resize_policy not in RESIZE_POLICIES:
            raise ValueError(f"Unsupported resize policy: {resize_policy!r} (expected one of {RESIZE_POLICIES})")
        self.backend = backend
        self.graph = graph
        self.backend_name = backend_name
        self.input_size = (int(input_size[0]), int(input_size[1]))
        self.resize_policy = resize_policy
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")
        if image_bgr.shape[0] == 0 or image_bgr.shape[1] == 0:
            raise ValueError("image_bgr must not be empty.")

        img = resize_to_input(image_bgr, self.input_size, self.resize_policy)

        # BGR -> RGB, normalize, HWC -> CHW, add batch
        blob = img[:, :, ::-1].astype(np.float32) / 255.0
        blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])

        return PreprocessResult(image=img, blob=blob)

    def infer(self, blob: np.ndarray) -> DetectionOutputs:
        if self._closed:
            raise RuntimeError("DetectionPipeline is closed.")
        raw = self.backend.infer(blob)
        return self.graph(raw)

    def __call__(self, image_bgr: np.ndarray) -> FrameResult:
        prep = self.preprocess(image_bgr)
        return FrameResult(image=prep.image, outputs=self.infer(prep.blob))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "DetectionPipeline":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def discover_output_shape(backend: InferenceBackend, input_size: Tuple[int, int]) -> Tuple[int, ...]:
    """
    Raw output shape of the detector: the declared static shape when the runtime
    exposes one, otherwise the shape of a warm-up run on a zero frame.
    """

    input_shape = getattr(backend, "input_shape", None)
    expected_input = (1, 3, int(input_size[1]), int(input_size[0]))
    if input_shape is not None and tuple(input_shape) != expected_input:
        raise ModelContractError(f"Detector expects input {tuple(input_shape)}, pipeline is configured for {expected_input}.")

    declared = getattr(backend, "output_shape", None)
    if declared is not None:
        return tuple(int(d) for d in declared)

    probe = np.zeros(expected_input, dtype=np.float32)
    return tuple(np.asarray(backend.infer(probe)).shape)


def build_pipeline(
    backend: InferenceBackend,
    *,
    backend_name: Optional[str] = None,
    labels: Optional[LabelTable] = None,
    post_cfg: PostprocessConfig = PostprocessConfig(),
    input_size: Tuple[int, int] = (640, 640),
    resize_policy: str = "aspect_crop",
) -> DetectionPipeline:
    """
    Build the detection graph for an already opened backend.

    The backend is closed if the detector turns out to violate its contract.
    """

    try:
        output_shape = discover_output_shape(backend, input_size)
        graph = build_detection_graph(
            output_shape,
            post_cfg,
            num_classes=len(labels) if labels is not None else None,
        )
        pipeline = DetectionPipeline(
            backend,
            graph,
            backend_name=backend_name,
            input_size=input_size,
            resize_policy=resize_policy,
        )
    except Exception:
        close = getattr(backend, "close", None)
        if callable(close):
            close()
        raise

    logger.info(
        "Pipeline ready: backend=%s input=%dx%d resize=%s",
        backend_name,
        pipeline.input_size[0],
        pipeline.input_size[1],
        resize_policy,
    )
    return pipeline


def load_pipeline(
    model_path: PathLike,
    *,
    labels: Optional[LabelTable] = None,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    post_cfg: PostprocessConfig = PostprocessConfig(),
    input_size: Tuple[int, int] = (640, 640),
    resize_policy: str = "aspect_crop",
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    torch_output_index: int = 0,
) -> DetectionPipeline:
    """
    Open a detector on disk and build its pipeline.

        labels = load_label_table("Models/classes.txt")
        with load_pipeline("Models/yolov8n.onnx", labels=labels) as pipe:
            result = pipe(frame)

    Args:
        model_path: .onnx or TorchScript file; relative paths resolve against the project root by default
        labels: when given, the detector's class count must match the table
        backend: "onnxruntime" / "torchscript", or None to infer from the extension
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        opened = OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(
                providers=onnx_providers,
                input_name=onnx_input_name,
                output_name=onnx_output_name,
            ),
        )
    elif chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        opened = TorchScriptBackend(
            resolved,
            TorchScriptBackendConfig(device=torch_device, half=torch_half, output_index=torch_output_index),
        )
    else:
        raise ValueError(f"Unsupported backend: {backend!r}")

    logger.info("Loaded %s model: %s", chosen, resolved)
    return build_pipeline(
        opened,
        backend_name=chosen,
        labels=labels,
        post_cfg=post_cfg,
        input_size=input_size,
        resize_policy=resize_policy,
    )
