from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


def _static_shape(shape: Sequence[object]) -> Optional[Tuple[int, ...]]:
    # ORT reports dynamic dims as strings or None.
    if not all(isinstance(d, int) for d in shape):
        return None
    return tuple(int(d) for d in shape)


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None


class OnnxRuntimeBackend:
    """
    ONNX Runtime backend for the raw detector.

    Expects an NCHW float32 blob shaped (1, 3, H, W) and returns the raw
    (1, 4 + K, C) output. `session.run` blocks until the output is on the host.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        inputs = {i.name: i for i in self.session.get_inputs()}
        outputs = {o.name: o for o in self.session.get_outputs()}
        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name
        if self.input_name not in inputs:
            raise ValueError(f"Input name {self.input_name!r} not found. Available: {sorted(inputs)}")
        if self.output_name not in outputs:
            raise ValueError(f"Output name {self.output_name!r} not found. Available: {sorted(outputs)}")

        self._input_shape = _static_shape(inputs[self.input_name].shape)
        self._output_shape = _static_shape(outputs[self.output_name].shape)
        logger.info("ONNX Runtime session providers: %s", list(self.providers_in_use))

    @property
    def input_shape(self) -> Optional[Tuple[int, ...]]:
        return self._input_shape

    @property
    def output_shape(self) -> Optional[Tuple[int, ...]]:
        return self._output_shape

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def infer(self, blob: np.ndarray) -> np.ndarray:
        if self.session is None:
            raise RuntimeError("ONNX Runtime backend is closed.")
        outputs = self.session.run([self.output_name], {self.input_name: blob})
        return np.asarray(outputs[0])

    def close(self) -> None:
        self.session = None
