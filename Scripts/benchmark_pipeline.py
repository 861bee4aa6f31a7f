from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List

import cv2
import numpy as np
from tqdm import tqdm

from overlay_kit import (
    AnnotationPool,
    BoxDecoder,
    LabelTable,
    OpenCVCanvas,
    PostprocessConfig,
    build_detection_graph,
    load_label_table,
    load_pipeline,
)

STAGES = ("preprocess", "inference", "graph", "decode", "overlay")


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)),
        p50_ms=_percentile(ms_sorted, 50.0),
        p90_ms=_percentile(ms_sorted, 90.0),
        p95_ms=_percentile(ms_sorted, 95.0),
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _iter_frames(args: argparse.Namespace) -> Iterable[np.ndarray]:
    if args.image is not None:
        img = cv2.imread(args.image)
        if img is None:
            raise FileNotFoundError(f"Could not read image at path: {args.image}")
        for _ in range(int(args.repeats)):
            yield img
        return

    cap = cv2.VideoCapture(args.video)
    if not cap.isOpened():
        raise FileNotFoundError(f"Could not open video: {args.video}")
    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break
            yield frame
    finally:
        cap.release()


def _synthetic_raw(n_classes: int, n_candidates: int, imgsz: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    centers = rng.uniform(0, imgsz, size=(2, n_candidates))
    sizes = rng.uniform(5, imgsz / 4, size=(2, n_candidates))
    scores = rng.uniform(0.0, 1.0, size=(n_classes, n_candidates)) ** 8
    return np.concatenate([centers, sizes, scores], axis=0)[None, ...].astype(np.float32)


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark the overlay pipeline stage by stage.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image (repeated N times).")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument(
        "--synthetic-candidates",
        type=int,
        default=None,
        help="Model-free run on a random raw (1, 4+K, C) output with C candidates (skips preprocess/inference).",
    )

    parser.add_argument("--model", default="Models/yolov8n.onnx", help="Path to detector (.onnx/.torchscript/.pt).")
    parser.add_argument("--labels", default="Models/classes.txt", help="Newline-delimited class names.")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--imgsz", type=int, default=640, help="Square model input size.")
    parser.add_argument("--conf", type=float, default=0.5, help="Score threshold for NMS.")
    parser.add_argument("--iou", type=float, default=0.5, help="IoU threshold for NMS.")
    parser.add_argument("--synthetic-classes", type=int, default=80, help="For --synthetic-candidates: number of classes.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup frames to run but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="Frames for --image/--synthetic-candidates.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N recorded frames (0 = no limit).")
    parser.add_argument("--progress", action="store_true", help="Show a tqdm progress bar over frames.")
    args = parser.parse_args()

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")
    if args.imgsz < 32:
        raise ValueError("--imgsz must be >= 32")

    post_cfg = PostprocessConfig(iou_threshold=float(args.iou), score_threshold=float(args.conf))
    input_size = (int(args.imgsz), int(args.imgsz))
    canvas = OpenCVCanvas(*input_size)
    pool = AnnotationPool()
    timings: Dict[str, List[float]] = {stage: [] for stage in STAGES}
    seen = 0

    def _record(stamps: List[float]) -> None:
        for stage, t0, t1 in zip(STAGES, stamps, stamps[1:]):
            timings[stage].append(t1 - t0)

    if args.synthetic_candidates is not None:
        n_classes = int(args.synthetic_classes)
        if n_classes < 1 or args.synthetic_candidates < 1:
            raise ValueError("--synthetic-candidates and --synthetic-classes must be >= 1")
        raw = _synthetic_raw(n_classes, int(args.synthetic_candidates), int(args.imgsz))
        labels = LabelTable(names=tuple(f"class_{i}" for i in range(n_classes)))
        graph = build_detection_graph(raw.shape, post_cfg, num_classes=n_classes)
        decoder = BoxDecoder(labels, input_size=input_size)
        background = np.zeros((input_size[1], input_size[0], 3), dtype=np.uint8)

        for _ in range(int(args.warmup) + int(args.repeats)):
            seen += 1
            t0 = time.perf_counter()
            outputs = graph(raw)
            t1 = time.perf_counter()
            boxes = decoder.decode(outputs, canvas.display_size)
            t2 = time.perf_counter()
            pool.render(boxes, canvas.height * 0.05)
            canvas.draw(background, pool)
            t3 = time.perf_counter()
            if seen > int(args.warmup):
                _record([t0, t0, t0, t1, t2, t3])
    else:
        labels = load_label_table(args.labels)
        onnx_providers = None
        if args.onnx_providers:
            onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]
        decoder = BoxDecoder(labels, input_size=input_size)

        with load_pipeline(
            args.model,
            labels=labels,
            backend=args.backend,
            post_cfg=post_cfg,
            input_size=input_size,
            onnx_providers=onnx_providers,
        ) as pipeline:
            total = int(args.repeats) if args.image is not None else None
            for frame in tqdm(_iter_frames(args), total=total, unit="frame", desc="benchmark", disable=not args.progress):
                seen += 1
                t0 = time.perf_counter()
                prep = pipeline.preprocess(frame)
                t1 = time.perf_counter()
                raw = pipeline.backend.infer(prep.blob)
                t2 = time.perf_counter()
                outputs = pipeline.graph(raw)
                t3 = time.perf_counter()
                boxes = decoder.decode(outputs, canvas.display_size)
                t4 = time.perf_counter()
                pool.render(boxes, canvas.height * 0.05)
                canvas.draw(prep.image, pool)
                t5 = time.perf_counter()

                if seen <= int(args.warmup):
                    continue
                _record([t0, t1, t2, t3, t4, t5])
                if args.max_frames and len(timings["graph"]) >= int(args.max_frames):
                    break

    if not timings["graph"]:
        raise RuntimeError("No benchmark samples collected (check input source / max-frames / warmup).")

    for stage in STAGES:
        print(_format_summary(stage, _summarize_ms(timings[stage])))
    print(f"frames_seen={seen} samples_recorded={len(timings['graph'])} warmup={args.warmup} pool_size={len(pool)}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
