from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np

from Live_Overlay.config import (
    DEFAULT_FONT_FRACTION,
    DEFAULT_INPUT_SIZE,
    DEFAULT_IOU_THRESHOLD,
    DEFAULT_MAX_BOXES,
    DEFAULT_SCORE_THRESHOLD,
    DEFAULT_TARGET_FPS,
    OverlayProfile,
    load_overlay_profile,
)
from Live_Overlay.ingest import FrameSource, ThreadedFrameSource, open_frame_source
from overlay_kit import (
    AnnotationPool,
    BoundingBox,
    BoxDecoder,
    DetectionPipeline,
    OpenCVCanvas,
    PostprocessConfig,
    load_label_table,
    load_pipeline,
    resolve_path,
)

logger = logging.getLogger(__name__)

QUIT_KEYS = (27, ord("q"))


@dataclass(frozen=True)
class TickResult:
    ran: bool
    boxes: Tuple[BoundingBox, ...] = ()
    # Display-sized frame with the active overlays painted on it.
    image: Optional[np.ndarray] = None


@dataclass
class RunStats:
    frames_processed: int = 0
    skipped_ticks: int = 0
    max_boxes_seen: int = 0
    pool_size: int = 0
    elapsed_s: float = 0.0

    @property
    def fps(self) -> float:
        return self.frames_processed / self.elapsed_s if self.elapsed_s > 0 else 0.0


class OverlayRunner:
    """
    The frame loop: read -> infer (blocking) -> decode -> pool -> paint, strictly
    in sequence. The pool is only touched from the thread calling `tick`.
    """

    def __init__(
        self,
        pipeline: DetectionPipeline,
        decoder: BoxDecoder,
        pool: AnnotationPool,
        canvas: OpenCVCanvas,
        *,
        font_fraction: float = DEFAULT_FONT_FRACTION,
    ):
        self.pipeline = pipeline
        self.decoder = decoder
        self.pool = pool
        self.canvas = canvas
        self.font_fraction = float(font_fraction)

    @property
    def font_size(self) -> float:
        return self.canvas.height * self.font_fraction

    def tick(self, source: FrameSource) -> TickResult:
        """
        Process one frame. With no frame available nothing runs and the pool keeps
        last frame's overlays.
        """

        frame = source.read()
        if frame is None:
            return TickResult(ran=False)

        result = self.pipeline(frame)
        boxes = self.decoder.decode(result.outputs, self.canvas.display_size)
        self.pool.render(boxes, self.font_size)
        image = self.canvas.draw(result.image, self.pool)
        return TickResult(ran=True, boxes=tuple(boxes), image=image)

    def run(
        self,
        source: FrameSource,
        *,
        show: bool = False,
        max_frames: int = 0,
        target_fps: float = DEFAULT_TARGET_FPS,
        window_name: str = "YOLO overlay",
        writer: Optional[cv2.VideoWriter] = None,
    ) -> RunStats:
        if max_frames < 0:
            raise ValueError("max_frames must be >= 0")
        if target_fps < 0:
            raise ValueError("target_fps must be >= 0")

        stats = RunStats()
        period_s = 1.0 / target_fps if target_fps > 0 else 0.0
        last_image: Optional[np.ndarray] = None
        start = time.monotonic()

        if show:
            cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)

        try:
            while not source.exhausted:
                tick_start = time.monotonic()
                tick = self.tick(source)
                if tick.ran:
                    stats.frames_processed += 1
                    stats.max_boxes_seen = max(stats.max_boxes_seen, len(tick.boxes))
                    last_image = tick.image
                    if writer is not None:
                        writer.write(tick.image)
                else:
                    stats.skipped_ticks += 1

                if show and last_image is not None:
                    cv2.imshow(window_name, last_image)
                    if (cv2.waitKey(1) & 0xFF) in QUIT_KEYS:
                        break

                if max_frames and stats.frames_processed >= max_frames:
                    break

                remaining = period_s - (time.monotonic() - tick_start)
                if remaining > 0:
                    time.sleep(remaining)
        finally:
            if show:
                cv2.destroyWindow(window_name)

        stats.elapsed_s = time.monotonic() - start
        stats.pool_size = len(self.pool)
        return stats


def _resolve(cli_value: Optional[float], profile_value: Optional[float], default_value: float) -> float:
    if cli_value is not None:
        return float(cli_value)
    if profile_value is not None:
        return float(profile_value)
    return float(default_value)


def _parse_ort_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    # PowerShell line continuations and copy/paste can leave stray backticks/quotes.
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


def run_overlay(args: argparse.Namespace) -> RunStats:
    """
    Build every component from parsed CLI args, run the loop and tear it all down.

    Precedence: command line / run config, then the overlay profile, then defaults.
    """

    source_count = int(args.video is not None) + int(args.webcam is not None) + int(args.rtsp is not None)
    if source_count != 1:
        raise ValueError("Exactly one source must be set: --video or --webcam or --rtsp (or via --config).")

    profile: Optional[OverlayProfile] = None
    if args.profile:
        profile = load_overlay_profile(Path(args.profile))

    iou = _resolve(args.iou, profile.iou_threshold if profile else None, DEFAULT_IOU_THRESHOLD)
    conf = _resolve(args.conf, profile.score_threshold if profile else None, DEFAULT_SCORE_THRESHOLD)
    imgsz = int(_resolve(args.imgsz, profile.input_size if profile else None, DEFAULT_INPUT_SIZE))
    max_boxes = int(_resolve(args.max_boxes, profile.max_boxes if profile else None, DEFAULT_MAX_BOXES))
    font_fraction = _resolve(args.font_fraction, profile.font_fraction if profile else None, DEFAULT_FONT_FRACTION)
    target_fps = _resolve(args.target_fps, profile.target_fps if profile else None, DEFAULT_TARGET_FPS)
    resize_policy = args.resize_policy or (profile.resize_policy if profile else "aspect_crop")

    if imgsz < 32:
        raise ValueError("--imgsz must be >= 32")

    display_w = int(args.display_width) if args.display_width else imgsz
    display_h = int(args.display_height) if args.display_height else imgsz

    labels = load_label_table(resolve_path(args.labels))
    logger.info("Loaded %d labels from %s", len(labels), args.labels)

    pipeline = load_pipeline(
        args.model,
        labels=labels,
        backend=args.backend,
        post_cfg=PostprocessConfig(iou_threshold=iou, score_threshold=conf),
        input_size=(imgsz, imgsz),
        resize_policy=resize_policy,
        onnx_providers=_parse_ort_providers(args.onnx_providers),
        torch_device=args.torch_device,
    )

    source: Optional[FrameSource] = None
    writer: Optional[cv2.VideoWriter] = None
    try:
        source = open_frame_source(
            video=args.video,
            webcam=args.webcam,
            rtsp=args.rtsp,
            loop_video=bool(args.loop_video),
            reconnect=bool(args.reconnect),
            reconnect_wait_s=float(args.reconnect_wait_s),
            reconnect_max_tries=int(args.reconnect_max_tries),
        )
        if args.threaded_capture:
            source = ThreadedFrameSource(source)

        if args.out:
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            writer = cv2.VideoWriter(args.out, fourcc, target_fps or 30.0, (display_w, display_h))
            if not writer.isOpened():
                raise RuntimeError(f"Failed to open video writer: {args.out}")

        runner = OverlayRunner(
            pipeline,
            BoxDecoder(labels, input_size=(imgsz, imgsz), max_boxes=max_boxes),
            AnnotationPool(),
            OpenCVCanvas(display_w, display_h),
            font_fraction=font_fraction,
        )
        stats = runner.run(
            source,
            show=bool(args.show),
            max_frames=int(args.max_frames),
            target_fps=target_fps,
            writer=writer,
        )
    finally:
        if writer is not None:
            writer.release()
        if source is not None:
            source.close()
        pipeline.close()

    logger.info(
        "Run finished: frames=%d skipped=%d max_boxes=%d pool=%d fps=%.1f",
        stats.frames_processed,
        stats.skipped_ticks,
        stats.max_boxes_seen,
        stats.pool_size,
        stats.fps,
    )
    return stats
