"""
Live overlay application built on top of `overlay_kit`.

`overlay_kit` stays free of any notion of a run; this package covers
- overlay profile + run config (JSON)
- frame sources (OpenCV capture, latest-wins threaded capture)
- the frame loop that ties pipeline, decoder, pool and canvas together
- logging setup
"""

from __future__ import annotations

from .config import OverlayProfile, load_overlay_profile
from .ingest import (
    CaptureFrameSource,
    CaptureInfo,
    FrameSource,
    LatestFrameSlot,
    ThreadedFrameSource,
    get_capture_info,
    open_capture,
    open_frame_source,
)
from .logging_utils import setup_logging
from .run_config import apply_run_config, collect_cli_dests, load_run_config
from .runner import OverlayRunner, RunStats, TickResult, run_overlay

__all__ = [
    "OverlayProfile",
    "load_overlay_profile",
    "CaptureFrameSource",
    "CaptureInfo",
    "FrameSource",
    "LatestFrameSlot",
    "ThreadedFrameSource",
    "get_capture_info",
    "open_capture",
    "open_frame_source",
    "setup_logging",
    "apply_run_config",
    "collect_cli_dests",
    "load_run_config",
    "OverlayRunner",
    "RunStats",
    "TickResult",
    "run_overlay",
]
