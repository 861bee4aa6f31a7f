from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from overlay_kit.letterbox import RESIZE_POLICIES

DEFAULT_IOU_THRESHOLD = 0.5
DEFAULT_SCORE_THRESHOLD = 0.5
DEFAULT_INPUT_SIZE = 640
DEFAULT_MAX_BOXES = 200
DEFAULT_FONT_FRACTION = 0.05
DEFAULT_TARGET_FPS = 60.0


@dataclass(frozen=True)
class OverlayProfile:
    schema_version: int
    iou_threshold: float = DEFAULT_IOU_THRESHOLD
    score_threshold: float = DEFAULT_SCORE_THRESHOLD
    input_size: int = DEFAULT_INPUT_SIZE
    max_boxes: int = DEFAULT_MAX_BOXES
    font_fraction: float = DEFAULT_FONT_FRACTION
    resize_policy: str = "aspect_crop"
    target_fps: float = DEFAULT_TARGET_FPS
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("overlay_profile schema_version must be 1")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ValueError("score_threshold must be within [0, 1]")
        if self.input_size < 32:
            raise ValueError("input_size must be >= 32")
        if self.max_boxes < 0:
            raise ValueError("max_boxes must be >= 0")
        if not 0.0 < self.font_fraction <= 1.0:
            raise ValueError("font_fraction must be within (0, 1]")
        if self.resize_policy not in RESIZE_POLICIES:
            raise ValueError(f"resize_policy must be one of {RESIZE_POLICIES}")
        if self.target_fps < 0:
            raise ValueError("target_fps must be >= 0")


def _require_number(payload: Dict[str, Any], key: str) -> float:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return float(default)
    return _require_number(payload, key)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_int(payload: Dict[str, Any], key: str, default: int) -> int:
    if key not in payload:
        return int(default)
    return _require_int(payload, key)


def load_overlay_profile(path: Path) -> OverlayProfile:
    if not path.exists():
        raise FileNotFoundError(f"Overlay profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid overlay profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Overlay profile must be a JSON object")

    allowed = {
        "schema_version",
        "iou_threshold",
        "score_threshold",
        "input_size",
        "max_boxes",
        "font_fraction",
        "resize_policy",
        "target_fps",
        "notes",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown overlay profile keys: {unknown}")

    resize_policy = payload.get("resize_policy", "aspect_crop")
    if not isinstance(resize_policy, str):
        raise ValueError("resize_policy must be a string")
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValueError("notes must be a string if provided")

    return OverlayProfile(
        schema_version=_require_int(payload, "schema_version"),
        iou_threshold=_require_number(payload, "iou_threshold"),
        score_threshold=_require_number(payload, "score_threshold"),
        input_size=_optional_int(payload, "input_size", DEFAULT_INPUT_SIZE),
        max_boxes=_optional_int(payload, "max_boxes", DEFAULT_MAX_BOXES),
        font_fraction=_optional_number(payload, "font_fraction", DEFAULT_FONT_FRACTION),
        resize_policy=resize_policy,
        target_fps=_optional_number(payload, "target_fps", DEFAULT_TARGET_FPS),
        notes=notes,
    )
