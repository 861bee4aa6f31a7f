from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, Sequence

SOURCE_KEYS = ("video", "webcam", "rtsp")

STR_KEYS = {
    "video",
    "rtsp",
    "profile",
    "model",
    "labels",
    "backend",
    "onnx_providers",
    "torch_device",
    "resize_policy",
    "out",
    "log_level",
    "log_file",
}
INT_KEYS = {
    "webcam",
    "imgsz",
    "max_boxes",
    "display_width",
    "display_height",
    "reconnect_max_tries",
    "max_frames",
}
FLOAT_KEYS = {
    "iou",
    "conf",
    "font_fraction",
    "target_fps",
    "reconnect_wait_s",
}
BOOL_KEYS = {
    "loop_video",
    "reconnect",
    "threaded_capture",
    "show",
}


def load_run_config(path: Path) -> Dict[str, object]:
    if not path.exists():
        raise FileNotFoundError(f"Run config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid run config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Run config must be a JSON object")
    return payload


def collect_cli_dests(parser: argparse.ArgumentParser, argv: Sequence[str]) -> set[str]:
    """
    Destinations the user set explicitly on the command line; those win over the run config.
    """

    dests: set[str] = set()
    for opt, action in parser._option_string_actions.items():
        for arg in argv:
            if arg == opt or arg.startswith(f"{opt}="):
                dests.add(action.dest)
                break
    return dests


def _apply_source(args: argparse.Namespace, source: object, cli_dests: set[str]) -> None:
    if not isinstance(source, dict):
        raise ValueError("run config 'source' must be an object")
    source_unknown = sorted(k for k in source.keys() if k not in SOURCE_KEYS)
    if source_unknown:
        raise ValueError(f"Unknown run config source keys: {source_unknown}")
    non_empty = [k for k in SOURCE_KEYS if source.get(k) not in (None, "")]
    if len(non_empty) > 1:
        raise ValueError("run config 'source' must set only one of video/webcam/rtsp")
    if any(k in cli_dests for k in SOURCE_KEYS):
        return
    for key in non_empty:
        value = source[key]
        if key == "webcam":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError("source.webcam must be an integer index")
            setattr(args, key, int(value))
        else:
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"source.{key} must be a non-empty string")
            setattr(args, key, value)


def apply_run_config(
    *,
    args: argparse.Namespace,
    payload: Dict[str, object],
    cli_dests: set[str],
    parser: argparse.ArgumentParser,
) -> None:
    allowed = {action.dest for action in parser._actions if action.dest != "help"}
    if "config" in payload:
        raise ValueError("run config must not include the 'config' key")
    if "source" in payload and any(k in payload for k in SOURCE_KEYS):
        raise ValueError("Use either 'source' block or top-level video/webcam/rtsp keys, not both.")
    unknown = sorted(k for k in payload.keys() if k not in allowed and k != "source")
    if unknown:
        raise ValueError(f"Unknown run config keys: {unknown}")

    if "source" in payload:
        _apply_source(args, payload["source"], cli_dests)

    for key, value in payload.items():
        if key == "source" or key in cli_dests or value is None:
            continue
        if key in SOURCE_KEYS and any(k in cli_dests for k in SOURCE_KEYS):
            continue
        if key == "onnx_providers" and isinstance(value, list):
            if not value or not all(isinstance(v, str) and v.strip() for v in value):
                raise ValueError("onnx_providers must be a non-empty string or list of strings")
            setattr(args, key, ",".join(v.strip() for v in value))
            continue
        if key in STR_KEYS:
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{key} must be a non-empty string")
            setattr(args, key, value)
            continue
        if key in BOOL_KEYS:
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean")
            setattr(args, key, value)
            continue
        if key in INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be an integer")
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{key} must be an integer")
            setattr(args, key, int(value))
            continue
        if key in FLOAT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number")
            setattr(args, key, float(value))
            continue
        raise ValueError(f"Unsupported run config key: {key}")
