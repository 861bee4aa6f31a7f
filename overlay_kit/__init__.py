"""
Detection overlay core.

Host-side post-processing of raw YOLO outputs (center-to-corner transform and
NMS), a synchronous per-frame inference pipeline, mapping of model-space boxes
into display space, and a growth-only pool of overlay visuals. Needs only
NumPy; OpenCV is used for resizing and drawing, inference runtimes are loaded
on demand.
"""

from .types import BoundingBox, DetectionOutputs
from .errors import LabelIndexError, LabelTableError, ModelContractError
from .letterbox import aspect_crop, letterbox, resize_to_input
from .nms import NMSConfig, box_iou, nms
from .postprocess import (
    CENTERS_TO_CORNERS,
    DetectionGraph,
    PostprocessConfig,
    RawOutputLayout,
    build_detection_graph,
    centers_to_corners,
)
from .runtime import DetectionPipeline, build_pipeline, load_pipeline, find_project_root, resolve_path
from .metadata import LabelTable, load_class_names, load_label_table
from .decode import BoxDecoder
from .pool import AnnotationPool, AnnotationVisual
from .visualize import OpenCVCanvas

__all__ = [
    "BoundingBox",
    "DetectionOutputs",
    "LabelIndexError",
    "LabelTableError",
    "ModelContractError",
    "aspect_crop",
    "letterbox",
    "resize_to_input",
    "NMSConfig",
    "box_iou",
    "nms",
    "CENTERS_TO_CORNERS",
    "DetectionGraph",
    "PostprocessConfig",
    "RawOutputLayout",
    "build_detection_graph",
    "centers_to_corners",
    "DetectionPipeline",
    "build_pipeline",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
    "LabelTable",
    "load_class_names",
    "load_label_table",
    "BoxDecoder",
    "AnnotationPool",
    "AnnotationVisual",
    "OpenCVCanvas",
]
