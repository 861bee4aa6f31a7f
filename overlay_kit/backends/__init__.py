"""
Inference runtimes for overlay_kit.

Each backend runs one blocking inference per call and returns the raw detector
output on the host. Runtimes are imported lazily so the post-processing and
overlay code can be used without any of them installed.
"""

from __future__ import annotations

__all__ = []
