from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]
    frame_count: Optional[int]


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None) -> cv2.VideoCapture:
    sources = [video is not None, webcam is not None, rtsp is not None]
    if sum(bool(s) for s in sources) != 1:
        raise ValueError("Exactly one of video/webcam/rtsp must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    elif rtsp is not None:
        cap = cv2.VideoCapture(rtsp)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    fps_val = float(fps) if fps and fps > 0 else None

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    n = cap.get(cv2.CAP_PROP_FRAME_COUNT)
    w_val = int(w) if w and w > 0 else None
    h_val = int(h) if h and h > 0 else None
    n_val = int(n) if n and n > 0 else None

    return CaptureInfo(fps=fps_val, width=w_val, height=h_val, frame_count=n_val)


class FrameSource(Protocol):
    """
    Produces the latest frame on demand, or None when no frame is ready.

    `exhausted` turns True once the source will never produce another frame.
    """

    @property
    def exhausted(self) -> bool:
        ...

    def read(self) -> Optional[np.ndarray]:
        ...

    def close(self) -> None:
        ...


class CaptureFrameSource:
    """
    Frame source over a `cv2.VideoCapture`-like object.

    - loop: reopen a finished video file and keep playing
    - reconnect: reopen a dropped stream; ticks spent reconnecting yield None
    """

    def __init__(
        self,
        opener: Callable[[], cv2.VideoCapture],
        *,
        loop: bool = False,
        reconnect: bool = False,
        reconnect_wait_s: float = 1.0,
        reconnect_max_tries: int = 0,
    ):
        if reconnect_wait_s < 0:
            raise ValueError("reconnect_wait_s must be >= 0")
        if reconnect_max_tries < 0:
            raise ValueError("reconnect_max_tries must be >= 0")
        self._opener = opener
        self.loop = loop
        self.reconnect = reconnect
        self.reconnect_wait_s = float(reconnect_wait_s)
        self.reconnect_max_tries = int(reconnect_max_tries)

        self._cap = opener()
        self._exhausted = False
        self._reconnect_tries = 0
        self._closed = False
        self.frames_read = 0
        self.loop_count = 0
        self.reconnect_events = 0

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def capture(self) -> cv2.VideoCapture:
        return self._cap

    def _grab(self) -> Optional[np.ndarray]:
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        self.frames_read += 1
        self._reconnect_tries = 0
        return frame

    def _reopen(self) -> None:
        self._cap.release()
        self._cap = self._opener()

    def read(self) -> Optional[np.ndarray]:
        if self._exhausted:
            return None

        frame = self._grab()
        if frame is not None:
            return frame

        if self.loop:
            self._reopen()
            self.loop_count += 1
            frame = self._grab()
            if frame is None:
                # Nothing right after a restart: the file is empty or unreadable.
                logger.warning("Looped video produced no frame after reopening; stopping")
                self._exhausted = True
            return frame

        if self.reconnect:
            self._reconnect_tries += 1
            if self.reconnect_max_tries and self._reconnect_tries > self.reconnect_max_tries:
                raise RuntimeError(f"Reconnect failed after {self.reconnect_max_tries} tries.")
            if self.reconnect_wait_s:
                time.sleep(self.reconnect_wait_s)
            self._reopen()
            self.reconnect_events += 1
            logger.warning("Frame source dropped; reconnected (attempt %d)", self._reconnect_tries)
            return None

        self._exhausted = True
        return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._exhausted = True
        self._cap.release()


def open_frame_source(
    *,
    video: Optional[str] = None,
    webcam: Optional[int] = None,
    rtsp: Optional[str] = None,
    loop_video: bool = False,
    reconnect: bool = False,
    reconnect_wait_s: float = 1.0,
    reconnect_max_tries: int = 0,
) -> CaptureFrameSource:
    if loop_video and not video:
        raise ValueError("loop_video is only valid with a video file.")

    def opener() -> cv2.VideoCapture:
        return open_capture(video=video, webcam=webcam, rtsp=rtsp)

    source = CaptureFrameSource(
        opener,
        loop=loop_video,
        reconnect=reconnect,
        reconnect_wait_s=reconnect_wait_s,
        reconnect_max_tries=reconnect_max_tries,
    )
    info = get_capture_info(source.capture)
    logger.info("Opened frame source: %dx%d fps=%s", info.width or 0, info.height or 0, info.fps)
    return source


class LatestFrameSlot:
    """
    Single-slot, latest-wins handoff between a capture thread and the render thread.

    `put` overwrites whatever frame is waiting; `take` returns it and empties the slot.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self.dropped = 0

    def put(self, frame: np.ndarray) -> None:
        with self._lock:
            if self._frame is not None:
                self.dropped += 1
            self._frame = frame

    def take(self) -> Optional[np.ndarray]:
        with self._lock:
            frame, self._frame = self._frame, None
            return frame

    def empty(self) -> bool:
        with self._lock:
            return self._frame is None


class ThreadedFrameSource:
    """
    Reads `source` on a background thread and exposes only the newest frame.

    The wrapped source belongs to the capture thread: only that thread reads it,
    and it is closed there when the thread returns. A capture failure is raised
    by the next `read()`.
    """

    def __init__(self, source: FrameSource, *, idle_sleep_s: float = 0.001, join_timeout_s: float = 5.0):
        self._source = source
        self._slot = LatestFrameSlot()
        self._stop = threading.Event()
        self._error: Optional[Exception] = None
        self._idle_sleep_s = float(idle_sleep_s)
        self._join_timeout_s = float(join_timeout_s)
        self._thread = threading.Thread(target=self._run, name="frame-capture", daemon=True)
        self._thread.start()

    @property
    def dropped_frames(self) -> int:
        return self._slot.dropped

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                frame = self._source.read()
                if frame is not None:
                    self._slot.put(frame)
                elif self._source.exhausted:
                    break
                else:
                    time.sleep(self._idle_sleep_s)
        except Exception as exc:
            self._error = exc
        finally:
            self._source.close()

    @property
    def exhausted(self) -> bool:
        # A pending capture error keeps the source alive so `read()` can raise it.
        if self._error is not None:
            return False
        return not self._thread.is_alive() and self._slot.empty()

    def read(self) -> Optional[np.ndarray]:
        frame = self._slot.take()
        if frame is None and self._error is not None:
            raise RuntimeError("Frame capture thread failed.") from self._error
        return frame

    def close(self) -> None:
        self._stop.set()
        self._thread.join(timeout=self._join_timeout_s)
        if self._thread.is_alive():
            logger.warning("Capture thread still busy after %.1fs; it releases the source when it returns", self._join_timeout_s)
