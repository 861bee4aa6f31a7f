from typing import Tuple

import numpy as np

RESIZE_POLICIES = ("aspect_crop", "letterbox", "stretch")


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for frame resizing. Install with `pip install opencv-python`.") from e
    return cv2


def aspect_crop(image: np.ndarray, new_shape: Tuple[int, int] = (640, 640)) -> np.ndarray:
    """
    Resize to `new_shape` (w, h) scaling only the horizontal sampling by 1/aspect.

    With aspect = W / H the sampled source region is W / aspect = H pixels wide,
    anchored at the left edge, and the full height. Landscape frames therefore
    lose their right-hand side; portrait frames sample past the right edge,
    where the last column is repeated.
    """

    cv2 = _cv2()
    h, w = image.shape[:2]
    if w >= h:
        region = image[:, :h]
    else:
        region = cv2.copyMakeBorder(image, 0, 0, 0, h - w, cv2.BORDER_REPLICATE)

    new_w, new_h = new_shape
    if region.shape[1] != new_w or region.shape[0] != new_h:
        region = cv2.resize(region, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    return np.ascontiguousarray(region)


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (114, 114, 114),
) -> np.ndarray:
    """
    Resize keeping aspect ratio and pad the remainder with `color`, centred.
    """

    cv2 = _cv2()
    h, w = image.shape[:2]
    new_w, new_h = new_shape

    r = min(new_w / w, new_h / h)
    resized_w, resized_h = int(round(w * r)), int(round(h * r))
    dw, dh = (new_w - resized_w) / 2, (new_h - resized_h) / 2

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))
    return cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)


def resize_to_input(image: np.ndarray, new_shape: Tuple[int, int], policy: str = "aspect_crop") -> np.ndarray:
    if policy == "aspect_crop":
        return aspect_crop(image, new_shape)
    if policy == "letterbox":
        return letterbox(image, new_shape)
    if policy == "stretch":
        cv2 = _cv2()
        return cv2.resize(image, tuple(new_shape), interpolation=cv2.INTER_LINEAR)
    raise ValueError(f"Unsupported resize policy: {policy!r} (expected one of {RESIZE_POLICIES})")
