# cam_explainer/analysis/overlay.py

# Import image processing libraries
from typing import Tuple

import cv2
import matplotlib
import numpy as np
from PIL import Image

from core.config import Config
from utils.exceptions import InvalidArgument

# Explicit reorientation applied to the heatmap before it is rasterized
ORIENTATIONS = {
    "identity": lambda a: a,
    "transpose": lambda a: a.T,
    "flip_vertical": np.flipud,
    "flip_horizontal": np.fliplr,
    "rot90": np.rot90,
}


def check_opacity(opacity: float) -> float:
    if not 0.0 <= opacity <= 1.0:
        raise InvalidArgument(f"Opacity must lie in [0, 1], got {opacity}")
    return float(opacity)


def to_rgb_array(image) -> np.ndarray:
    """
    Accept a PIL image or a uint8 array and return an (H, W, 3) uint8 array.
    """
    if isinstance(image, Image.Image):
        arr = np.asarray(image.convert("RGB"))
    else:
        arr = np.asarray(image)
        if arr.dtype != np.uint8:
            raise InvalidArgument(f"Expected a uint8 image, got dtype {arr.dtype}")
        if arr.ndim == 2:
            arr = np.stack([arr] * 3, axis=-1)
        elif arr.ndim == 3 and arr.shape[2] == 4:
            arr = arr[..., :3]
        elif arr.ndim != 3 or arr.shape[2] != 3:
            raise InvalidArgument(f"Expected an (H, W, 3) image, got shape {arr.shape}")
    if arr.shape[0] <= 0 or arr.shape[1] <= 0:
        raise InvalidArgument(f"Image has non-positive resolution {arr.shape[:2]}")
    return arr


def build_alpha_ramp(colormap: str = Config.COLORMAP, levels: int = Config.RAMP_LEVELS) -> np.ndarray:
    """
    Discrete RGBA color ramp with `levels` entries.

    Colors come from a matplotlib colormap; opacity rises linearly from fully
    transparent at the lowest level to fully opaque at the highest.
    """
    if levels < 2:
        raise InvalidArgument(f"A color ramp needs at least 2 levels, got {levels}")
    try:
        cmap = matplotlib.colormaps[colormap].resampled(levels)
    except KeyError as e:
        raise InvalidArgument(f"Unknown colormap '{colormap}'") from e
    ramp = np.array(cmap(np.arange(levels)), dtype=np.float64)
    ramp[:, -1] = np.linspace(0.0, 1.0, levels)
    return ramp


def colorize(heatmap, ramp: np.ndarray) -> np.ndarray:
    """
    Map a [0, 1] heatmap onto the nearest ramp level, giving an (H, W, 4) buffer.
    """
    hm = np.asarray(heatmap, dtype=np.float64)
    if not np.all(np.isfinite(hm)):
        raise InvalidArgument("Heatmap contains NaN or infinite values")
    hm = np.clip(hm, 0.0, 1.0)
    levels = ramp.shape[0]
    idx = np.rint(hm * (levels - 1)).astype(np.intp)
    return ramp[idx]


def orient_heatmap(heatmap, orientation: str = Config.HEATMAP_ORIENTATION) -> np.ndarray:
    if orientation not in ORIENTATIONS:
        raise InvalidArgument(f"Unknown orientation '{orientation}'. Options: {sorted(ORIENTATIONS)}")
    return np.ascontiguousarray(ORIENTATIONS[orientation](np.asarray(heatmap)))


def upsample(rgba: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """
    Bilinear resize of an (H, W, 4) buffer to size = (height, width).
    """
    height, width = size
    if height <= 0 or width <= 0:
        raise InvalidArgument(f"Target resolution must be positive, got {size}")
    # cv2 takes (width, height)
    resized = cv2.resize(rgba.astype(np.float32), (int(width), int(height)),
                         interpolation=cv2.INTER_LINEAR)
    return np.clip(resized, 0.0, 1.0)


def composite(image, overlay: np.ndarray, opacity: float = Config.BLEND_OPACITY) -> np.ndarray:
    """
    "Over" compositing of an RGBA overlay onto an opaque RGB image, with the
    overlay alpha scaled by a global opacity. Where the overlay alpha is zero
    the source pixel is returned unchanged.
    """
    opacity = check_opacity(opacity)
    img = to_rgb_array(image)
    if overlay.shape[:2] != img.shape[:2]:
        raise InvalidArgument(f"Overlay {overlay.shape[:2]} does not match image {img.shape[:2]}")
    alpha = overlay[..., 3:4].astype(np.float64) * opacity
    color = overlay[..., :3].astype(np.float64) * 255.0
    out = img.astype(np.float64) * (1.0 - alpha) + color * alpha
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def overlay_heatmap(image, heatmap, opacity: float = Config.BLEND_OPACITY,
                    levels: int = Config.RAMP_LEVELS, colormap: str = Config.COLORMAP,
                    orientation: str = Config.HEATMAP_ORIENTATION) -> np.ndarray:
    """
    Colorize a normalized heatmap, resize it to the image and blend it on top.
    """
    opacity = check_opacity(opacity)
    img = to_rgb_array(image)
    rgba = colorize(orient_heatmap(heatmap, orientation), build_alpha_ramp(colormap, levels))
    return composite(img, upsample(rgba, img.shape[:2]), opacity)
