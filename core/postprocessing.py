# cam_explainer/core/postprocessing.py

# Import modules for saving arrays as images
from pathlib import Path

import numpy as np
from PIL import Image


def heatmap_to_uint8(heatmap: np.ndarray) -> np.ndarray:
    """
    Clamp a heatmap to [0,1] and scale it to 8-bit intensities.
    """
    return np.rint(np.clip(heatmap, 0.0, 1.0) * 255.0).astype(np.uint8)


def save_heatmap(heatmap: np.ndarray, out_path: Path) -> Path:
    """
    Save a heatmap as a grayscale image at its own (feature-map) resolution.
    Float maps are taken to lie in [0,1]; uint8 maps are written as is.
    Creates parent directories if they do not exist.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if heatmap.dtype != np.uint8:
        heatmap = heatmap_to_uint8(heatmap)
    Image.fromarray(np.ascontiguousarray(heatmap)).save(out_path)
    return out_path


def save_output(image: np.ndarray, out_path: Path) -> Path:
    """
    Save an RGB uint8 array (e.g. the composite) to the specified path.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).save(out_path)
    return out_path
