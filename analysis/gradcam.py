# cam_explainer/analysis/gradcam.py

# Import numerical libraries
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import torch

from analysis.prediction import InferenceService
from analysis.selection import select_class
from utils.exceptions import ContractViolation, DegenerateInput, InvalidArgument
from utils.logger import get_logger

logger = get_logger(__name__)


def _check_spatial(arr: np.ndarray, what: str):
    if arr.ndim != 3:
        raise InvalidArgument(f"{what} must be (H, W, C), got shape {arr.shape}")
    h, w, _ = arr.shape
    if h * w == 0:
        raise DegenerateInput(f"{what} has zero spatial extent {arr.shape[:2]}")


def pool_channel_weights(gradients) -> np.ndarray:
    """
    Global average pooling of an (H, W, C) gradient over its spatial axes,
    giving one importance weight per channel.
    """
    grads = np.asarray(gradients, dtype=np.float64)
    _check_spatial(grads, "Gradient tensor")
    # Shifted mean: exact for constant channels
    ref = grads[0, 0, :]
    return ref + (grads - ref).mean(axis=(0, 1))


def synthesize_heatmap(feature_map, weights) -> np.ndarray:
    """
    Raw class activation map: sum over channels of weight[c] * feature_map[..., c].
    The result is unbounded and may be negative.
    """
    fmap = np.asarray(feature_map, dtype=np.float64)
    _check_spatial(fmap, "Feature map")
    weights = np.asarray(weights, dtype=np.float64).reshape(-1)
    if weights.size != fmap.shape[2]:
        raise ContractViolation(
            f"{weights.size} channel weights for a feature map with {fmap.shape[2]} channels"
        )
    return np.tensordot(fmap, weights, axes=([2], [0]))


def normalize_heatmap(raw) -> Tuple[np.ndarray, bool]:
    """
    Clamp negatives to zero and scale by the maximum.

    Returns (heatmap, degenerate). When nothing is positive the heatmap is all
    zeros and degenerate is True.
    """
    raw = np.asarray(raw, dtype=np.float64)
    if not np.all(np.isfinite(raw)):
        raise ContractViolation("Raw heatmap contains non-finite values")
    cam = np.maximum(raw, 0)      # ReLU
    peak = cam.max() if cam.size else 0.0
    if peak <= 0:
        return np.zeros_like(cam), True
    return cam / peak, False


@dataclass
class CamResult:
    class_idx: int
    layer_id: str
    scores: np.ndarray
    weights: np.ndarray
    raw: np.ndarray
    heatmap: np.ndarray
    degenerate: bool

    @property
    def confidence(self) -> float:
        return float(self.scores[self.class_idx])


def grad_cam(feature_map, gradients):
    """
    Weights, raw map, normalized map and degenerate flag for one
    (feature map, gradient) pair.
    """
    fmap = np.asarray(feature_map)
    grads = np.asarray(gradients)
    if fmap.shape != grads.shape:
        raise ContractViolation(
            f"Feature map {fmap.shape} and gradient {grads.shape} do not match"
        )
    weights = pool_channel_weights(grads)
    raw = synthesize_heatmap(fmap, weights)
    heatmap, degenerate = normalize_heatmap(raw)
    return weights, raw, heatmap, degenerate


class GradCAMService:
    """
    Grad-CAM over an inference service: selects the class, pulls the paired
    activation and gradient at one layer and reduces them to a heatmap.
    """
    def __init__(self, service: InferenceService):
        self.service = service

    def generate(self, x: torch.Tensor, class_idx: Optional[int] = None,
                 layer_id: Optional[str] = None) -> CamResult:
        """
        Generates a heatmap for the predicted (or specified) class index.
        """
        layer_id = self.service.resolve_layer(layer_id)
        scores = self.service.scores(x)
        idx = select_class(scores, class_idx)
        fmap, grads = self.service.activation_and_gradient(x, idx, layer_id)
        weights, raw, heatmap, degenerate = grad_cam(fmap, grads)
        if degenerate:
            logger.warning("No positive evidence for class %d at layer %s; heatmap is empty",
                           idx, layer_id)
        logger.debug("class=%d layer=%s fmap=%s", idx, layer_id, fmap.shape)
        return CamResult(
            class_idx=idx,
            layer_id=layer_id,
            scores=scores,
            weights=weights,
            raw=raw,
            heatmap=heatmap,
            degenerate=degenerate,
        )
