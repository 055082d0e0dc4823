# cam_explainer/analysis/explain.py

# Import the Grad-CAM stages and the overlay helpers
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np
from PIL import Image

from analysis.gradcam import CamResult, GradCAMService
from analysis.overlay import (build_alpha_ramp, check_opacity, colorize, composite,
                              orient_heatmap, to_rgb_array, upsample)
from analysis.prediction import InferenceService
from core.config import Config
from core.postprocessing import heatmap_to_uint8
from core.preprocessing import get_standard_transforms
from utils.labels import label_for
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Explanation:
    """
    Everything one explain() call produces.

    `heatmap` is the normalized heatmap after orientation, in the same
    layout as `heatmap_image` (its 8-bit rendering) and the overlay in
    `composite`. `cam.heatmap` keeps the layout the engine returned.
    """
    cam: CamResult
    composite: np.ndarray
    heatmap: np.ndarray
    heatmap_image: np.ndarray
    opacity: float
    label: Optional[str] = None

    @property
    def class_idx(self) -> int:
        return self.cam.class_idx

    @property
    def degenerate(self) -> bool:
        return self.cam.degenerate


class ExplanationPipeline:
    """
    Grad-CAM explanation of a classifier prediction, rendered on the source image.
    """
    def __init__(self, service: InferenceService,
                 transform: Optional[Callable] = None,
                 levels: int = Config.RAMP_LEVELS,
                 colormap: str = Config.COLORMAP,
                 orientation: str = Config.HEATMAP_ORIENTATION,
                 labels: Optional[Sequence[str]] = None):
        self.service = service
        self.gradcam = GradCAMService(service)
        self.transform = transform or get_standard_transforms()
        # Validated up front so a bad setting fails before any inference
        self.ramp = build_alpha_ramp(colormap, levels)
        orient_heatmap(np.zeros((1, 1)), orientation)
        self.orientation = orientation
        self.labels = list(labels) if labels is not None else None

    def _label(self, idx: int) -> Optional[str]:
        if self.labels is None:
            return None
        return label_for(self.labels, idx)

    def explain(self, image, layer_id: Optional[str] = None,
                class_override: Optional[int] = None,
                blend_opacity: float = Config.BLEND_OPACITY) -> Explanation:
        """
        Explain the top class (or `class_override`) of one image.
        """
        blend_opacity = check_opacity(blend_opacity)
        layer_id = self.service.resolve_layer(layer_id)
        img = to_rgb_array(image)

        x = self.transform(Image.fromarray(img)).unsqueeze(0)
        cam = self.gradcam.generate(x, class_override, layer_id)

        oriented = orient_heatmap(cam.heatmap, self.orientation)
        overlay = upsample(colorize(oriented, self.ramp), img.shape[:2])
        blended = composite(img, overlay, blend_opacity)

        label = self._label(cam.class_idx)
        logger.info("Explained class %d%s (p=%.3f) at layer %s",
                    cam.class_idx, f" '{label}'" if label else "", cam.confidence, layer_id)
        return Explanation(
            cam=cam,
            composite=blended,
            heatmap=oriented,
            heatmap_image=heatmap_to_uint8(oriented),
            opacity=blend_opacity,
            label=label,
        )
