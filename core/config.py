# cam_explainer/core/config.py

from dataclasses import dataclass
from typing import Optional

import torch


@dataclass(frozen=True)
class Config:
    # Paths
    LABELS_URL: str = "https://raw.githubusercontent.com/pytorch/hub/master/imagenet_classes.txt"
    OUTPUT_DIR: str = "./outputs"

    # Model & inference
    MODEL_NAME: str = "resnet50"
    DEVICE: str = "cuda" if torch.cuda.is_available() else "cpu"
    AMP_ENABLED: bool = True
    SEED: int = 0
    IMAGE_SIZE: int = 224
    GRADIENT_TARGET: str = "logit"   # "logit" or "probability"

    # Overlay
    BLEND_OPACITY: float = 0.20
    RAMP_LEVELS: int = 20
    COLORMAP: str = "jet"
    HEATMAP_ORIENTATION: str = "identity"

    # Reporting
    TOP_K: int = 5


@dataclass(frozen=True)
class RuntimeContext:
    """
    Explicit initialization context, created once at startup and passed to
    every component that needs a device or a seed.
    """
    device: str = Config.DEVICE
    seed: int = Config.SEED
    amp: bool = Config.AMP_ENABLED

    @property
    def use_amp(self) -> bool:
        # Autocast is only worth it on CUDA
        return self.amp and self.device.startswith("cuda")

    def generator(self) -> torch.Generator:
        """
        A fresh generator seeded from the context, for callers that need
        randomness without touching the global RNG.
        """
        gen = torch.Generator()
        gen.manual_seed(self.seed)
        return gen


def init_runtime(device: Optional[str] = None, seed: int = Config.SEED,
                 amp: bool = Config.AMP_ENABLED) -> RuntimeContext:
    """
    Build the runtime context. Falls back to CPU when CUDA was requested but
    is not available.
    """
    device = device or Config.DEVICE
    if device.startswith("cuda") and not torch.cuda.is_available():
        device = "cpu"
    return RuntimeContext(device=device, seed=seed, amp=amp)
