# cam_explainer/core/models.py

# Import torch and torchvision model definitions
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import torch
import torchvision.models as models

from core.config import RuntimeContext
from utils.exceptions import InvalidArgument
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """
    How to build a classifier and which of its layers can be explained.
    `layers` maps a public layer id to the dotted module path inside the model.
    """
    factory: Callable[[Optional[str]], torch.nn.Module]
    layers: Dict[str, str] = field(default_factory=dict)
    default_layer: str = ""


# Registry mapping model names to factories and explainable layers
MODEL_REGISTRY: Dict[str, ModelSpec] = {
    "resnet50": ModelSpec(
        factory=lambda weights: models.resnet50(weights=weights),
        layers={"layer2": "layer2", "layer3": "layer3", "layer4": "layer4"},
        default_layer="layer4",
    ),
    "vgg16": ModelSpec(
        factory=lambda weights: models.vgg16(weights=weights),
        # Post-ReLU outputs of the last conv in blocks 4 and 5 (28x28, 14x14)
        layers={"block4_conv3": "features.22", "block5_conv3": "features.29"},
        default_layer="block5_conv3",
    ),
    "efficientnet_b0": ModelSpec(
        factory=lambda weights: models.efficientnet_b0(weights=weights),
        layers={"features.7": "features.7", "features.8": "features.8"},
        default_layer="features.8",
    ),
}


class ModelFactory:
    @staticmethod
    def spec(name: str) -> ModelSpec:
        if name not in MODEL_REGISTRY:
            raise InvalidArgument(f"Unknown model '{name}'. Options: {sorted(MODEL_REGISTRY)}")
        return MODEL_REGISTRY[name]

    @staticmethod
    def get(name: str, context: RuntimeContext, pretrained: bool = True) -> torch.nn.Module:
        """
        Build a model by name, in eval mode with frozen parameters.
        Raises InvalidArgument if the model name is unregistered.
        """
        spec = ModelFactory.spec(name)
        if pretrained:
            model = spec.factory("DEFAULT")
        else:
            # Random init from the context seed, global RNG left untouched
            with torch.random.fork_rng(devices=[]):
                torch.manual_seed(context.seed)
                model = spec.factory(None)
        return freeze(model)


def freeze(model: torch.nn.Module) -> torch.nn.Module:
    """
    Put a model in eval mode and stop gradients from reaching its weights.
    """
    model.eval()
    for p in model.parameters():
        p.requires_grad_(False)
    return model


class LayerRegistry:
    """
    Layer ids resolved to modules once, when the model is loaded.

    A forward hook is attached to every registered layer. The hook only
    records the activation when the current thread has opened a capture for
    that layer, so concurrent invocations never see each other's tensors.
    """
    def __init__(self, model: torch.nn.Module, layers: Dict[str, str], default_layer: str):
        modules = dict(model.named_modules())
        self._modules: Dict[str, torch.nn.Module] = {}
        for layer_id, path in layers.items():
            if path not in modules:
                raise InvalidArgument(f"Layer '{layer_id}' points to missing module '{path}'")
            self._modules[layer_id] = modules[path]
        if default_layer not in self._modules:
            raise InvalidArgument(f"Default layer '{default_layer}' is not registered")
        self.default_layer = default_layer
        self._local = threading.local()
        self._handles = [
            module.register_forward_hook(self._make_hook(layer_id))
            for layer_id, module in self._modules.items()
        ]
        logger.debug("Registered layers %s (default %s)", sorted(self._modules), default_layer)

    @classmethod
    def from_spec(cls, model: torch.nn.Module, spec: ModelSpec) -> "LayerRegistry":
        return cls(model, spec.layers, spec.default_layer)

    @property
    def layer_ids(self):
        return sorted(self._modules)

    def resolve(self, layer_id: Optional[str] = None) -> str:
        """
        Validate a layer id (None selects the default layer).
        """
        layer_id = self.default_layer if layer_id is None else layer_id
        if layer_id not in self._modules:
            raise InvalidArgument(f"Unknown layer '{layer_id}'. Options: {self.layer_ids}")
        return layer_id

    def _make_hook(self, layer_id: str):
        def hook(module, inp, outp):
            slot = getattr(self._local, "slot", None)
            if slot is not None and slot["layer_id"] == layer_id:
                slot["activation"] = outp
        return hook

    @contextmanager
    def capture(self, layer_id: str):
        """
        Open a per-thread capture slot for one forward pass.
        """
        slot = {"layer_id": self.resolve(layer_id), "activation": None}
        self._local.slot = slot
        try:
            yield slot
        finally:
            self._local.slot = None

    def close(self):
        for handle in self._handles:
            handle.remove()
        self._handles = []
