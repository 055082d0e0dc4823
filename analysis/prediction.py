# cam_explainer/analysis/prediction.py

# Import torch and the model registry
from typing import Optional, Tuple

import numpy as np
import torch

from core.config import Config, RuntimeContext, init_runtime
from core.models import LayerRegistry, ModelFactory, freeze
from utils.exceptions import ContractViolation, InferenceError, InvalidArgument
from utils.logger import get_logger

logger = get_logger(__name__)

GRADIENT_TARGETS = ("logit", "probability")


def _to_hwc(t: torch.Tensor) -> np.ndarray:
    # (1, C, H, W) tensor -> (H, W, C) float32 array owned by the caller
    return np.ascontiguousarray(t[0].detach().permute(1, 2, 0).float().cpu().numpy())


class InferenceService:
    """
    Differentiable inference over a frozen classifier.

    Exposes the three operations the explanation pipeline needs: class
    scores, the activation of a registered layer, and the gradient of one
    class score with respect to that activation. Weights are never updated;
    gradients are taken with torch.autograd.grad so no .grad buffers are
    written on the shared model.
    """
    def __init__(self, model: torch.nn.Module, layers: LayerRegistry,
                 context: Optional[RuntimeContext] = None,
                 gradient_target: str = Config.GRADIENT_TARGET):
        if gradient_target not in GRADIENT_TARGETS:
            raise InvalidArgument(f"gradient_target must be one of {GRADIENT_TARGETS}")
        self.context = context or init_runtime()
        self.device = self.context.device
        self.model = freeze(model).to(self.device)
        self.layers = layers
        self.gradient_target = gradient_target

    @classmethod
    def load(cls, model_name: str = Config.MODEL_NAME,
             context: Optional[RuntimeContext] = None,
             pretrained: bool = True, **kwargs) -> "InferenceService":
        """
        Load a registered model and resolve its explainable layers once.
        """
        context = context or init_runtime()
        spec = ModelFactory.spec(model_name)
        model = ModelFactory.get(model_name, context, pretrained=pretrained)
        logger.info("Loaded %s on %s (pretrained=%s)", model_name, context.device, pretrained)
        return cls(model, LayerRegistry.from_spec(model, spec), context=context, **kwargs)

    @property
    def default_layer(self) -> str:
        return self.layers.default_layer

    def resolve_layer(self, layer_id: Optional[str] = None) -> str:
        return self.layers.resolve(layer_id)

    def _prepare(self, x: torch.Tensor) -> torch.Tensor:
        if x.dim() == 3:
            x = x.unsqueeze(0)
        if x.dim() != 4 or x.size(0) != 1:
            raise InvalidArgument(f"Expected a single image tensor (1, C, H, W), got {tuple(x.shape)}")
        return x.to(self.device, non_blocking=True)

    def _autocast(self):
        # Shared by every forward pass so scores and gradients use one precision
        return torch.autocast(device_type=self.device.split(":")[0], enabled=self.context.use_amp)

    @torch.no_grad()
    def scores(self, x: torch.Tensor) -> np.ndarray:
        """
        Forward pass returning the softmax probabilities of one image.
        """
        x = self._prepare(x)
        try:
            with self._autocast():
                logits = self.model(x)
            probs = torch.softmax(logits.float(), dim=1)
        except RuntimeError as e:
            # Wrap framework errors in a custom error
            raise InferenceError(str(e)) from e
        return probs[0].cpu().numpy()

    def _forward_capture(self, x: torch.Tensor, layer_id: str):
        with self.layers.capture(layer_id) as slot:
            try:
                with self._autocast():
                    logits = self.model(x)
            except RuntimeError as e:
                raise InferenceError(str(e)) from e
        activation = slot["activation"]
        if not isinstance(activation, torch.Tensor) or activation.dim() != 4:
            raise ContractViolation(f"Layer '{layer_id}' did not produce a (1, C, H, W) activation")
        return logits, activation

    @torch.no_grad()
    def activation(self, x: torch.Tensor, layer_id: Optional[str] = None) -> np.ndarray:
        """
        Activation of a registered layer as an (H, W, C) array.
        """
        layer_id = self.resolve_layer(layer_id)
        _, act = self._forward_capture(self._prepare(x), layer_id)
        return _to_hwc(act)

    def gradient(self, x: torch.Tensor, class_idx: int, layer_id: Optional[str] = None) -> np.ndarray:
        """
        Gradient of the class score with respect to the layer activation, (H, W, C).
        """
        return self.activation_and_gradient(x, class_idx, layer_id)[1]

    def activation_and_gradient(self, x: torch.Tensor, class_idx: int,
                                layer_id: Optional[str] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Feature map and its gradient from one forward/backward pass, so the
        pair always comes from the same image and layer.
        """
        layer_id = self.resolve_layer(layer_id)
        # Inputs carry the graph since the weights are frozen
        x = self._prepare(x).detach().clone().requires_grad_(True)
        with torch.enable_grad():
            logits, act = self._forward_capture(x, layer_id)
            n_classes = logits.size(1)
            if not 0 <= class_idx < n_classes:
                raise InvalidArgument(f"class index {class_idx} out of range [0, {n_classes})")
            if self.gradient_target == "probability":
                score = torch.softmax(logits.float(), dim=1)[0, class_idx]
            else:
                score = logits[0, class_idx]
            try:
                (grad,) = torch.autograd.grad(score, act)
            except RuntimeError as e:
                raise InferenceError(str(e)) from e
        return _to_hwc(act), _to_hwc(grad)
