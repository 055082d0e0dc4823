import numpy as np
import pytest
import torch
import torch.nn as nn
import torchvision.transforms as T

from analysis.explain import ExplanationPipeline
from analysis.prediction import InferenceService
from core.config import init_runtime
from core.models import LayerRegistry

TINY_LAYERS = {"conv1": "features.1", "conv2": "features.3"}


class TinyNet(nn.Module):
    """Two conv blocks, global average pooling and a linear head."""

    def __init__(self, n_classes=3):
        super().__init__()
        self.features = nn.Sequential(
            nn.Conv2d(3, 4, 3, padding=1),
            nn.ReLU(),
            nn.Conv2d(4, 6, 3, stride=2, padding=1),
            nn.ReLU(),
        )
        self.pool = nn.AdaptiveAvgPool2d(1)
        self.fc = nn.Linear(6, n_classes)

    def forward(self, x):
        return self.fc(torch.flatten(self.pool(self.features(x)), 1))


def make_tiny_net(seed=0, n_classes=3):
    torch.manual_seed(seed)
    return TinyNet(n_classes)


def make_service(model, context):
    return InferenceService(model, LayerRegistry(model, TINY_LAYERS, "conv2"), context=context)


@pytest.fixture
def context():
    return init_runtime(device="cpu", seed=0, amp=False)


@pytest.fixture
def tiny_model():
    return make_tiny_net()


@pytest.fixture
def service(tiny_model, context):
    return make_service(tiny_model, context)


@pytest.fixture
def tiny_transform():
    return T.Compose([T.Resize((16, 16)), T.ToTensor()])


@pytest.fixture
def pipeline(service, tiny_transform):
    return ExplanationPipeline(service, transform=tiny_transform, levels=12)


@pytest.fixture
def image():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(30, 40, 3), dtype=np.uint8)


@pytest.fixture
def input_tensor():
    torch.manual_seed(1)
    return torch.rand(1, 3, 16, 16)
