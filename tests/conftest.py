from __future__ import annotations

import io
from pathlib import Path

import pytest
import torch
from PIL import Image
from torch import nn

from lungscan.core.model_loader import LoadedModel, prepare_model
from lungscan.settings import AppSettings


class TinyLungNet(nn.Module):
    """Small deterministic CNN with a ``last_conv_layer`` for Grad-CAM."""

    def __init__(self, num_classes: int = 2):
        super().__init__()
        self.stem = nn.Sequential(nn.Conv2d(3, 4, 3, stride=4, padding=1), nn.ReLU())
        self.last_conv_layer = nn.Conv2d(4, 8, 3, stride=2, padding=1)
        self.pool = nn.AdaptiveAvgPool2d(1)
        self.classifier = nn.Linear(8, num_classes)

    def forward(self, x):
        x = torch.relu(self.last_conv_layer(self.stem(x)))
        return self.classifier(torch.flatten(self.pool(x), 1))


class ConstantProbNet(nn.Module):
    """Emits a fixed class-0 probability, as a trained classifier head with softmax would."""

    def __init__(self, probability: float):
        super().__init__()
        self.last_conv_layer = nn.Conv2d(3, 2, 3, padding=1)
        self.register_buffer("probs", torch.tensor([[probability, 1.0 - probability]]))

    def forward(self, x):
        activations = self.last_conv_layer(x)
        return self.probs + 0.0 * activations.mean()


class SingleOutputNet(nn.Module):
    """Emits one column holding the "cancerous" probability."""

    def __init__(self, probability: float):
        super().__init__()
        self.last_conv_layer = nn.Conv2d(3, 2, 3, padding=1)
        self.register_buffer("probs", torch.tensor([[probability]]))

    def forward(self, x):
        activations = self.last_conv_layer(x)
        return self.probs + 0.0 * activations.mean()


def make_tiny_net(seed: int = 0) -> TinyLungNet:
    torch.manual_seed(seed)
    return TinyLungNet()


def png_bytes(size=(64, 48), mode="RGB", color=None) -> bytes:
    if color is None:
        img = Image.linear_gradient("L").resize(size).convert(mode)
    else:
        img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(model_path=str(tmp_path / "model.pt"), inference_timeout_s=30)


@pytest.fixture
def tiny_model(settings: AppSettings) -> LoadedModel:
    # TinyLungNet emits logits
    return prepare_model(make_tiny_net(), settings.model_copy(update={"output_activation": "softmax"}))


@pytest.fixture
def model_file(settings: AppSettings) -> Path:
    path = Path(settings.model_path)
    torch.save(make_tiny_net(), path)
    return path


@pytest.fixture
def scan_png() -> bytes:
    return png_bytes()
