"""Model artifact loading and the process-wide model handle.

The artifact is whatever ``torch.save`` wrote: either a complete pickled
``nn.Module`` or a ``state_dict`` for a torchvision architecture named in the
settings. Loading validates everything the pipeline relies on later (the
Grad-CAM layer exists and yields a 4-D activation, the output is
``(1, num_classes)``) so a bad artifact fails at startup rather than on the
first request.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import torch
from torch import nn
from torchvision import models

from ..settings import AppSettings
from .errors import ModelLoadError, ServiceUnavailable
from .preprocess import INPUT_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedModel:
    module: nn.Module
    target_layer: str
    num_classes: int
    output_activation: str = "none"
    device: str = "cpu"
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def find_layer(self) -> Optional[nn.Module]:
        return dict(self.module.named_modules()).get(self.target_layer)


class ModelHandle:
    """Holds the model once it is ready; set at most once per process."""

    def __init__(self) -> None:
        self._model: Optional[LoadedModel] = None
        self._ready = threading.Event()
        self._set_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def set(self, model: LoadedModel) -> None:
        with self._set_lock:
            if self._ready.is_set():
                raise RuntimeError("Model already loaded")
            self._model = model
            self._ready.set()

    def get(self) -> LoadedModel:
        if not self._ready.is_set() or self._model is None:
            raise ServiceUnavailable("Model not loaded")
        return self._model

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)


def _build_architecture(name: str, num_classes: int) -> nn.Module:
    try:
        return models.get_model(name, weights=None, num_classes=num_classes)
    except (KeyError, ValueError, TypeError) as e:
        raise ModelLoadError(f"Unknown or incompatible torchvision architecture {name!r}: {e}") from e


def _module_from_artifact(obj: object, settings: AppSettings) -> nn.Module:
    if isinstance(obj, nn.Module):
        return obj
    if isinstance(obj, dict):
        if not settings.architecture:
            raise ModelLoadError("Artifact is a state_dict but no architecture is configured")
        state_dict: Dict[str, torch.Tensor] = obj.get("state_dict", obj)
        module = _build_architecture(settings.architecture, settings.num_classes)
        try:
            module.load_state_dict(state_dict)
        except (RuntimeError, KeyError, TypeError) as e:
            raise ModelLoadError(f"State dict does not fit {settings.architecture}: {e}") from e
        return module
    raise ModelLoadError(f"Unsupported artifact type: {type(obj).__name__}")


def validate_model(model: LoadedModel) -> None:
    """Run a blank forward pass and check the activation and output shapes."""
    if model.num_classes == 1 and model.output_activation == "softmax":
        raise ModelLoadError("softmax over a single output is always 1.0; use sigmoid or none")

    layer = model.find_layer()
    if layer is None:
        raise ModelLoadError(f"Target layer {model.target_layer!r} not found in model")

    captured: Dict[str, torch.Tensor] = {}

    def _forward_hook(module, inputs, output):
        captured["activations"] = output

    handle = layer.register_forward_hook(_forward_hook)
    try:
        blank = torch.zeros(1, 3, INPUT_SIZE, INPUT_SIZE, device=model.device)
        with torch.no_grad():
            out = model.module(blank)
    except Exception as e:
        raise ModelLoadError(f"Test forward pass failed: {e}") from e
    finally:
        handle.remove()

    if not isinstance(out, torch.Tensor) or tuple(out.shape) != (1, model.num_classes):
        shape = tuple(out.shape) if isinstance(out, torch.Tensor) else type(out).__name__
        raise ModelLoadError(f"Expected model output shape (1, {model.num_classes}), got {shape}")

    activations = captured.get("activations")
    if not isinstance(activations, torch.Tensor) or activations.ndim != 4:
        raise ModelLoadError(
            f"Target layer {model.target_layer!r} must produce a 4-D activation (N, C, H, W)"
        )


def prepare_model(module: nn.Module, settings: AppSettings) -> LoadedModel:
    """Wrap an in-memory module, move it to the configured device and validate it."""
    try:
        module = module.to(settings.device).eval()
    except (RuntimeError, ValueError) as e:
        raise ModelLoadError(f"Could not move model to device {settings.device!r}: {e}") from e

    loaded = LoadedModel(
        module=module,
        target_layer=settings.target_layer,
        num_classes=settings.num_classes,
        output_activation=settings.output_activation,
        device=settings.device,
    )
    validate_model(loaded)
    return loaded


def load_model(settings: AppSettings) -> LoadedModel:
    path = Path(settings.model_path)
    logger.info(f"Loading model artifact from {path}")
    if not path.is_file():
        raise ModelLoadError(f"Model artifact not found: {path}")

    try:
        # Trusted local artifact; full modules need unrestricted unpickling
        obj = torch.load(path, map_location=settings.device, weights_only=False)
    except Exception as e:
        raise ModelLoadError(f"Could not deserialize model artifact {path}: {e}") from e

    loaded = prepare_model(_module_from_artifact(obj, settings), settings)
    logger.info(
        f"Model ready: {type(loaded.module).__name__}, "
        f"target layer {loaded.target_layer!r}, {loaded.num_classes} classes"
    )
    return loaded
