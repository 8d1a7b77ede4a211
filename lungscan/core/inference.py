"""Forward pass, Grad-CAM saliency and the label/risk decision rules.

Grad-CAM is always computed for class index 0 (the cancerous class), so the
overlay shows evidence for cancer even when the label is negative.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np
import torch
import torch.nn.functional as F

from .errors import InferenceError, ModelExecutionError
from .model_loader import LoadedModel
from .preprocess import INPUT_SIZE
from .schemas import RiskBucket

logger = logging.getLogger(__name__)

POSITIVE_CLASS = 0
LABEL_THRESHOLD = 0.5
LOW_RISK_BELOW = 0.30
HIGH_RISK_FROM = 0.70


def classify(probability: float) -> str:
    return "cancerous" if probability > LABEL_THRESHOLD else "non-cancerous"


def risk_bucket(probability: float) -> RiskBucket:
    if probability < LOW_RISK_BELOW:
        return RiskBucket.LOW
    if probability < HIGH_RISK_FROM:
        return RiskBucket.MODERATE
    return RiskBucket.HIGH


def positive_probability(logits: torch.Tensor, activation: str) -> float:
    """Map raw model output ``(1, C)`` to the class-0 probability."""
    if activation == "softmax":
        probs = torch.softmax(logits, dim=1)
    elif activation == "sigmoid":
        probs = torch.sigmoid(logits)
    else:
        probs = logits
    value = float(probs[0, POSITIVE_CLASS])
    if not np.isfinite(value):
        raise ModelExecutionError(f"Model produced a non-finite probability: {value}")
    return float(min(1.0, max(0.0, value)))


def grad_cam(
    model: LoadedModel, tensor: torch.Tensor, class_index: int = POSITIVE_CLASS
) -> Tuple[torch.Tensor, np.ndarray]:
    """Run one forward pass and return ``(logits, saliency)``.

    Saliency is the ReLU of the gradient-weighted sum of the target layer's
    activation channels, bilinearly upsampled to the input resolution.
    """
    layer = model.find_layer()
    if layer is None:
        raise InferenceError(f"Target layer {model.target_layer!r} not found in model")

    captured: Dict[str, torch.Tensor] = {}

    def _forward_hook(module, inputs, output):
        captured["activations"] = output

    handle = layer.register_forward_hook(_forward_hook)
    try:
        x = tensor.detach().to(model.device).clone().requires_grad_(True)
        with torch.enable_grad():
            logits = model.module(x)
            activations = captured.get("activations")
            if not isinstance(activations, torch.Tensor):
                raise InferenceError(f"Target layer {model.target_layer!r} produced no activation")
            score = logits[0, class_index]
            (gradients,) = torch.autograd.grad(score, activations)
    except (RuntimeError, IndexError, ValueError, TypeError) as e:
        raise ModelExecutionError(f"Grad-CAM computation failed: {e}") from e
    finally:
        handle.remove()

    try:
        weights = gradients.mean(dim=(2, 3), keepdim=True)
        cam = torch.relu((weights * activations).sum(dim=1, keepdim=True))
        cam = F.interpolate(cam, size=(INPUT_SIZE, INPUT_SIZE), mode="bilinear", align_corners=False)
    except (RuntimeError, IndexError) as e:
        raise ModelExecutionError(f"Activation has unexpected shape {tuple(activations.shape)}: {e}") from e

    saliency = cam[0, 0].detach().cpu().numpy().astype(np.float32)
    if not np.all(np.isfinite(saliency)):
        raise ModelExecutionError("Grad-CAM produced non-finite values")
    return logits.detach(), saliency


def infer(model: LoadedModel, tensor: torch.Tensor) -> Tuple[float, np.ndarray]:
    """Return the class-0 probability and its Grad-CAM saliency map ``(224, 224)``."""
    # Hooks on the shared module make concurrent calls unsafe
    with model.lock:
        logits, saliency = grad_cam(model, tensor)
    probability = positive_probability(logits, model.output_activation)
    logger.debug(f"Inference done: p={probability:.4f}, saliency max={saliency.max():.4f}")
    return probability, saliency
