"""Saliency overlay compositing.

The overlay tints the red channel by ``saliency * 255`` and makes the whole
image 50% translucent (alpha 128). Red values are clamped to ``[0, 255]``
instead of wrapping. PNG encoder settings are pinned so identical inputs
produce identical bytes.
"""

from __future__ import annotations

import io

import numpy as np
from PIL import Image

from .preprocess import INPUT_SIZE

OVERLAY_ALPHA = 128
PNG_SAVE_OPTIONS = {"format": "PNG", "compress_level": 6, "optimize": False}


def normalize_saliency(saliency: np.ndarray) -> np.ndarray:
    """Scale a non-negative map into ``[0, 1]`` by its maximum; all-zero maps stay zero."""
    sal = np.nan_to_num(np.asarray(saliency, dtype=np.float32), nan=0.0, posinf=0.0, neginf=0.0)
    sal = np.maximum(sal, 0.0)
    peak = float(sal.max()) if sal.size else 0.0
    if peak <= 0.0:
        return np.zeros_like(sal)
    return sal / peak


def _fit_saliency(saliency: np.ndarray) -> np.ndarray:
    """Squeeze singleton axes and bilinearly rescale to the canvas size."""
    sal = np.squeeze(np.asarray(saliency, dtype=np.float32))
    if sal.ndim != 2:
        raise ValueError(f"Saliency map must be 2-D after squeezing, got shape {np.shape(saliency)}")
    sal = np.nan_to_num(sal, nan=0.0, posinf=0.0, neginf=0.0)
    sal = np.maximum(sal, 0.0)
    if sal.shape != (INPUT_SIZE, INPUT_SIZE):
        resized = Image.fromarray(sal).resize((INPUT_SIZE, INPUT_SIZE), Image.Resampling.BILINEAR)
        sal = np.maximum(np.asarray(resized, dtype=np.float32), 0.0)
    return sal


def composite_image(saliency: np.ndarray, original: Image.Image) -> Image.Image:
    canvas = np.asarray(
        original.convert("RGB").resize((INPUT_SIZE, INPUT_SIZE), Image.Resampling.BILINEAR),
        dtype=np.float32,
    )
    sal = _fit_saliency(saliency)

    rgba = np.empty((INPUT_SIZE, INPUT_SIZE, 4), dtype=np.uint8)
    rgba[..., :3] = canvas.astype(np.uint8)
    rgba[..., 0] = np.clip(np.rint(canvas[..., 0] + sal * 255.0), 0, 255).astype(np.uint8)
    rgba[..., 3] = OVERLAY_ALPHA
    return Image.fromarray(rgba)


def composite(saliency: np.ndarray, original: Image.Image) -> bytes:
    """Overlay ``saliency`` on ``original`` and return PNG bytes (224x224 RGBA)."""
    buffer = io.BytesIO()
    composite_image(saliency, original).save(buffer, **PNG_SAVE_OPTIONS)
    return buffer.getvalue()
