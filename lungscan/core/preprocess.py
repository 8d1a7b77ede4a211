"""Image decoding and tensor preparation.

Uploads are decoded with Pillow at native resolution, resized to the fixed
224x224 model input with bilinear resampling and scaled linearly into
``[0, 1]``. No per-channel mean/std normalization is applied.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

import numpy as np
import torch
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError

logger = logging.getLogger(__name__)

INPUT_SIZE = 224


def decode_image(raw_bytes: bytes, mime_type: Optional[str] = None) -> Image.Image:
    """Decode uploaded bytes into an RGB image at native resolution."""
    if mime_type and not mime_type.startswith("image/"):
        logger.warning(f"Declared content type {mime_type!r} is not an image; decoding anyway")
    if not raw_bytes:
        raise DecodeError("Empty image upload")

    try:
        image = Image.open(io.BytesIO(raw_bytes))
        image.load()
        return image.convert("RGB")
    except UnidentifiedImageError as e:
        raise DecodeError("Unrecognized image format") from e
    except Exception as e:
        raise DecodeError(f"Could not decode image: {e}") from e


def resize_for_model(image: Image.Image) -> Image.Image:
    return image.convert("RGB").resize((INPUT_SIZE, INPUT_SIZE), Image.Resampling.BILINEAR)


def to_tensor(image: Image.Image) -> torch.Tensor:
    """Convert a decoded image into a ``(1, 3, 224, 224)`` float32 tensor in ``[0, 1]``."""
    pixels = np.asarray(resize_for_model(image), dtype=np.float32) / 255.0
    chw = np.ascontiguousarray(pixels.transpose(2, 0, 1))
    return torch.from_numpy(chw).unsqueeze(0)


def preprocess(raw_bytes: bytes, mime_type: Optional[str] = None) -> torch.Tensor:
    return to_tensor(decode_image(raw_bytes, mime_type))
