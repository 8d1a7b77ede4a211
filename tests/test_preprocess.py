import numpy as np
import pytest
import torch

from lungscan.core.errors import DecodeError
from lungscan.core.preprocess import decode_image, preprocess, to_tensor
from conftest import png_bytes


def test_tensor_shape_and_range(scan_png):
    tensor = preprocess(scan_png, "image/png")
    assert tuple(tensor.shape) == (1, 3, 224, 224)
    assert tensor.dtype == torch.float32
    assert float(tensor.min()) >= 0.0
    assert float(tensor.max()) <= 1.0


def test_preprocess_is_deterministic(scan_png):
    first = preprocess(scan_png, "image/png")
    second = preprocess(scan_png, "image/png")
    assert torch.equal(first, second)


@pytest.mark.parametrize("size,mode", [((10, 500), "L"), ((800, 600), "RGBA"), ((224, 224), "RGB")])
def test_any_size_and_mode_gives_fixed_shape(size, mode):
    tensor = preprocess(png_bytes(size=size, mode=mode), "image/png")
    assert tuple(tensor.shape) == (1, 3, 224, 224)


def test_linear_scaling_without_mean_std():
    tensor = to_tensor(decode_image(png_bytes(color=(255, 0, 51)), "image/png"))
    assert np.allclose(tensor[0, 0].numpy(), 1.0)
    assert np.allclose(tensor[0, 1].numpy(), 0.0)
    assert np.allclose(tensor[0, 2].numpy(), 0.2)


def test_decodes_despite_wrong_declared_type(scan_png):
    image = decode_image(scan_png, "application/octet-stream")
    assert image.mode == "RGB"
    assert image.size == (64, 48)


@pytest.mark.parametrize("data", [b"", b"12345", b"\x89PNG\r\n\x1a\n-truncated"])
def test_undecodable_bytes_raise(data):
    with pytest.raises(DecodeError):
        preprocess(data, "image/png")
