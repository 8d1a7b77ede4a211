import io

import numpy as np
import pytest
from PIL import Image
from PyPDF2 import PdfReader

from lungscan.core.errors import ReportGenerationError
from lungscan.core.heatmap import composite
from lungscan.core.pdf import generate_report
from lungscan.core.schemas import RiskBucket


def _image_xobjects(page):
    xobjects = page["/Resources"]["/XObject"].get_object()
    return [name for name, obj in xobjects.items() if obj.get_object()["/Subtype"] == "/Image"]


@pytest.fixture
def original() -> Image.Image:
    return Image.linear_gradient("L").resize((320, 240)).convert("RGB")


@pytest.fixture
def heatmap(original) -> bytes:
    return composite(np.random.default_rng(0).random((224, 224)).astype(np.float32), original)


def test_report_contents(original, heatmap):
    pdf = generate_report(original, heatmap, RiskBucket.HIGH, 0.87654, label="cancerous")
    assert pdf.startswith(b"%PDF")

    reader = PdfReader(io.BytesIO(pdf))
    assert len(reader.pages) == 1
    text = reader.pages[0].extract_text()
    assert "Lung Cancer Detection Report" in text
    assert "Risk Score: High" in text
    assert "Probability: 87.65%" in text
    assert "Classification: cancerous" in text
    assert len(_image_xobjects(reader.pages[0])) == 2


def test_report_is_reproducible(original, heatmap):
    first = generate_report(original, heatmap, RiskBucket.LOW, 0.1)
    second = generate_report(original, heatmap, RiskBucket.LOW, 0.1)
    assert first == second


@pytest.mark.parametrize("size", [(50, 1000), (2000, 100)])
def test_extreme_aspect_ratios_fit_one_page(size, heatmap):
    tall = Image.new("RGB", size, (40, 40, 40))
    reader = PdfReader(io.BytesIO(generate_report(tall, heatmap, "Moderate", 0.5)))
    assert len(reader.pages) == 1
    assert "Risk Score: Moderate" in reader.pages[0].extract_text()


def test_unsupported_color_mode_raises(heatmap):
    cmyk = Image.new("CMYK", (64, 64))
    with pytest.raises(ReportGenerationError):
        generate_report(cmyk, heatmap, RiskBucket.LOW, 0.1)


def test_corrupt_heatmap_raises(original):
    with pytest.raises(ReportGenerationError):
        generate_report(original, b"not a png", RiskBucket.LOW, 0.1)
