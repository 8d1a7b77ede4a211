"""End-to-end detection pipeline for one uploaded image.

decode -> preprocess -> inference (with timeout) -> overlay -> report.
Blocking stages run in worker threads so the event loop stays responsive.
Either a complete ``Detection`` is produced or an exception propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image

from ..settings import AppSettings
from .errors import InferenceTimeout
from .heatmap import composite, normalize_saliency
from .inference import classify, infer, risk_bucket
from .model_loader import LoadedModel
from .pdf import generate_report
from .preprocess import decode_image, to_tensor
from .schemas import DetectionResult, RiskBucket
from .utils import to_data_uri

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    label: str
    score: float
    risk: RiskBucket
    heatmap_png: bytes
    report_pdf: bytes

    def to_result(self) -> DetectionResult:
        return DetectionResult(
            label=self.label,
            score=self.score,
            risk_score=self.risk,
            heatmap_url=to_data_uri(self.heatmap_png, "image/png"),
            report_url=to_data_uri(self.report_pdf, "application/pdf"),
        )

    def summary(self) -> dict:
        return {"label": self.label, "score": self.score, "riskScore": self.risk.value}


def build_detection(
    image: Image.Image, probability: float, saliency: np.ndarray, settings: AppSettings
) -> Detection:
    """Turn an inference outcome into the overlay, the report and the decision."""
    label = classify(probability)
    risk = risk_bucket(probability)
    if settings.normalize_saliency:
        saliency = normalize_saliency(saliency)
    heatmap_png = composite(saliency, image)
    report_pdf = generate_report(
        image, heatmap_png, risk, probability, label=label, title=settings.report_title
    )
    return Detection(label=label, score=probability, risk=risk, heatmap_png=heatmap_png, report_pdf=report_pdf)


async def detect(
    model: LoadedModel,
    raw_bytes: bytes,
    mime_type: Optional[str],
    settings: AppSettings,
) -> Detection:
    image = await asyncio.to_thread(decode_image, raw_bytes, mime_type)
    tensor = await asyncio.to_thread(to_tensor, image)

    try:
        probability, saliency = await asyncio.wait_for(
            asyncio.to_thread(infer, model, tensor), timeout=settings.inference_timeout_s
        )
    except asyncio.TimeoutError as e:
        raise InferenceTimeout(f"Inference exceeded {settings.inference_timeout_s}s") from e

    detection = await asyncio.to_thread(build_detection, image, probability, saliency, settings)
    logger.info(f"Detection: label={detection.label} score={detection.score:.4f} risk={detection.risk.value}")
    return detection
