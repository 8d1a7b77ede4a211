"""Pydantic schemas for the LungScan API."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RiskBucket(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


Label = Literal["cancerous", "non-cancerous"]


class DetectionResult(BaseModel):
    """Response of ``POST /api/detect``. Keys are camelCase on the wire."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: Label = Field(..., description="Binary classification")
    score: float = Field(..., ge=0, le=1, description="Probability of the cancerous class")
    risk_score: RiskBucket = Field(..., alias="riskScore", description="Risk bucket derived from score")
    heatmap_url: str = Field(..., alias="heatmapUrl", description="Grad-CAM overlay as a PNG data URI")
    report_url: str = Field(..., alias="reportUrl", description="PDF report as a data URI")


class ErrorResponse(BaseModel):
    error: str
