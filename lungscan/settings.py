from __future__ import annotations

import os
import re
import pathlib
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Load environment variables
load_dotenv()

ROOT = pathlib.Path(__file__).resolve().parents[1]
DEFAULT_SETTINGS_PATH = ROOT / "settings.yaml"

# Environment variables that override individual settings after the YAML is read
ENV_OVERRIDES = {
    "LUNGSCAN_MODEL_PATH": "model_path",
    "LUNGSCAN_ARCHITECTURE": "architecture",
    "LUNGSCAN_TARGET_LAYER": "target_layer",
    "LUNGSCAN_DEVICE": "device",
    "LUNGSCAN_LOG_LEVEL": "log_level",
    "LUNGSCAN_INFERENCE_TIMEOUT_S": "inference_timeout_s",
    "LUNGSCAN_LOAD_IN_BACKGROUND": "load_in_background",
}

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in string values."""
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    if not isinstance(value, str) or "${" not in value:
        return value

    def replacer(match: re.Match) -> str:
        var_with_default = match.group(1)
        if ":-" in var_with_default:
            var, default = var_with_default.split(":-", 1)
            return os.getenv(var, default)
        return os.getenv(var_with_default, "")

    return _ENV_PATTERN.sub(replacer, value)


class AppSettings(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    # Model artifact
    model_path: str = "models/lung_cancer.pt"
    architecture: Optional[str] = Field(
        None, description="torchvision architecture for state-dict artifacts (e.g. resnet50)"
    )
    num_classes: int = Field(2, ge=1)
    target_layer: str = Field("last_conv_layer", description="Module name used for Grad-CAM")
    output_activation: Literal["softmax", "sigmoid", "none"] = Field(
        "none", description="Applied to raw model output; softmax or sigmoid for logit models"
    )
    device: str = "cpu"

    # Serving
    inference_timeout_s: float = Field(30.0, gt=0)
    load_in_background: bool = False
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    log_level: str = "INFO"

    # Overlay & report
    normalize_saliency: bool = True
    report_title: str = "Lung Cancer Detection Report"

    @model_validator(mode="after")
    def _check_activation(self) -> "AppSettings":
        if self.num_classes == 1 and self.output_activation == "softmax":
            raise ValueError("softmax over a single output is always 1.0; use sigmoid or none")
        return self


def load_settings(path: Optional[pathlib.Path] = None) -> AppSettings:
    """Read settings from YAML, then apply ``LUNGSCAN_*`` environment overrides."""
    if path is None:
        env_path = os.getenv("LUNGSCAN_SETTINGS")
        path = pathlib.Path(env_path) if env_path else DEFAULT_SETTINGS_PATH

    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    data = expand_env_vars(data)

    for env_name, field in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[field] = value

    # Empty strings from unset ${VAR} references mean "use the default"
    data = {k: v for k, v in data.items() if v != ""}
    return AppSettings(**data)


SETTINGS = load_settings()
