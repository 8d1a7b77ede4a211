import pytest
from pydantic import ValidationError

from lungscan.settings import AppSettings, expand_env_vars, load_settings


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("LUNGSCAN_MODEL_PATH", raising=False)
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings == AppSettings()
    assert settings.target_layer == "last_conv_layer"


def test_yaml_with_env_expansion_and_overrides(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "model_path: ${SCAN_MODEL_DIR:-/opt}/model.pt\n"
        "architecture: resnet50\n"
        "target_layer: layer4\n"
        "inference_timeout_s: 12\n"
    )
    monkeypatch.setenv("SCAN_MODEL_DIR", "/models")
    monkeypatch.setenv("LUNGSCAN_INFERENCE_TIMEOUT_S", "3.5")
    monkeypatch.delenv("LUNGSCAN_MODEL_PATH", raising=False)

    settings = load_settings(path)
    assert settings.model_path == "/models/model.pt"
    assert settings.architecture == "resnet50"
    assert settings.target_layer == "layer4"
    assert settings.inference_timeout_s == 3.5


def test_expand_env_vars_default(monkeypatch):
    monkeypatch.delenv("UNSET_FOR_TEST", raising=False)
    assert expand_env_vars("${UNSET_FOR_TEST:-fallback}") == "fallback"
    assert expand_env_vars({"a": ["${UNSET_FOR_TEST}"]}) == {"a": [""]}


def test_invalid_activation_rejected():
    with pytest.raises(ValidationError):
        AppSettings(output_activation="tanh")


def test_default_activation_passes_probabilities_through():
    assert AppSettings().output_activation == "none"


def test_single_output_softmax_rejected():
    with pytest.raises(ValidationError, match="single output"):
        AppSettings(num_classes=1, output_activation="softmax")
    assert AppSettings(num_classes=1, output_activation="sigmoid").num_classes == 1
