"""Error taxonomy for the detection pipeline."""


class LungScanError(Exception):
    """Base class for pipeline failures."""


class ModelLoadError(LungScanError):
    """Model artifact is missing, malformed or does not fit the pipeline."""


class ServiceUnavailable(LungScanError):
    """Model has not finished loading yet."""


class DecodeError(LungScanError):
    """Uploaded bytes could not be decoded as an image."""


class InferenceError(LungScanError):
    """Grad-CAM target layer is missing or produced no activation."""


class ModelExecutionError(LungScanError):
    """Numeric or shape failure during the forward or backward pass."""


class InferenceTimeout(LungScanError):
    """Inference did not finish within the configured timeout."""


class ReportGenerationError(LungScanError):
    """PDF report could not be assembled."""
