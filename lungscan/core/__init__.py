"""Core detection pipeline: loading, preprocessing, inference, overlays and reports."""
