"""LungScan: lung-scan classification service with Grad-CAM overlays and PDF reports.

NOT FOR CLINICAL USE.
"""

from __future__ import annotations

__all__: list[str] = []
__version__ = "0.1.0"
