"""Core utilities for the LungScan server."""

import os
import uuid
import base64
import logging
from datetime import datetime, timezone

from lungscan import __version__


def setup_logging(level: str = "INFO"):
    """Setup consistent logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )


def get_version_info() -> str:
    """Get version information from the package or environment."""
    version = os.getenv("VERSION", __version__)
    git_sha = os.getenv("GIT_SHA", "unknown")
    if git_sha != "unknown":
        return f"{version}+{git_sha[:8]}"
    return version


def generate_request_id() -> str:
    """Generate a unique request ID."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def to_data_uri(data: bytes, media_type: str) -> str:
    """Embed raw bytes as a base64 ``data:`` URI."""
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"
