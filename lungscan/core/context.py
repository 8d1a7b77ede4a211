"""Application-lifetime context shared by every request handler."""

from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request

from ..settings import AppSettings
from .model_loader import ModelHandle


@dataclass(frozen=True)
class AppContext:
    settings: AppSettings
    models: ModelHandle = field(default_factory=ModelHandle)


def get_context(request: Request) -> AppContext:
    return request.app.state.context
