"""LungScan FastAPI Application

Builds the app around an application-lifetime ``AppContext``. The model is
loaded once in the lifespan handler: synchronously by default (a bad artifact
aborts startup) or in a worker thread when ``load_in_background`` is set, in
which case requests are answered "Model not loaded" until it is ready.
"""

import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.context import AppContext
from .core.errors import ModelLoadError
from .core.model_loader import LoadedModel, load_model
from .core.utils import get_version_info, setup_logging
from .routes import router
from .settings import SETTINGS, AppSettings


logger = logging.getLogger(__name__)

ModelLoader = Callable[[AppSettings], LoadedModel]


def _load_into(context: AppContext, loader: ModelLoader) -> None:
    context.models.set(loader(context.settings))


async def _load_in_background(context: AppContext, loader: ModelLoader) -> None:
    try:
        await asyncio.to_thread(_load_into, context, loader)
        logger.info("Background model load finished")
    except ModelLoadError as e:
        logger.critical(f"Background model load failed, service stays unavailable: {e}")
    except Exception as e:
        logger.critical(f"Background model load crashed, service stays unavailable: {e}", exc_info=True)


def create_app(settings: Optional[AppSettings] = None, loader: ModelLoader = load_model) -> FastAPI:
    settings = settings or SETTINGS
    setup_logging(settings.log_level)
    context = AppContext(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info("LungScan server starting...")
        logger.info(f"Version: {get_version_info()}")
        task = None
        if settings.load_in_background:
            task = asyncio.create_task(_load_in_background(context, loader))
        else:
            # ModelLoadError propagates and aborts startup
            _load_into(context, loader)
        yield
        if task is not None and not task.done():
            task.cancel()
        logger.info("LungScan server shutting down...")

    app = FastAPI(
        title="LungScan",
        description="Lung-scan cancer classification with Grad-CAM overlays and PDF reports (non-diagnostic)",
        version=get_version_info(),
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/healthz")
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "model_loaded": context.models.ready,
            "version": get_version_info(),
        }

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {"version": get_version_info(), "git_sha": os.getenv("GIT_SHA", "unknown")}

    return app


app = create_app()
