"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from yoloscan.api.routes import router
from yoloscan.config import get_settings
from yoloscan.ml.inference import InferencePool
from yoloscan.ml.model_manager import OnnxModelManager
from yoloscan.screen import ScanSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the model on startup, release it on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting YoloScan (device=%s, model=%s, input_size=%s)",
        settings.device,
        settings.model_path,
        settings.input_size,
    )

    inference_pool = InferencePool()
    app.state.inference_pool = inference_pool

    session = ScanSession(settings, OnnxModelManager(settings))
    session.start()
    app.state.scan_session = session

    logger.info("YoloScan ready (model_loaded=%s)", session.handle is not None)
    yield

    logger.info("Shutting down YoloScan")
    session.close()
    inference_pool.shutdown()
    logger.info("YoloScan shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="YoloScan",
        description="Single-image object detection scanner returning raw YOLO output rows",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
