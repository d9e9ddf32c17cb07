"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request, UploadFile, status

from yoloscan.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ModelInfoResponse,
    ScreenResponse,
)
from yoloscan.errors import InvalidTransitionError

if TYPE_CHECKING:
    from yoloscan.config import Settings
    from yoloscan.ml.inference import InferencePool
    from yoloscan.screen import ScanSession, ScreenState

router = APIRouter(prefix="/api/v1")


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_session(request: Request) -> ScanSession:
    session: ScanSession = request.app.state.scan_session
    return session


def _screen_response(state: ScreenState) -> ScreenResponse:
    return ScreenResponse(
        phase=state.phase.value,
        processing=state.processing,
        result=state.result,
        display_text=state.display_text,
        image_name=state.image_name,
    )


@router.post(
    "/scan",
    response_model=ScreenResponse,
    responses={
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
    },
    summary="Scan an image with the detector",
)
async def scan(request: Request, file: UploadFile) -> ScreenResponse:
    """Run the uploaded image through the detector and return the raw predictions.

    Pipeline failures are reported in the result text with phase 'error'.
    """
    settings = _get_settings(request)
    session = _get_session(request)

    if session.state.processing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A scan is already in progress",
        )

    too_large = HTTPException(
        status_code=status.HTTP_413_CONTENT_TOO_LARGE,
        detail=f"Upload exceeds {settings.max_file_size} bytes",
    )
    if file.size is not None and file.size > settings.max_file_size:
        raise too_large

    image_bytes = await file.read()
    if len(image_bytes) > settings.max_file_size:
        raise too_large

    try:
        state = await session.scan(image_bytes, file.filename or "upload", _get_inference_pool(request))
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _screen_response(state)


@router.get(
    "/status",
    response_model=ScreenResponse,
    summary="Current screen state",
)
async def screen_status(request: Request) -> ScreenResponse:
    """Return the last result and whether a scan is processing."""
    return _screen_response(_get_session(request).state)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    session = _get_session(request)
    loaded = session.handle is not None and session.handle.is_loaded
    return HealthResponse(
        status="ok" if loaded else "degraded",
        device=settings.device,
        model_loaded=loaded,
        inference_running=_get_inference_pool(request).active_count > 0,
    )


@router.get(
    "/model",
    response_model=ModelInfoResponse,
    summary="Loaded model details",
)
async def model_info(request: Request) -> ModelInfoResponse:
    """Return where the model came from and the tensor shapes it runs with."""
    settings = _get_settings(request)
    session = _get_session(request)
    handle = session.handle
    if handle is None:
        size = settings.input_size
        return ModelInfoResponse(
            source=settings.model_path,
            loaded=False,
            input_shape=[1, size, size, 3],
            output_shape=[1, settings.output_rows, settings.output_columns],
            error=session.load_error.display_message if session.load_error else None,
        )
    return ModelInfoResponse(
        source=handle.source,
        loaded=handle.is_loaded,
        input_name=handle.input_name,
        output_name=handle.output_name,
        input_shape=list(handle.input_shape),
        output_shape=list(handle.output_shape),
        providers=handle.providers,
    )
