"""Pydantic response schemas for the YoloScan API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ScreenResponse(BaseModel):
    """The scanner screen as the presentation layer renders it."""

    phase: str = Field(description="Screen phase: 'idle', 'processing', 'done', or 'error'")
    processing: bool
    result: str = Field(description="Raw prediction dump or error message")
    display_text: str
    image_name: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="'ok' when the model is loaded, otherwise 'degraded'")
    device: str
    model_loaded: bool
    inference_running: bool


class ModelInfoResponse(BaseModel):
    """Metadata about the loaded detector."""

    source: str
    loaded: bool
    input_name: str | None = None
    output_name: str | None = None
    input_shape: list[int]
    output_shape: list[int]
    providers: list[str] = Field(default_factory=list)
    error: str | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
