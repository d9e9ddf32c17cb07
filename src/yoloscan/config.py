"""Environment-based configuration for YoloScan."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from YOLOSCAN_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="YOLOSCAN_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model source: a local file, optionally fetched from a HuggingFace repo
    model_path: str = "models/best-fp16.onnx"
    model_repo_id: str | None = None
    model_filename: str = "best-fp16.onnx"
    models_dir: str = "models"

    # Tensor geometry
    input_size: int = Field(default=640, ge=1)
    output_rows: int = Field(default=25_200, ge=1)
    output_columns: int = Field(default=15, ge=1)
    display_rows: int = Field(default=5, ge=1)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
