"""Model manager: locate, download, load, and validate the ONNX detector.

The model is resolved to a local file (downloading it from HuggingFace when
a repository is configured and the file is absent), loaded into a single
ONNX InferenceSession, and checked against the expected input and output
tensor shapes before it is handed out as a ModelHandle.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from yoloscan.errors import ModelLoadError
from yoloscan.ml.inference import ModelHandle

if TYPE_CHECKING:
    from collections.abc import Sequence

    from yoloscan.config import Settings

logger = logging.getLogger(__name__)

Dimension = int | str | None


class OnnxModelManager:
    """Resolves the model file and builds the process-wide ModelHandle."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @property
    def expected_input_shape(self) -> tuple[int, int, int, int]:
        size = self._settings.input_size
        return (1, size, size, 3)

    @property
    def expected_output_shape(self) -> tuple[int, int, int]:
        return (1, self._settings.output_rows, self._settings.output_columns)

    def ensure_downloaded(self) -> Path:
        """Return the local model path, downloading it from HuggingFace if needed."""
        local = Path(self._settings.model_path)
        if local.is_file():
            return local

        repo_id = self._settings.model_repo_id
        if repo_id is None:
            raise ModelLoadError(f"model file not found: {local}")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=repo_id,
                    filename=self._settings.model_filename,
                    local_dir=str(self._models_dir),
                )
            )
        except Exception as exc:
            raise ModelLoadError(f"could not download {self._settings.model_filename} from {repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", self._settings.model_filename, downloaded)
        return downloaded

    def load(self) -> ModelHandle:
        """Create the InferenceSession and validate its tensor shapes.

        Raises:
            ModelLoadError: If the file is missing or corrupt, or its declared
                shapes do not match the configured geometry.
        """
        model_path = self.ensure_downloaded()
        logger.info("Loading model from %s", model_path)
        try:
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:
            raise ModelLoadError(str(exc)) from exc

        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if not inputs or not outputs:
            raise ModelLoadError("model declares no input or output tensors")
        model_input, model_output = inputs[0], outputs[0]
        logger.info("Input tensors: %s", [(i.name, i.shape, i.type) for i in inputs])
        logger.info("Output tensors: %s", [(o.name, o.shape, o.type) for o in outputs])

        _check_shape("input", model_input.shape, self.expected_input_shape)
        _check_shape("output", model_output.shape, self.expected_output_shape)

        handle = ModelHandle(
            session=session,
            input_name=model_input.name,
            output_name=model_output.name,
            input_shape=self.expected_input_shape,
            output_shape=self.expected_output_shape,
            source=str(model_path),
            providers=list(session.get_providers()),
        )
        logger.info("Model loaded successfully")
        return handle

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts


def _check_shape(kind: str, declared: Sequence[Dimension], expected: Sequence[int]) -> None:
    """Compare a declared tensor shape with the expected one.

    Symbolic or unknown dimensions (strings, None) match anything.
    """
    if len(declared) != len(expected):
        raise ModelLoadError(f"{kind} shape {list(declared)} does not match expected {list(expected)}")
    for got, want in zip(declared, expected, strict=True):
        if isinstance(got, int) and got != want:
            raise ModelLoadError(f"{kind} shape {list(declared)} does not match expected {list(expected)}")
