"""Inference layer: the loaded model handle and the worker that runs it.

Architecture:
    FastAPI (async) -> ScanSession -> ThreadPoolExecutor(1) -> ONNX forward pass

Only one forward pass runs at a time; the single worker keeps the blocking
call off the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

import numpy as np

from yoloscan.errors import InferenceError

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModelHandle:
    """A loaded detector session with the tensor geometry it was validated for."""

    def __init__(
        self,
        session: InferenceSession,
        input_name: str,
        output_name: str,
        input_shape: tuple[int, ...],
        output_shape: tuple[int, ...],
        source: str = "",
        providers: list[str] | None = None,
    ) -> None:
        self._session: InferenceSession | None = session
        self.input_name = input_name
        self.output_name = output_name
        self.input_shape = input_shape
        self.output_shape = output_shape
        self.source = source
        self.providers = providers or []

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    def run(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        """Run one forward pass over a flat input tensor.

        The tensor is reshaped to the model's [1, S, S, 3] input and the
        result is returned in the [1, rows, columns] output shape.

        Raises:
            InferenceError: If the handle is closed, the input has the wrong
                length, the backend fails, or the output has the wrong size.
        """
        session = self._session
        if session is None:
            raise InferenceError("model is not initialized")

        expected_size = int(np.prod(self.input_shape))
        if tensor.size != expected_size:
            raise InferenceError(f"input tensor has {tensor.size} values, expected {expected_size}")
        batch = np.ascontiguousarray(tensor, dtype=np.float32).reshape(self.input_shape)

        try:
            result = session.run([self.output_name], {self.input_name: batch})[0]
        except Exception as exc:
            raise InferenceError(str(exc) or type(exc).__name__) from exc

        output = np.asarray(result, dtype=np.float32)
        if output.size != int(np.prod(self.output_shape)):
            raise InferenceError(f"model returned shape {list(output.shape)}, expected {list(self.output_shape)}")
        return output.reshape(self.output_shape)

    def close(self) -> None:
        """Drop the session so ONNX Runtime can free it once unreferenced.

        Later calls to run() fail with InferenceError. Safe to call more than once.
        """
        if self._session is not None:
            self._session = None
            logger.info("Model session dropped")


class InferencePool:
    """Runs blocking inference calls on a single dedicated worker thread."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="onnx-inference",
        )
        self._active_count: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the inference thread and await it."""
        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of currently running inference tasks."""
        with self._counter_lock:
            return self._active_count

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
