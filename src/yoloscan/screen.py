"""Scanner screen: state machine and the session object that drives it.

Phases:
    IDLE --pick--> PROCESSING --success--> DONE
                              --failure--> ERROR

DONE and ERROR accept a new pick just like IDLE. A model load failure moves
any non-processing phase to ERROR.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from yoloscan.errors import InvalidTransitionError, ModelLoadError, ScannerError
from yoloscan.ml.formatter import format_predictions
from yoloscan.ml.preprocessing import preprocess

if TYPE_CHECKING:
    from yoloscan.config import Settings
    from yoloscan.ml.inference import InferencePool, ModelHandle
    from yoloscan.ml.model_manager import OnnxModelManager

logger = logging.getLogger(__name__)

IDLE_PROMPT = "Select an image to analyze."
EMPTY_RESULT = "No text found"


class ScreenPhase(StrEnum):
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ScreenState:
    """What the presentation layer shows: one result string and a busy flag."""

    phase: ScreenPhase = ScreenPhase.IDLE
    result: str = ""
    image_name: str | None = None

    @property
    def processing(self) -> bool:
        return self.phase is ScreenPhase.PROCESSING

    @property
    def display_text(self) -> str:
        if self.phase is ScreenPhase.IDLE and self.image_name is None:
            return IDLE_PROMPT
        return self.result or EMPTY_RESULT


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImagePicked:
    image_name: str


@dataclass(frozen=True)
class ScanSucceeded:
    result: str


@dataclass(frozen=True)
class ScanFailed:
    message: str


@dataclass(frozen=True)
class ModelLoadFailed:
    message: str


ScreenEvent = ImagePicked | ScanSucceeded | ScanFailed | ModelLoadFailed


def transition(state: ScreenState, event: ScreenEvent) -> ScreenState:
    """Return the state that follows ``state`` after ``event``.

    Raises:
        InvalidTransitionError: If the event is not accepted in the current phase.
    """
    busy = state.phase is ScreenPhase.PROCESSING
    match event:
        case ImagePicked(image_name=name) if not busy:
            return ScreenState(phase=ScreenPhase.PROCESSING, result="", image_name=name)
        case ScanSucceeded(result=text) if busy:
            return replace(state, phase=ScreenPhase.DONE, result=text)
        case ScanFailed(message=message) if busy:
            return replace(state, phase=ScreenPhase.ERROR, result=message)
        case ModelLoadFailed(message=message) if not busy:
            return replace(state, phase=ScreenPhase.ERROR, result=message)
    raise InvalidTransitionError(f"{type(event).__name__} is not accepted while {state.phase.value}")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class ScanSession:
    """Owns the single model handle and the single screen state."""

    def __init__(self, settings: Settings, manager: OnnxModelManager) -> None:
        self._settings = settings
        self._manager = manager
        self._handle: ModelHandle | None = None
        self._load_error: ModelLoadError | None = None
        self._state = ScreenState()

    @property
    def state(self) -> ScreenState:
        return self._state

    @property
    def handle(self) -> ModelHandle | None:
        return self._handle

    @property
    def load_error(self) -> ModelLoadError | None:
        return self._load_error

    def start(self) -> None:
        """Load the model once. A failure is recorded, not raised."""
        if self._handle is not None:
            return
        try:
            self._handle = self._manager.load()
        except ModelLoadError as exc:
            logger.error("Failed to load model: %s", exc)
            self._load_error = exc
            self._state = transition(self._state, ModelLoadFailed(exc.display_message))
        else:
            self._load_error = None

    async def scan(self, image_bytes: bytes, image_name: str, pool: InferencePool) -> ScreenState:
        """Run one picked image through the pipeline and return the final state.

        Raises:
            InvalidTransitionError: If another scan is still processing.
        """
        self._state = transition(self._state, ImagePicked(image_name))
        logger.info("Processing %s (%d bytes)", image_name, len(image_bytes))
        try:
            text = await pool.run(self._process, image_bytes)
        except ScannerError as exc:
            logger.warning("Scan of %s failed: %s", image_name, exc.display_message)
            self._state = transition(self._state, ScanFailed(exc.display_message))
        except Exception as exc:
            logger.exception("Unexpected failure while scanning %s", image_name)
            self._state = transition(self._state, ScanFailed(f"Scan failed: {exc}"))
        else:
            self._state = transition(self._state, ScanSucceeded(text))
        return self._state

    def close(self) -> None:
        """Release the model handle."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _process(self, image_bytes: bytes) -> str:
        handle = self._handle
        if handle is None:
            if self._load_error is not None:
                raise ModelLoadError(str(self._load_error))
            raise ModelLoadError("model is not loaded")

        tensor = preprocess(
            image_bytes,
            self._settings.input_size,
            max_pixels=self._settings.max_image_pixels,
        )
        logger.debug("Running inference")
        output = handle.run(tensor)
        result = format_predictions(output, rows=self._settings.display_rows)
        logger.info("Inference result: %s", result)
        return result
