"""Exception hierarchy for the scan pipeline."""

from __future__ import annotations


class ScannerError(Exception):
    """Base class for failures that surface as the scan result text."""

    prefix = "Scan failed"

    @property
    def display_message(self) -> str:
        """Message shown to the user in place of the predictions."""
        return f"{self.prefix}: {self}"


class ModelLoadError(ScannerError):
    """The model file is missing, corrupt, or has unexpected tensor shapes."""

    prefix = "Failed to load model"


class ImageDecodeError(ScannerError):
    """The submitted bytes are not a supported, intact image."""

    prefix = "Failed to decode image"


class InferenceError(ScannerError):
    """The forward pass could not be run or returned an unusable output."""

    prefix = "Inference failed"


class InvalidTransitionError(Exception):
    """An event was delivered to the screen in a phase that cannot accept it."""
