"""Render the raw detector output as text.

Rows are dumped verbatim: no thresholding, ranking, box decoding or class
names.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

HEADER = "Top Predictions:\n"


def format_predictions(output: NDArray[np.float32], rows: int = 5) -> str:
    """List the first ``rows`` candidate rows of a [1, N, C] output tensor.

    Example::

        Top Predictions:
        Prediction 0: [0.0123, 0.5, ...]
    """
    candidates = output.reshape(-1, output.shape[-1])
    lines = [HEADER]
    for index, row in enumerate(candidates[:rows]):
        lines.append(f"Prediction {index}: {[float(value) for value in row]}\n")
    return "".join(lines)
