"""
Plotting utilities for classification metrics.
"""

from collections.abc import Sequence

import numpy as np
from matplotlib.figure import Figure
from numpy.typing import NDArray

from scoring_service.core.exceptions import BadParameterError


def _format_percentage(num: float, decimals: int = 2) -> str:
    """Show significant zeros while avoiding trailing zeros."""
    if decimals < 1:
        raise BadParameterError("must specify at least 1 decimal")
    formatted = f"{num:.{decimals}f}".rstrip("0").rstrip(".")
    return f"{formatted}%"


def confusion_colors(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    RGB cell colors: white to green on the diagonal, white to red off it.

    Off-diagonal cells with any mass get at least a faint red so that
    rare confusions stay visible.
    """
    n = matrix.shape[0]
    green = np.array([21, 214, 73]) / 255
    red = np.array([214, 82, 21]) / 255
    colors = np.zeros((n, n, 3))
    for i in range(n):
        for j in range(n):
            value = float(matrix[i, j])
            if i == j:
                colors[i, j] = 1 - value * (1 - green)
            else:
                shown = max(value, 0.1 * (value > 0))
                colors[i, j] = 1 - shown * (1 - red)
    return colors


def plot_confusion_matrix(
    matrix: NDArray[np.float64],
    labels: Sequence[str],
) -> Figure:
    """
    Heatmap of a column-normalized multiclass confusion matrix.

    Args:
        matrix: (nclasses, nclasses) matrix, rows are predicted classes
            and columns true classes, each column summing to 1 (or 0).
        labels: Class names, in class-id order.

    Returns:
        matplotlib Figure with heatmap.
    """
    import matplotlib.pyplot as plt

    n = matrix.shape[0]
    if matrix.shape != (n, n) or len(labels) != n:
        raise BadParameterError(
            f"Confusion matrix of shape {matrix.shape} does not match "
            f"{len(labels)} labels"
        )

    size = max(6.0, 0.6 * n)
    fig, ax = plt.subplots(figsize=(size + 2, size))
    ax.imshow(confusion_colors(matrix))

    ticks = list(range(n))
    ax.set_xticks(ticks)
    ax.set_yticks(ticks)
    ax.set_xticklabels(list(labels), rotation=45, ha="right")
    ax.set_yticklabels(list(labels))
    ax.set_xlabel("True class")
    ax.set_ylabel("Predicted class")

    fontsize = 12 if n <= 10 else 8
    for i in range(n):
        for j in range(n):
            ax.text(
                j,
                i,
                _format_percentage(100 * matrix[i, j]),
                ha="center",
                va="center",
                color="black",
                fontsize=fontsize,
            )

    ax.set_title("Confusion Matrix (column-normalized)")

    fig.tight_layout()
    return fig
