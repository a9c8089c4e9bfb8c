import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402
from matplotlib.figure import Figure  # noqa: E402

from scoring_service.core.exceptions import BadParameterError  # noqa: E402
from scoring_service.metrics.plotting import (  # noqa: E402
    _format_percentage,
    confusion_colors,
    plot_confusion_matrix,
)


class TestFormatPercentage:
    def test_trailing_zeros_dropped(self) -> None:
        assert _format_percentage(50.0) == "50%"
        assert _format_percentage(12.5) == "12.5%"
        assert _format_percentage(1.234) == "1.23%"

    def test_requires_decimals(self) -> None:
        with pytest.raises(BadParameterError, match="decimal"):
            _format_percentage(1.0, decimals=0)


def test_confusion_colors() -> None:
    colors = confusion_colors(np.array([[1.0, 0.01], [0.0, 0.99]]))
    assert colors.shape == (2, 2, 3)
    np.testing.assert_allclose(colors[1, 0], [1.0, 1.0, 1.0])
    # small confusions still get a visible tint
    assert colors[0, 1].min() < 0.95


class TestPlotConfusionMatrix:
    def test_returns_figure(self) -> None:
        fig = plot_confusion_matrix(np.eye(2), ["neg", "pos"])
        assert isinstance(fig, Figure)
        ax = fig.axes[0]
        assert [t.get_text() for t in ax.get_xticklabels()] == ["neg", "pos"]
        assert ax.get_xlabel() == "True class"

    def test_label_count_mismatch(self) -> None:
        with pytest.raises(BadParameterError, match="labels"):
            plot_confusion_matrix(np.eye(2), ["only"])
