"""Tests for metric request parsing."""

import pytest

from scoring_service.core.exceptions import BadParameterError
from scoring_service.metrics.request import MetricRequest


class TestMetricRequest:
    def test_exact_and_substring(self) -> None:
        request = MetricRequest.from_tokens(["f1full", "acc-5"])
        assert request.has("f1full")
        assert not request.has("f1")
        assert request.contains("acc")

    def test_accuracy_ks(self) -> None:
        request = MetricRequest.from_tokens(["acc", "acc-5", "mcc", "acc-5"])
        assert request.accuracy_ks() == [1, 5]

    def test_accuracy_bad_suffix(self) -> None:
        with pytest.raises(BadParameterError, match="integer"):
            MetricRequest.from_tokens(["acc-x"]).accuracy_ks()

    def test_accuracy_k_zero(self) -> None:
        with pytest.raises(BadParameterError, match=">= 1"):
            MetricRequest.from_tokens(["acc-0"]).accuracy_ks()

    def test_threshold(self) -> None:
        request = MetricRequest.from_tokens(["kl-0.1", "js", "eucll-0.5"])
        assert request.threshold("kl") == pytest.approx(0.1)
        assert request.threshold("js") == 0.0
        assert request.threshold("eucll") == pytest.approx(0.5)
        assert request.threshold("was") is None

    def test_threshold_last_token_wins(self) -> None:
        request = MetricRequest.from_tokens(["r2-0.1", "r2-0.3"])
        assert request.threshold("r2") == pytest.approx(0.3)

    def test_threshold_bad_suffix(self) -> None:
        with pytest.raises(BadParameterError, match="threshold"):
            MetricRequest.from_tokens(["kl-abc"]).threshold("kl")

    def test_timeseries_default_l1(self) -> None:
        aggregate, per_series = MetricRequest.from_tokens([]).timeseries_selection()
        assert aggregate == {"L1"}
        assert per_series == set()

    def test_timeseries_selection(self) -> None:
        request = MetricRequest.from_tokens(["L2", "mape_all", "owa"])
        aggregate, per_series = request.timeseries_selection()
        assert aggregate == {"L2", "owa"}
        assert per_series == {"mape"}
