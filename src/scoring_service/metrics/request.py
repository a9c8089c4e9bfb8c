"""
Parsing of the metric request token list.

Tokens select metrics either by exact name ("f1", "auc", "map", ...) or
by substring containment with an optional `-suffix` parameter
("acc-5", "kl-0.1", "eucll-0.5").
"""

from collections.abc import Iterable
from dataclasses import dataclass

from scoring_service.core.exceptions import BadParameterError

TIMESERIES_MEASURES = ("L1", "L2", "mape", "smape", "mase", "owa", "mae", "mse")


@dataclass(frozen=True)
class MetricRequest:
    """
    Immutable list of requested metric tokens.

    Attributes:
        tokens: Tokens in request order.
    """

    tokens: tuple[str, ...]

    @classmethod
    def from_tokens(cls, tokens: Iterable[str]) -> "MetricRequest":
        return cls(tokens=tuple(tokens))

    def has(self, name: str) -> bool:
        """True if `name` is requested verbatim."""
        return name in self.tokens

    def contains(self, fragment: str) -> bool:
        """True if any token contains `fragment`."""
        return any(fragment in token for token in self.tokens)

    def accuracy_ks(self) -> list[int]:
        """
        Top-k values of every token containing "acc", in request order.

        "acc" gives k=1 and "acc-5" gives k=5. Duplicates are kept once.

        Raises:
            BadParameterError: If a suffix is not a positive integer.
        """
        ks: list[int] = []
        for token in self.tokens:
            if "acc" not in token:
                continue
            parts = token.split("-")
            k = 1
            if len(parts) == 2:
                try:
                    k = int(parts[1])
                except ValueError as e:
                    raise BadParameterError(
                        f"Invalid accuracy token '{token}': "
                        "k must be an integer"
                    ) from e
            if k < 1:
                raise BadParameterError(
                    f"Invalid accuracy token '{token}': k must be >= 1"
                )
            if k not in ks:
                ks.append(k)
        return ks

    def threshold(self, name: str) -> float | None:
        """
        Threshold attached to the last token containing `name`.

        Returns None when no token contains `name`, 0.0 when the token
        carries no `-threshold` suffix.

        Raises:
            BadParameterError: If a suffix is not a number.
        """
        found: float | None = None
        for token in self.tokens:
            if name not in token:
                continue
            parts = token.split("-")
            if len(parts) != 2:
                found = 0.0
                continue
            try:
                found = float(parts[1])
            except ValueError as e:
                raise BadParameterError(
                    f"Invalid threshold in token '{token}'"
                ) from e
        return found

    def timeseries_selection(self) -> tuple[set[str], set[str]]:
        """
        Requested time-series measures and their per-series variants.

        Returns:
            (aggregate, per_series) name sets. With nothing requested,
            aggregate defaults to {"L1"}.
        """
        aggregate = {m for m in TIMESERIES_MEASURES if self.has(m)}
        per_series = {m for m in TIMESERIES_MEASURES if self.has(f"{m}_all")}
        if not aggregate and not per_series:
            aggregate = {"L1"}
        return aggregate, per_series
