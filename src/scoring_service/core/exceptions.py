"""
Error taxonomy shared by the result and metric layers.

- bad_parameter: malformed or out-of-range request values, always
  surfaced to the caller with a descriptive message.
- internal: invariant violations that indicate a programming error.
- soft_skip: requested data that is absent; never raised, only logged.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    BAD_PARAMETER = "bad_parameter"
    INTERNAL = "internal"
    SOFT_SKIP = "soft_skip"


class ScoringError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BadParameterError(ScoringError, ValueError):
    kind = ErrorKind.BAD_PARAMETER


class InternalError(ScoringError, RuntimeError):
    kind = ErrorKind.INTERNAL


class SimilarityIndexError(ScoringError):
    kind = ErrorKind.BAD_PARAMETER
