"""Custom exceptions for comment analysis."""
from __future__ import annotations

from commentlens.utils.backoff import ErrorClass


class CommentLensError(Exception):
    """Base exception for the analysis core."""


class InvalidInputError(CommentLensError, ValueError):
    """Raised when the caller passes a batch the core cannot analyze."""


class RetryableError(CommentLensError):
    """A failed generative attempt that the retry loop may repeat."""

    def __init__(self, error_class: ErrorClass, reason: str) -> None:
        self.error_class = error_class
        self.reason = reason
        super().__init__(f"{error_class.value}: {reason}")
