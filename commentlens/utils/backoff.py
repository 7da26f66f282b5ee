"""Retry states and backoff delay computation for the generative client."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

import backoff


class ErrorClass(str, Enum):
    """Failure classes that the retry loop distinguishes."""

    OVERLOADED = "overloaded"
    TRANSIENT = "transient"
    PARSE = "parse"


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    FALLEN_BACK = "fallen_back"


@dataclass(frozen=True)
class BackoffPolicy:
    overload_factor: float = 3.0
    overload_jitter: float = 2.0
    standard_factor: float = 2.0
    standard_jitter: float = 1.0


def backoff_delay(
    attempt: int,
    error_class: ErrorClass,
    policy: BackoffPolicy = BackoffPolicy(),
    jitter: Callable[[float], float] = backoff.full_jitter,
) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based).

    Overload and rate-limit responses back off exponentially from
    ``overload_factor``; every other failure grows linearly.
    """

    if attempt < 1:
        raise ValueError("attempt must be positive")
    if error_class is ErrorClass.OVERLOADED:
        return policy.overload_factor * 2**attempt + jitter(policy.overload_jitter)
    return policy.standard_factor * attempt + jitter(policy.standard_jitter)


def next_state(attempt: int, max_retries: int, succeeded: bool) -> RetryState:
    """Transition out of ``ATTEMPTING`` after attempt number ``attempt``."""

    if succeeded:
        return RetryState.SUCCEEDED
    if attempt < max_retries:
        return RetryState.BACKOFF
    return RetryState.FALLEN_BACK
