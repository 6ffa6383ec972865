"""Bounded retry combinator with per-attempt short-circuit."""

from __future__ import annotations

from typing import Callable, TypeVar

T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when every attempt was skipped."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"No attempt succeeded after {attempts} tries")
        self.attempts = attempts


def retry_until(attempt: Callable[[int], T | None], attempts: int) -> T:
    """Call attempt(n) for n = 1..attempts and return the first non-None result.

    An attempt returns None to skip to the next try. Exceptions raised by an
    attempt are not caught and end the loop immediately.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")
    for number in range(1, attempts + 1):
        result = attempt(number)
        if result is not None:
            return result
    raise RetryExhausted(attempts)


__all__ = ["RetryExhausted", "retry_until"]
