from __future__ import annotations

from typing import NoReturn, TypeVar

T = TypeVar("T")


class FatalError(AssertionError):
    """Raised when a precondition or cache invariant is violated.

    These are programming errors, not retryable failures.
    """


def fatal_error(message: str) -> NoReturn:
    """Raise a `FatalError` with the given message."""
    raise FatalError(message)


def force_unwrap(message: str, value: T | None) -> T:
    """Return `value`, or raise `FatalError` if it is None.

    Args:
        message: Explanation used when the value is missing.
        value: The optional value to unwrap.

    Returns:
        The value, narrowed to non-None.

    Raises:
        FatalError: If `value` is None.
    """
    if value is None:
        fatal_error(message)
    return value
