from __future__ import annotations

from typing import Any


class ClmmError(Exception):
    """Base class for every failure surfaced by the quoting engine."""


class DecodeError(ClmmError):
    def __init__(self, message: str, *, account: str | None = None):
        self.account = account
        super().__init__(message)


class AccountLackError(ClmmError):
    """A tick array needed by the swap is missing from the caller's cache."""

    def __init__(self, start_index: int, address: Any | None = None):
        self.start_index = start_index
        self.address = address
        suffix = f" ({address})" if address is not None else ""
        super().__init__(
            f"tick array starting at {start_index}{suffix} is not in the cache"
        )


class InvalidTickArrayError(ClmmError):
    """No initialized liquidity remains in the swap direction."""

    def __init__(self, message: str, *, zero_for_one: bool | None = None):
        self.zero_for_one = zero_for_one
        super().__init__(message)


class NumericOverflowError(ClmmError, OverflowError):
    def __init__(self, label: str, value: int | None = None):
        self.label = label
        detail = f": {value}" if value is not None else ""
        super().__init__(f"{label} out of range{detail}")


class InvalidParametersError(ClmmError, ValueError):
    pass
