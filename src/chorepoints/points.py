"""Utilities for working with point amounts in ChorePoints."""

from __future__ import annotations

from typing import Union

PointsLike = Union[int, str]


def to_points(value: PointsLike) -> int:
    """Convert ``value`` to a whole number of points."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not point amounts.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"Unsupported points type: {type(value)!r}")


def require_positive(amount: int, *, allow_zero: bool = False) -> int:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < 0:
            raise ValueError("Points must be zero or greater.")
    else:
        if amount <= 0:
            raise ValueError("Points must be greater than zero.")
    return amount


def format_points(amount: int) -> str:
    """Return ``amount`` as a display string (e.g. ``1,250 pts``)."""

    return f"{amount:,} pts"
