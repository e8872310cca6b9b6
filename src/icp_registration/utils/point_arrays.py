"""Coercion and validation of ``(N, 3)`` point arrays."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ..exceptions import InvalidInputError


def as_point_array(points, name: str = "points", *, allow_empty: bool = False) -> np.ndarray:
    """
    Return ``points`` as a float64 array of shape (N, 3).

    Raises:
        InvalidInputError: If the data is not shaped (N, 3), or is empty and
            ``allow_empty`` is False.
    """
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim > 2 or (arr.ndim == 2 and arr.shape[1] != 3):
        raise InvalidInputError(f"{name} must have shape (N, 3), got {arr.shape}")
    if arr.size == 0:
        if not allow_empty:
            raise InvalidInputError(f"{name} is empty")
        return arr.reshape(0, 3)
    if arr.ndim != 2:
        raise InvalidInputError(f"{name} must have shape (N, 3), got {arr.shape}")
    return arr


def as_paired_arrays(
    points_a,
    points_b,
    names: Tuple[str, str] = ("points_a", "points_b"),
) -> Tuple[np.ndarray, np.ndarray]:
    """Validate two non-empty, index-paired point sets of equal length."""
    a = as_point_array(points_a, names[0])
    b = as_point_array(points_b, names[1])
    if len(a) != len(b):
        raise InvalidInputError(
            f"{names[0]} and {names[1]} must have the same length ({len(a)} != {len(b)})"
        )
    return a, b
