"""Centroid estimation for index-paired point sets."""

from typing import Tuple

import numpy as np

from ..utils.point_arrays import as_paired_arrays


def compute_centroids(points_a, points_b) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute the arithmetic mean position of two paired point sets.

    Args:
        points_a: First point set (N x 3).
        points_b: Second point set (N x 3), paired index-wise with ``points_a``.

    Returns:
        Tuple of (centroid_a, centroid_b), each of shape (3,).

    Raises:
        InvalidInputError: If either set is empty or the lengths differ.
    """
    a, b = as_paired_arrays(points_a, points_b)
    return a.mean(axis=0), b.mean(axis=0)
