"""
Accumulation of rigid transform increments across ICP iterations.
"""

from __future__ import annotations

from typing import Union

import numpy as np

from .rigid_transform import RigidTransform


def compose(accumulated: RigidTransform, delta: RigidTransform) -> RigidTransform:
    """
    Fold an increment into a running transform, in place.

        R_acc <- R_acc @ dR
        t_acc <- t_acc + dt

    The increment rotation acts in the source's local frame, before the
    accumulated rotation; its translation must already be expressed in the
    frame of the accumulated translation. Orthonormality is not checked, see
    ``orthonormalize`` for drift correction.

    Returns:
        ``accumulated``, for chaining.
    """
    accumulated.rotation[...] = accumulated.rotation @ delta.rotation
    accumulated.translation += delta.translation
    return accumulated


def orthonormalize(rotation: np.ndarray) -> np.ndarray:
    """
    Project a drifted 3x3 matrix onto the nearest proper rotation.

    Uses the polar decomposition via SVD; the sign of the last singular
    vector is flipped when needed so the result has determinant +1.
    """
    U, _, Vt = np.linalg.svd(np.asarray(rotation, dtype=np.float64))
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, 2] *= -1
        R = U @ Vt
    return R


def apply_transformation(
    points: np.ndarray,
    transform: Union[RigidTransform, np.ndarray],
) -> np.ndarray:
    """
    Apply a transformation to a set of points.

    Args:
        points: Point cloud (N x 3).
        transform: RigidTransform or 4x4 homogeneous matrix.

    Returns:
        Transformed point cloud (N x 3).
    """
    if not isinstance(transform, RigidTransform):
        transform = RigidTransform.from_matrix(transform)
    return transform.apply(points)
