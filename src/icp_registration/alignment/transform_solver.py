"""
Closed-form rigid transform estimation (Kabsch/Umeyama).

Given index-paired source and target points, the rotation and translation
minimizing the sum of squared residuals are obtained from the SVD of the
cross-covariance of the centered pairs. All arithmetic is float64.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np

from .centroids import compute_centroids
from .rigid_transform import RigidTransform
from ..utils.logging import setup_logger
from ..utils.point_arrays import as_paired_arrays

logger = setup_logger(__name__)

SVDFunction = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray, np.ndarray]]


def svd3(matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Singular value decomposition of a 3x3 matrix.

    Returns:
        Tuple (U, S, V) with ``matrix ≈ U @ diag(S) @ V.T``. Note that V is
        returned, not its transpose.
    """
    U, S, Vt = np.linalg.svd(np.asarray(matrix, dtype=np.float64))
    return U, S, Vt.T


def cross_covariance(source_centered: np.ndarray, target_centered: np.ndarray) -> np.ndarray:
    """H[r, c] = sum_i source_centered[i, r] * target_centered[i, c]."""
    return source_centered.T @ target_centered


@dataclass
class RigidTransformSolver:
    """
    Least-squares rigid fit between matched point pairs.

    Attributes:
        residual_tolerance: Per-axis residual under which the fitted transform
            reproduces the targets exactly (numerical sanity check).
        small_displacement_threshold: Per-axis displacement under which all
            pairs are treated as a near-zero motion.
        small_displacement_fallback: When the sanity check fails and every pair
            moved less than ``small_displacement_threshold``, replace the SVD
            rotation, which is poorly conditioned for near-zero motion, by the
            identity and use the mean displacement as translation.
        svd: 3x3 SVD primitive returning (U, S, V).
    """

    residual_tolerance: float = 1e-5
    small_displacement_threshold: float = 0.35
    small_displacement_fallback: bool = True
    svd: SVDFunction = svd3

    @classmethod
    def from_config(cls, cfg) -> "RigidTransformSolver":
        """Build from a ``SolverConfig``."""
        return cls(
            residual_tolerance=cfg.residual_tolerance,
            small_displacement_threshold=cfg.small_displacement_threshold,
            small_displacement_fallback=cfg.small_displacement_fallback,
        )

    def fit_transformation(self, source_points, target_points) -> RigidTransform:
        """
        Estimate the rigid transform mapping source points onto target points.

        Args:
            source_points: Matched source points (N x 3), N >= 1.
            target_points: Matched target points (N x 3), paired index-wise.

        Returns:
            RigidTransform with ``target ≈ R @ source + t``.

        Raises:
            InvalidInputError: On empty input or length mismatch.
        """
        src, dst = as_paired_arrays(source_points, target_points, ("source_points", "target_points"))

        src_centroid, dst_centroid = compute_centroids(src, dst)
        H = cross_covariance(src - src_centroid, dst - dst_centroid)

        U, _, V = self.svd(H)
        R = V @ U.T

        # Ensure proper rotation (det(R) should be 1)
        if np.linalg.det(R) < 0:
            logger.warning("det(R) < 0 for %d pairs; flipping the last singular vector.", len(src))
            V = V.copy()
            V[:, 2] *= -1
            R = V @ U.T

        t = dst_centroid - R @ src_centroid
        transform = RigidTransform(rotation=R, translation=t)

        if self.small_displacement_fallback and not self._reproduces(transform, src, dst):
            displacement = dst - src
            if np.all(np.abs(displacement) < self.small_displacement_threshold):
                logger.debug(
                    "Near-zero motion (all |Δ| < %.3g) with inexact fit; "
                    "using identity rotation and mean displacement.",
                    self.small_displacement_threshold,
                )
                transform = RigidTransform(rotation=np.eye(3), translation=displacement.mean(axis=0))

        return transform

    def _reproduces(self, transform: RigidTransform, src: np.ndarray, dst: np.ndarray) -> bool:
        residual = np.abs(transform.apply(src) - dst)
        return bool(np.all(residual < self.residual_tolerance))


_DEFAULT_SOLVER = RigidTransformSolver()


def fit_transformation(source_points, target_points) -> Tuple[np.ndarray, np.ndarray]:
    """
    Fit a rigid transform with default thresholds.

    Returns:
        Tuple of (R, t): 3x3 rotation and translation of shape (3,).
    """
    transform = _DEFAULT_SOLVER.fit_transformation(source_points, target_points)
    return transform.rotation, transform.translation
