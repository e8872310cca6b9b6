"""
Rigid Alignment Module

This module provides the per-iteration primitives of point-to-point ICP
(centroids, robust correspondence search, closed-form rigid fitting and
transform composition) and the ICP loop built on top of them.
"""

from .centroids import compute_centroids
from .composition import apply_transformation, compose, orthonormalize
from .correspondences import (
    CorrespondenceFinder,
    Correspondences,
    find_correspondences,
    robust_distance_threshold,
)
from .fine_registration import ICPRegistration
from .rigid_transform import RigidTransform
from .transform_solver import RigidTransformSolver, fit_transformation, svd3

__all__ = [
    "compute_centroids",
    "CorrespondenceFinder",
    "Correspondences",
    "find_correspondences",
    "robust_distance_threshold",
    "RigidTransformSolver",
    "fit_transformation",
    "svd3",
    "RigidTransform",
    "compose",
    "orthonormalize",
    "apply_transformation",
    "ICPRegistration",
]
