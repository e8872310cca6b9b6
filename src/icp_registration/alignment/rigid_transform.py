"""
Rigid transform container.

A rigid transform maps source coordinates into the destination frame as

    dst = R @ src + t

with ``R`` a 3x3 rotation matrix and ``t`` a translation vector. Instances are
mutable so an iteration loop can accumulate increments in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ..exceptions import InvalidInputError
from ..utils.point_arrays import as_point_array


@dataclass
class RigidTransform:
    """Rotation + translation, no scale or shear.

    Attributes:
        rotation: 3x3 rotation matrix (determinant +1).
        translation: Translation vector of shape (3,).

    Example:
        >>> T = RigidTransform.identity()
        >>> T.apply(np.array([[1.0, 2.0, 3.0]]))
        array([[1., 2., 3.]])
    """

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=np.float64)
        self.translation = np.array(self.translation, dtype=np.float64).reshape(-1)
        if self.rotation.shape != (3, 3):
            raise InvalidInputError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise InvalidInputError(f"Translation must have 3 components, got {self.translation.shape}")

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @classmethod
    def from_matrix(cls, matrix) -> "RigidTransform":
        """Build from a 4x4 homogeneous matrix."""
        m = np.asarray(matrix, dtype=np.float64)
        if m.shape != (4, 4):
            raise InvalidInputError(f"Transform must be 4x4 matrix, got {m.shape}")
        return cls(rotation=m[:3, :3], translation=m[:3, 3])

    def as_matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix."""
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def copy(self) -> "RigidTransform":
        return RigidTransform(self.rotation.copy(), self.translation.copy())

    def apply(self, points) -> np.ndarray:
        """Transform an (N x 3) point set. Empty input is returned as (0, 3)."""
        pts = as_point_array(points, "points", allow_empty=True)
        if pts.size == 0:
            return pts
        return pts @ self.rotation.T + self.translation

    def inverse(self) -> "RigidTransform":
        R_inv = self.rotation.T
        return RigidTransform(R_inv, -R_inv @ self.translation)

    def rotation_angle(self) -> float:
        """Rotation magnitude in radians (axis-angle)."""
        # Clamp argument to arccos to valid range to avoid NaNs
        cos_theta = max(min((float(np.trace(self.rotation)) - 1.0) * 0.5, 1.0), -1.0)
        return float(np.arccos(cos_theta))

    def translation_norm(self) -> float:
        return float(np.linalg.norm(self.translation))
