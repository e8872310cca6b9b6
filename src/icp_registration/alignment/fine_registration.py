"""
ICP Registration Implementation

This module implements the point-to-point Iterative Closest Point (ICP)
loop on top of the correspondence, fitting and composition primitives.
"""

from typing import Optional, Tuple, Union
import time

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .composition import compose, orthonormalize
from .correspondences import CorrespondenceFinder
from .rigid_transform import RigidTransform
from .transform_solver import RigidTransformSolver
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class ICPRegistration:
    """
    Implementation of ICP algorithm for point cloud registration.

    The ICP algorithm iteratively:
    1. Finds closest point correspondences (median/MAD gated)
    2. Estimates the incremental rigid transformation
    3. Folds the increment into the accumulated transformation
    4. Repeats until convergence
    """

    def __init__(
        self,
        max_iterations: int = 50,
        tolerance: float = 1e-6,
        max_correspondence_distance: Optional[float] = None,
        min_correspondences: int = 3,
        convergence_translation_epsilon: float = 1e-6,
        convergence_rotation_epsilon_deg: float = 1e-4,
        orthonormalize_every: int = 10,
        finder: Optional[CorrespondenceFinder] = None,
        solver: Optional[RigidTransformSolver] = None,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Maximum number of ICP iterations.
            tolerance: Convergence tolerance on change in mean squared error.
            max_correspondence_distance: Optional hard limit on correspondence
                distance, applied after the robust gate. None disables it.
            min_correspondences: Fewest correspondences an iteration may fit on.
            convergence_translation_epsilon: Translation step below which the
                algorithm is considered converged.
            convergence_rotation_epsilon_deg: Rotation step (degrees) below
                which the algorithm is considered converged.
            orthonormalize_every: Re-orthonormalize the accumulated rotation
                every N iterations (0 disables drift correction).
            finder: Correspondence search; defaults to CorrespondenceFinder().
            solver: Rigid fit; defaults to a RigidTransformSolver with the
                small-displacement fallback disabled, since the fallback would
                freeze the rotation once all residual motions are small.
        """
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_correspondence_distance = max_correspondence_distance
        self.min_correspondences = max(1, int(min_correspondences))
        self.convergence_translation_epsilon = convergence_translation_epsilon
        # Store rotation epsilon in radians for internal use
        self.convergence_rotation_epsilon_rad = np.deg2rad(convergence_rotation_epsilon_deg)
        self.orthonormalize_every = orthonormalize_every
        self.finder = finder if finder is not None else CorrespondenceFinder()
        self.solver = (
            solver if solver is not None else RigidTransformSolver(small_displacement_fallback=False)
        )
        # Runtime metadata of the last run
        self.last_iterations: int = 0
        self.last_converged: bool = False

    @classmethod
    def from_config(cls, cfg) -> "ICPRegistration":
        """Build from a loaded ``AppConfig``."""
        return cls(
            max_iterations=cfg.icp.max_iterations,
            tolerance=cfg.icp.tolerance,
            max_correspondence_distance=cfg.icp.max_correspondence_distance,
            min_correspondences=cfg.icp.min_correspondences,
            convergence_translation_epsilon=cfg.icp.convergence_translation_epsilon,
            convergence_rotation_epsilon_deg=cfg.icp.convergence_rotation_epsilon_deg,
            orthonormalize_every=cfg.icp.orthonormalize_every,
            finder=CorrespondenceFinder.from_config(cfg.correspondence),
            solver=RigidTransformSolver(
                residual_tolerance=cfg.solver.residual_tolerance,
                small_displacement_threshold=cfg.solver.small_displacement_threshold,
                small_displacement_fallback=cfg.icp.small_displacement_fallback,
            ),
        )

    def align_point_clouds(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_transform: Optional[Union[np.ndarray, RigidTransform]] = None,
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Align source point cloud to target using ICP.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3).
            initial_transform: Initial transformation (4 x 4 matrix or
                RigidTransform) or None for identity.

        Returns:
            Tuple of (aligned_source_points, transformation_matrix, final_error),
            with the final error given as RMSE.
        """
        source = np.asarray(source, dtype=np.float64)
        target = np.asarray(target, dtype=np.float64)
        n_src = len(source)
        n_tgt = len(target)
        logger.info(
            "Starting ICP alignment with %d source points and %d target points.",
            n_src,
            n_tgt,
        )

        if initial_transform is None:
            transform = RigidTransform.identity()
        elif isinstance(initial_transform, RigidTransform):
            transform = initial_transform.copy()
        else:
            transform = RigidTransform.from_matrix(initial_transform)

        self.last_iterations = 0
        self.last_converged = False

        if n_src == 0 or n_tgt == 0:
            logger.warning(
                "ICP called with empty source or target (source=%d, target=%d); "
                "returning identity (or initial) transform and infinite error.",
                n_src,
                n_tgt,
            )
            # No alignment possible; preserve input source array
            return source.copy(), transform.as_matrix(), float("inf")

        # Build the nearest-neighbor search structure for the target point cloud ONCE.
        build_start = time.time()
        nbrs = self.finder.build_index(target)
        logger.debug("Nearest-neighbor structure built in %.4f s.", time.time() - build_start)

        current_source = transform.apply(source)
        previous_error = float("inf")
        iter_durations = []
        icp_start = time.time()

        for iteration in range(self.max_iterations):
            iter_start = time.time()

            matches = self.finder.find_correspondences(current_source, target, nbrs)

            if self.max_correspondence_distance is not None:
                valid_mask = matches.distances <= self.max_correspondence_distance ** 2
                src_idx = matches.source_indices[valid_mask]
                tgt_pts = matches.target_points[valid_mask]
                sq_dist = matches.distances[valid_mask]
            else:
                src_idx = matches.source_indices
                tgt_pts = matches.target_points
                sq_dist = matches.distances

            if len(src_idx) < self.min_correspondences:
                logger.warning(
                    "Not enough valid correspondences found (%d < %d). Stopping ICP.",
                    len(src_idx),
                    self.min_correspondences,
                )
                break

            # Pull matched targets back into the source frame so the increment
            # is fitted in the source's local frame.
            R_acc = transform.rotation.copy()
            pulled_back = (tgt_pts - transform.translation) @ R_acc
            local = self.solver.fit_transformation(source[src_idx], pulled_back)

            # Translation increment expressed in the accumulated frame
            delta = RigidTransform(local.rotation, R_acc @ local.translation)
            compose(transform, delta)

            n_iterations = iteration + 1
            if self.orthonormalize_every and n_iterations % self.orthonormalize_every == 0:
                transform.rotation = orthonormalize(transform.rotation)

            current_source = transform.apply(source)

            current_error = float(np.mean(sq_dist))
            trans_step = delta.translation_norm()
            rot_step = local.rotation_angle()

            logger.debug(
                "Iteration %d: MSE=%.6f, |Δt|=%.6e, Δθ=%.6e rad, pairs=%d",
                n_iterations,
                current_error,
                trans_step,
                rot_step,
                len(src_idx),
            )

            iter_durations.append(time.time() - iter_start)
            self.last_iterations = n_iterations

            # Check for convergence (both error change and motion magnitude)
            if abs(previous_error - current_error) < self.tolerance:
                logger.info(
                    "ICP converged after %d iterations (MSE change < %.3e).",
                    n_iterations,
                    self.tolerance,
                )
                self.last_converged = True
                break

            if (
                trans_step < self.convergence_translation_epsilon
                and rot_step < self.convergence_rotation_epsilon_rad
            ):
                logger.info(
                    "ICP converged after %d iterations (motion below thresholds: "
                    "|Δt|=%.3e, Δθ=%.3e rad).",
                    n_iterations,
                    trans_step,
                    rot_step,
                )
                self.last_converged = True
                break

            previous_error = current_error
        else:
            logger.info("ICP did not converge after %d iterations.", self.max_iterations)

        total_time = time.time() - icp_start
        final_error = self.compute_registration_error(current_source, target, nbrs)

        mean_iter_time = (sum(iter_durations) / len(iter_durations)) if iter_durations else 0.0
        logger.info(
            "ICP finished in %.4f s (%d iterations, mean iter %.4f s). Final RMSE: %.6f",
            total_time,
            self.last_iterations,
            mean_iter_time,
            final_error,
        )

        return current_source, transform.as_matrix(), final_error

    def compute_registration_error(
        self,
        source: np.ndarray,
        target: np.ndarray,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> float:
        """
        Compute the registration error (RMSE) between aligned source and target point clouds.

        Args:
            source: Aligned source point cloud.
            target: Target point cloud.
            nbrs: Optional pre-built NearestNeighbors instance for target point cloud.

        Returns:
            Registration error as RMSE over all nearest-neighbor pairs within
            ``max_correspondence_distance`` (all pairs when it is None).
        """
        source = np.asarray(source, dtype=np.float64)
        target = np.asarray(target, dtype=np.float64)
        if source.size == 0 or target.size == 0:
            logger.warning(
                "compute_registration_error called with empty source or target "
                "(source=%d, target=%d); returning infinite error.",
                len(source),
                len(target),
            )
            return float("inf")
        if nbrs is None:
            nbrs = self.finder.build_index(target)

        _, sq_dist = self.finder.query_nearest(nbrs, source)

        if self.max_correspondence_distance is not None:
            sq_dist = sq_dist[sq_dist <= self.max_correspondence_distance ** 2]

        if sq_dist.size == 0:
            logger.warning("No valid correspondences found for error computation.")
            return float("inf")

        return float(np.sqrt(np.mean(sq_dist)))
