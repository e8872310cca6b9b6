"""
Correspondence search with robust outlier rejection.

For every source point the single nearest target point is looked up in a
spatial index. The resulting squared distances are gated with a one-sided
median/MAD rule:

    sigma = mad_scale * median(|d - median(d)|)
    keep  d <= median(d) + outlier_sigma * sigma

Both the median and the MAD are insensitive to the far outliers the gate is
meant to reject (occlusions, partial overlap).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..acceleration.parallel_queries import ParallelQueryExecutor
from ..exceptions import InvalidInputError
from ..utils.logging import setup_logger
from ..utils.point_arrays import as_point_array

logger = setup_logger(__name__)


@dataclass
class Correspondences:
    """Index-aligned matched pairs produced by one correspondence search.

    ``distances`` holds squared Euclidean distances. All arrays share the same
    length, which may be zero.
    """

    source_points: np.ndarray
    target_points: np.ndarray
    distances: np.ndarray
    source_indices: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.intp))
    target_indices: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.intp))

    def __len__(self) -> int:
        return int(len(self.distances))

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def as_tuple(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (matched_source, matched_target, matched_distance)."""
        return self.source_points, self.target_points, self.distances


def robust_distance_threshold(
    distances: np.ndarray,
    outlier_sigma: float = 3.0,
    mad_scale: float = 1.4826,
) -> float:
    """Return ``median + outlier_sigma * mad_scale * MAD`` for ``distances``."""
    median_dist = float(np.median(distances))
    mad = float(np.median(np.abs(distances - median_dist)))
    sigma = mad_scale * mad
    return median_dist + outlier_sigma * sigma


@dataclass
class CorrespondenceFinder:
    """
    Nearest-neighbor correspondence search with a median/MAD outlier gate.

    Attributes:
        outlier_sigma: Width of the one-sided gate in robust sigmas.
        mad_scale: MAD to Gaussian sigma factor.
        n_workers: Threads used for the queries (1 = sequential).
        parallel_min_points: Minimum source size before queries are threaded.
            Chunks handed to threads hold at least half this many points.
    """

    outlier_sigma: float = 3.0
    mad_scale: float = 1.4826
    n_workers: int = 1
    parallel_min_points: int = 50_000

    @classmethod
    def from_config(cls, cfg) -> "CorrespondenceFinder":
        """Build from a ``CorrespondenceConfig``."""
        return cls(
            outlier_sigma=cfg.outlier_sigma,
            mad_scale=cfg.mad_scale,
            n_workers=cfg.n_workers,
            parallel_min_points=cfg.parallel_min_points,
        )

    @staticmethod
    def build_index(target) -> NearestNeighbors:
        """
        Build the nearest-neighbor structure over a target point set.

        Raises:
            InvalidInputError: If the target is empty.
        """
        target = as_point_array(target, "target")
        logger.debug("Building CPU KD-Tree for %d target points...", len(target))
        return NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

    def find_correspondences(
        self,
        source,
        target=None,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> Correspondences:
        """
        Match every source point to its nearest target point and drop outliers.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3). Required to look up the matched
                points; a KD-tree is built on it when ``nbrs`` is None.
            nbrs: Optional pre-built index over ``target`` exposing
                ``kneighbors(X, n_neighbors=1) -> (distances, indices)``.

        Returns:
            Correspondences whose arrays may be shorter than ``source``.
            An empty result is a no-progress iteration, not an error.

        Raises:
            InvalidInputError: If source or target is empty or missing.
        """
        source = as_point_array(source, "source")
        if target is None:
            raise InvalidInputError("A target point set is required to resolve correspondences")
        target = as_point_array(target, "target")
        if nbrs is None:
            nbrs = self.build_index(target)

        indices, distances = self.query_nearest(nbrs, source)

        threshold = robust_distance_threshold(distances, self.outlier_sigma, self.mad_scale)
        keep = distances <= threshold
        n_kept = int(np.count_nonzero(keep))
        if n_kept == 0:
            logger.warning(
                "All %d correspondences rejected by the robust gate (threshold=%.6e).",
                len(source),
                threshold,
            )
        else:
            logger.debug(
                "Kept %d/%d correspondences (squared-distance threshold=%.6e).",
                n_kept,
                len(source),
                threshold,
            )

        source_indices = np.flatnonzero(keep)
        target_indices = indices[keep]
        return Correspondences(
            source_points=source[source_indices],
            target_points=target[target_indices],
            distances=distances[keep],
            source_indices=source_indices,
            target_indices=target_indices,
        )

    def query_nearest(self, nbrs, source: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return (target_indices, squared_distances) for every source point."""

        def _nearest(block: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
            dist, idx = nbrs.kneighbors(block, n_neighbors=1)
            return idx.ravel(), dist.ravel()

        if self.n_workers > 1 and len(source) >= self.parallel_min_points:
            executor = ParallelQueryExecutor(n_workers=self.n_workers)
            parts = executor.map_chunks(source, _nearest, min_chunk_size=self.parallel_min_points // 2)
            indices = np.concatenate([p[0] for p in parts])
            dist = np.concatenate([p[1] for p in parts])
        else:
            indices, dist = _nearest(source)

        dist = np.asarray(dist, dtype=np.float64)
        return np.asarray(indices, dtype=np.intp), dist * dist


_DEFAULT_FINDER = CorrespondenceFinder()


def find_correspondences(
    source,
    target,
    nbrs: Optional[NearestNeighbors] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Find robustly gated nearest-neighbor matches with default thresholds.

    Returns:
        Tuple of (matched_source, matched_target, matched_squared_distance).
    """
    return _DEFAULT_FINDER.find_correspondences(source, target, nbrs).as_tuple()
