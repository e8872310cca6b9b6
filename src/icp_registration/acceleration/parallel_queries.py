"""
Parallel execution of nearest-neighbor queries.

Provides ParallelQueryExecutor for splitting a query point array into
contiguous chunks and running them on a thread pool. Threads share the
read-only spatial index; results are merged back in input order.
"""

from __future__ import annotations

import logging
import time
from multiprocessing import cpu_count
from multiprocessing.pool import ThreadPool
from typing import Any, Callable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


def split_into_chunks(n_items: int, n_chunks: int, min_chunk_size: int = 1) -> List[slice]:
    """
    Split ``range(n_items)`` into at most ``n_chunks`` contiguous slices.

    Chunks are never smaller than ``min_chunk_size`` (except when there are
    fewer items than that in total), so small inputs stay in a single chunk.
    """
    if n_items <= 0:
        return []
    min_chunk_size = max(1, int(min_chunk_size))
    n_chunks = max(1, min(int(n_chunks), n_items // min_chunk_size or 1))
    bounds = np.linspace(0, n_items, n_chunks + 1).astype(int)
    return [slice(int(lo), int(hi)) for lo, hi in zip(bounds[:-1], bounds[1:]) if hi > lo]


class ParallelQueryExecutor:
    """
    Thread-pool executor for chunked point queries.

    Example:
        executor = ParallelQueryExecutor(n_workers=4)
        chunks = executor.map_chunks(
            points=source,
            worker_fn=lambda block: nbrs.kneighbors(block, n_neighbors=1),
        )
    """

    def __init__(self, n_workers: Optional[int] = None):
        """
        Initialize executor.

        Args:
            n_workers: Number of worker threads. If None, uses cpu_count - 1
                to leave one core for coordination. Minimum is 1.
        """
        if n_workers is None:
            n_workers = max(1, cpu_count() - 1)
        else:
            n_workers = max(1, int(n_workers))
        self.n_workers = n_workers

    def map_chunks(
        self,
        points: np.ndarray,
        worker_fn: Callable[[np.ndarray], Any],
        min_chunk_size: int = 1,
    ) -> List[Any]:
        """
        Apply ``worker_fn`` to contiguous chunks of ``points``.

        Args:
            points: Query array (N x 3).
            worker_fn: Function called as ``worker_fn(points[chunk])``. Must be
                safe to call concurrently.
            min_chunk_size: Smallest chunk worth dispatching to a thread.

        Returns:
            List of per-chunk results in the same order as the chunks.
            Concatenating them restores the input order.

        Raises:
            Any exception raised by ``worker_fn``; remaining chunks are abandoned.
        """
        chunks = split_into_chunks(len(points), self.n_workers, min_chunk_size)
        if not chunks:
            return []

        # If only 1 worker or 1 chunk, run inline (no pool overhead)
        if self.n_workers == 1 or len(chunks) == 1:
            return [worker_fn(points[chunk]) for chunk in chunks]

        start = time.time()
        with ThreadPool(processes=min(self.n_workers, len(chunks))) as pool:
            # map() preserves the order of the input iterable
            results = pool.map(worker_fn, [points[chunk] for chunk in chunks])
        logger.debug(
            "Ran %d query chunks on %d threads in %.4f s.",
            len(chunks),
            min(self.n_workers, len(chunks)),
            time.time() - start,
        )
        return results
