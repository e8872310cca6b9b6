"""
Acceleration Module

Thread-parallel execution of independent nearest-neighbor queries.
"""

from .parallel_queries import ParallelQueryExecutor, split_into_chunks

__all__ = [
    "ParallelQueryExecutor",
    "split_into_chunks",
]
