"""Compute backends for karytree (CPU via Numba)."""

from ._cpu import (
    best_k_partition_cpu,
    partition_sse_cpu,
    predict_batch_cpu,
    route_cpu,
)

__all__ = [
    "best_k_partition_cpu",
    "partition_sse_cpu",
    "predict_batch_cpu",
    "route_cpu",
]
