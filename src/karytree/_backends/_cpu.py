"""CPU backend implementations using Numba JIT."""

from __future__ import annotations

import numpy as np
from numba import jit, prange


# =============================================================================
# Split Scoring
# =============================================================================

@jit(nopython=True, cache=True)
def _segment_sse(prefix_sum, prefix_sq, start, end):
    """Sum of squared errors of sorted responses[start:end] from prefix sums."""
    n = end - start
    if n <= 0:
        return 0.0
    s = prefix_sum[end] - prefix_sum[start]
    sse = (prefix_sq[end] - prefix_sq[start]) - s * s / n
    if sse < 0.0:
        return 0.0
    return sse


@jit(nopython=True, cache=True)
def _best_k_partition(
    values: np.ndarray,     # (n_samples,) float64, sorted ascending
    responses: np.ndarray,  # (n_samples,) float64, aligned with values
    k: int,
):
    """Optimal split of sorted values into k contiguous groups (min total SSE).

    Cuts are only placed between distinct values. Returns (cost, thresholds);
    cost is inf when there are fewer than k distinct values.
    """
    n = values.shape[0]
    thresholds = np.empty(k - 1, dtype=np.float64)

    # bounds[i] is the start of the i-th run of equal values, bounds[m-1] == n
    bounds = np.empty(n + 1, dtype=np.int64)
    m = 0
    bounds[m] = 0
    m += 1
    for p in range(1, n):
        if values[p] > values[p - 1]:
            bounds[m] = p
            m += 1
    bounds[m] = n
    m += 1

    if m - 1 < k:
        return np.inf, thresholds

    prefix_sum = np.zeros(n + 1, dtype=np.float64)
    prefix_sq = np.zeros(n + 1, dtype=np.float64)
    for p in range(n):
        prefix_sum[p + 1] = prefix_sum[p] + responses[p]
        prefix_sq[p + 1] = prefix_sq[p] + responses[p] * responses[p]

    # cost[j, i]: best cost of covering [0, bounds[i]) with j groups
    cost = np.full((k + 1, m), np.inf)
    back = np.zeros((k + 1, m), dtype=np.int64)
    for i in range(1, m):
        cost[1, i] = _segment_sse(prefix_sum, prefix_sq, 0, bounds[i])

    for j in range(2, k + 1):
        # the last layer is only read at i == m - 1
        first = m - 1 if j == k else j
        for i in range(first, m):
            best = np.inf
            best_prev = j - 1
            for prev in range(j - 1, i):
                c = cost[j - 1, prev] + _segment_sse(prefix_sum, prefix_sq, bounds[prev], bounds[i])
                if c < best:
                    best = c
                    best_prev = prev
            cost[j, i] = best
            back[j, i] = best_prev

    i = m - 1
    for j in range(k, 1, -1):
        prev = back[j, i]
        p = bounds[prev]
        lo = values[p - 1]
        hi = values[p]
        # sum of halves is used to avoid infinite value
        t = lo / 2.0 + hi / 2.0
        if t == hi:
            t = lo
        thresholds[j - 2] = t
        i = prev

    return cost[k, m - 1], thresholds


@jit(nopython=True, cache=True)
def _route_cpu(
    values: np.ndarray,      # (n_samples,) float64
    thresholds: np.ndarray,  # (k - 1,) float64, ascending
    out: np.ndarray,         # (n_samples,) int64
):
    """Child index of each value: the number of thresholds strictly below it."""
    n_thresholds = thresholds.shape[0]
    for i in range(values.shape[0]):
        c = 0
        while c < n_thresholds and values[i] > thresholds[c]:
            c += 1
        out[i] = c


@jit(nopython=True, cache=True)
def _partition_sse(
    responses: np.ndarray,  # (n_samples,) float64
    child_ids: np.ndarray,  # (n_samples,) int64
    k: int,
):
    """Total within-child SSE of a k-way partition."""
    counts = np.zeros(k, dtype=np.float64)
    sums = np.zeros(k, dtype=np.float64)
    squares = np.zeros(k, dtype=np.float64)
    for i in range(responses.shape[0]):
        c = child_ids[i]
        r = responses[i]
        counts[c] += 1.0
        sums[c] += r
        squares[c] += r * r

    total = 0.0
    for c in range(k):
        if counts[c] > 0.0:
            sse = squares[c] - sums[c] * sums[c] / counts[c]
            if sse > 0.0:
                total += sse
    return total


def best_k_partition_cpu(
    values: np.ndarray,
    responses: np.ndarray,
    k: int,
) -> tuple[float, np.ndarray]:
    """Find the best k-way threshold split of one feature on CPU.
    
    Args:
        values: Feature values of the node's instances, sorted ascending
        responses: Responses aligned with `values`
        k: Number of groups
        
    Returns:
        cost: Total within-group SSE (inf if the feature cannot be split)
        thresholds: Ascending thresholds, shape (k - 1,)
    """
    values = np.ascontiguousarray(values, dtype=np.float64)
    responses = np.ascontiguousarray(responses, dtype=np.float64)
    cost, thresholds = _best_k_partition(values, responses, k)
    return float(cost), thresholds


def route_cpu(values: np.ndarray, thresholds: np.ndarray) -> np.ndarray:
    """Route feature values to child indices in [0, len(thresholds)]."""
    values = np.ascontiguousarray(values, dtype=np.float64)
    thresholds = np.ascontiguousarray(thresholds, dtype=np.float64)
    out = np.empty(values.shape[0], dtype=np.int64)
    _route_cpu(values, thresholds, out)
    return out


def partition_sse_cpu(responses: np.ndarray, child_ids: np.ndarray, k: int) -> float:
    """Score a k-way partition by its total within-child SSE."""
    return float(_partition_sse(
        np.ascontiguousarray(responses, dtype=np.float64),
        np.ascontiguousarray(child_ids, dtype=np.int64),
        k,
    ))


# =============================================================================
# Prediction
# =============================================================================

@jit(nopython=True, parallel=True, cache=True)
def _predict_batch_cpu(
    X: np.ndarray,           # (n_samples, n_features) float64
    features: np.ndarray,    # (n_nodes,) int32
    thresholds: np.ndarray,  # (n_nodes, k - 1) float64
    children: np.ndarray,    # (n_nodes, k) int32, -1 for leaves
    values: np.ndarray,      # (n_nodes,) float64
    out: np.ndarray,         # (n_samples,) float64
):
    """Traverse the tree for every sample in parallel."""
    n_samples = X.shape[0]
    n_thresholds = thresholds.shape[1]

    for i in prange(n_samples):
        node = 0
        while children[node, 0] != -1:
            x = X[i, features[node]]
            c = 0
            while c < n_thresholds and x > thresholds[node, c]:
                c += 1
            node = children[node, c]
        out[i] = values[node]


def predict_batch_cpu(
    X: np.ndarray,
    features: np.ndarray,
    thresholds: np.ndarray,
    children: np.ndarray,
    values: np.ndarray,
) -> np.ndarray:
    """Predict a batch of feature vectors on CPU.
    
    Args:
        X: Feature matrix, shape (n_samples, n_features)
        features: Split feature per node, shape (n_nodes,)
        thresholds: Split thresholds per node, shape (n_nodes, k - 1)
        children: Child indices per node, shape (n_nodes, k), -1 for leaves
        values: Leaf values per node, shape (n_nodes,)
        
    Returns:
        predictions: Shape (n_samples,), float64
    """
    X = np.ascontiguousarray(X, dtype=np.float64)
    out = np.empty(X.shape[0], dtype=np.float64)
    _predict_batch_cpu(X, features, thresholds, children, values, out)
    return out
