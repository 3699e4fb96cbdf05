"""Split strategies for k-ary regression trees.

A strategy receives the instance ids of one node and a random subset of
feature indices, picks a feature and k - 1 thresholds, and partitions the
instances into k groups. It never touches the tree itself; the induction
engine owns node allocation and decides whether the split is legal.

- BestSplit: optimal k-way SSE split per feature, best feature wins
- RandomSplit: random thresholds per feature, best feature wins
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from .._backends import best_k_partition_cpu, partition_sse_cpu, route_cpu

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .._data import Dataset

logger = logging.getLogger(__name__)


class Split(NamedTuple):
    """Outcome of a split strategy."""
    feature: int             # Feature index the predicate tests
    thresholds: NDArray      # (k - 1,) ascending float64
    partitions: list         # k arrays of instance ids, one per child

    @property
    def sizes(self) -> list[int]:
        """Number of instances routed to each child."""
        return [len(p) for p in self.partitions]


class SplitStrategy(ABC):
    """Abstract base for split strategies."""

    name: str = "abstract"

    @abstractmethod
    def split(
        self,
        data: Dataset,
        indices: NDArray,
        features: NDArray,
        k: int,
        rng: np.random.Generator,
    ) -> Split:
        """Partition `indices` into k groups using one feature from `features`.

        Args:
            data: Training data
            indices: Instance ids of the node being split
            features: Candidate feature indices, in the order they were drawn
            k: Number of children
            rng: Random generator of the current fit

        Returns:
            Split whose partitions are a strict partition of `indices`
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @staticmethod
    def _apply(
        data: Dataset,
        indices: NDArray,
        feature: int,
        thresholds: NDArray,
        k: int,
    ) -> Split:
        """Build the partition by routing every instance through the predicate."""
        child_ids = route_cpu(data.feature_values(indices, feature), thresholds)
        partitions = [indices[child_ids == j] for j in range(k)]
        return Split(feature=int(feature), thresholds=thresholds, partitions=partitions)

    @classmethod
    def _degenerate(
        cls,
        data: Dataset,
        indices: NDArray,
        features: NDArray,
        k: int,
    ) -> Split:
        """Split that sends every instance to the first child.

        Used when no candidate feature separates the instances; it always
        fails the legality check, turning the node into a leaf.
        """
        logger.debug(
            "No splittable feature among %s for %d instances", list(features), len(indices)
        )
        thresholds = np.full(k - 1, np.inf)
        return cls._apply(data, indices, int(features[0]), thresholds, k)


# =============================================================================
# Greedy Best Split
# =============================================================================

class BestSplit(SplitStrategy):
    """Greedy best split over the candidate features.

    For every feature the instances are sorted by value and the k - 1 cuts
    that minimise the total within-child sum of squared errors are found
    exactly. Cuts lie midway between neighbouring distinct values. Among
    features, the lowest error wins; ties keep the earlier candidate.
    """

    name = "best"

    def split(self, data, indices, features, k, rng) -> Split:
        responses = np.asarray(data.responses(indices), dtype=np.float64)

        best_cost = np.inf
        best_feature = -1
        best_thresholds = None

        for feature in features:
            values = np.asarray(data.feature_values(indices, feature), dtype=np.float64)
            order = np.argsort(values, kind="stable")
            cost, thresholds = best_k_partition_cpu(values[order], responses[order], k)
            if cost < best_cost:
                best_cost = cost
                best_feature = int(feature)
                best_thresholds = thresholds

        if best_feature < 0:
            return self._degenerate(data, indices, features, k)
        return self._apply(data, indices, best_feature, best_thresholds, k)


# =============================================================================
# Randomized Split
# =============================================================================

class RandomSplit(SplitStrategy):
    """Extremely randomized split.

    Each candidate feature gets k - 1 thresholds drawn uniformly from
    ``[min, max)`` of the node's values for it. The candidate with the
    lowest within-child SSE wins. Constant features are skipped without
    consuming random numbers.
    """

    name = "random"

    def split(self, data, indices, features, k, rng) -> Split:
        responses = np.asarray(data.responses(indices), dtype=np.float64)

        best_cost = np.inf
        best_feature = -1
        best_thresholds = None

        for feature in features:
            values = np.asarray(data.feature_values(indices, feature), dtype=np.float64)
            lo, hi = values.min(), values.max()
            if not lo < hi:
                continue

            thresholds = np.sort(rng.uniform(lo, hi, size=k - 1))
            cost = partition_sse_cpu(responses, route_cpu(values, thresholds), k)
            if cost < best_cost:
                best_cost = cost
                best_feature = int(feature)
                best_thresholds = thresholds

        if best_feature < 0:
            return self._degenerate(data, indices, features, k)
        return self._apply(data, indices, best_feature, best_thresholds, k)


# =============================================================================
# Factory Function
# =============================================================================

def get_split_strategy(name: str) -> SplitStrategy:
    """Get a split strategy by name.

    Args:
        name: Strategy name - "best" or "random"

    Returns:
        SplitStrategy instance
    """
    strategies = {
        "best": BestSplit,
        "greedy": BestSplit,
        "random": RandomSplit,
        "randomized": RandomSplit,
        "extra": RandomSplit,
    }

    name_lower = name.lower()
    if name_lower not in strategies:
        available = ["best", "random"]
        raise ValueError(f"Unknown split strategy '{name}'. Available: {available}")

    return strategies[name_lower]()
