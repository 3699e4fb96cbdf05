"""Breadth-first induction of randomized k-ary regression trees.

`KAryTree.fit` consumes a FIFO queue of pending node descriptors. Each
pending node becomes a leaf unless it is split-worthy (shallow enough,
large enough, impure, and there is room for k more nodes in the budget).
A split-worthy node draws a random feature subset, asks the split
strategy for a partition, and tentatively becomes an internal node with k
freshly allocated child slots. If any child ends up smaller than
``min_samples_in_leaf`` the whole split is rolled back: the child slots
and descriptors are discarded and the node becomes a leaf instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from .._backends import predict_batch_cpu
from .._data import ArrayDataset, Dataset, as_dataset, feature_matrix
from ._nodes import InternalNode, LeafNode, NodeArray, PendingNode, WorkQueue
from ._split import SplitStrategy, get_split_strategy

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from ._split import Split

logger = logging.getLogger(__name__)

UNLIMITED = 2**31 - 1


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class TreeOptions:
    """Limits that control tree induction.

    Args:
        max_depth: Nodes at this depth are always leaves (root depth is 0)
        min_samples_to_split: Minimum number of instances to consider a split
        min_samples_in_leaf: Minimum number of instances in every child of a split
        max_features: Number of features drawn as split candidates per node
        max_num_nodes: Upper bound on the total number of nodes
        epsilon_purity: Responses within this distance of the node's first
            response count as identical
    """
    max_depth: int = UNLIMITED
    min_samples_to_split: int = 2
    min_samples_in_leaf: int = 1
    max_features: int = 1
    max_num_nodes: int = UNLIMITED
    epsilon_purity: float = 1e-10

    def validate(self, n_features: int, k: int) -> None:
        """Raise ValueError if these options cannot be used for the given data.

        `KAryTree.fit` trusts its options; callers are expected to validate.
        """
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.min_samples_to_split < 1:
            raise ValueError(
                f"min_samples_to_split must be >= 1, got {self.min_samples_to_split}"
            )
        if self.min_samples_in_leaf < 1:
            raise ValueError(
                f"min_samples_in_leaf must be >= 1, got {self.min_samples_in_leaf}"
            )
        if not 1 <= self.max_features <= n_features:
            raise ValueError(
                f"max_features must be in [1, {n_features}], got {self.max_features}"
            )
        if self.max_num_nodes < k:
            raise ValueError(f"max_num_nodes must be >= k={k}, got {self.max_num_nodes}")
        if self.epsilon_purity < 0:
            raise ValueError(f"epsilon_purity must be >= 0, got {self.epsilon_purity}")


# =============================================================================
# Tree Arrays (struct-of-arrays snapshot for fast prediction)
# =============================================================================

@dataclass(frozen=True)
class TreeArrays:
    """Struct-of-arrays view of a fitted tree.

    Leaf nodes have ``children[i] == -1`` and ``features[i] == -1``.
    All arrays are read-only, so a snapshot can be shared between threads.
    """
    features: NDArray        # (n_nodes,) int32 - split feature (-1 for leaf)
    thresholds: NDArray      # (n_nodes, k - 1) float64 - split thresholds (inf for leaf)
    children: NDArray        # (n_nodes, k) int32 - child indices (-1 for leaf)
    values: NDArray          # (n_nodes,) float64 - leaf mean (nan for internal)
    n_features: int

    @property
    def n_nodes(self) -> int:
        return self.features.shape[0]

    @classmethod
    def from_nodes(cls, nodes: NodeArray, k: int, n_features: int) -> "TreeArrays":
        n_nodes = len(nodes)
        features = np.full(n_nodes, -1, dtype=np.int32)
        thresholds = np.full((n_nodes, k - 1), np.inf, dtype=np.float64)
        children = np.full((n_nodes, k), -1, dtype=np.int32)
        values = np.full(n_nodes, np.nan, dtype=np.float64)

        for i, node in enumerate(nodes):
            if node.is_leaf:
                values[i] = node.value
            else:
                features[i] = node.feature
                thresholds[i] = node.thresholds
                children[i] = node.children

        for arr in (features, thresholds, children, values):
            arr.setflags(write=False)

        return cls(
            features=features,
            thresholds=thresholds,
            children=children,
            values=values,
            n_features=n_features,
        )

    def predict(self, X: NDArray) -> NDArray:
        """Predict a (n_samples, n_features) matrix, one value per row."""
        return predict_batch_cpu(X, self.features, self.thresholds, self.children, self.values)


# =============================================================================
# Tree
# =============================================================================

class KAryTree:
    """Randomized regression tree where every internal node has k children.

    Args:
        k: Branching factor (>= 2)
        splitter: Split strategy instance, or its name ("best" / "random")

    Example:
        >>> import numpy as np
        >>> import karytree as kt
        >>> data = kt.ArrayDataset(X, y)
        >>> tree = kt.KAryTree(k=3, splitter="random")
        >>> tree.fit(data, kt.TreeOptions(max_features=2), np.random.default_rng(0))
        >>> tree.predict(X[0])
    """

    def __init__(self, k: int = 2, splitter: str | SplitStrategy = "best"):
        if k < 2:
            raise ValueError(f"k must be >= 2, got {k}")
        self.k = k
        self.splitter = get_split_strategy(splitter) if isinstance(splitter, str) else splitter
        self.nodes: NodeArray | None = None
        self.n_features: int = 0
        self._arrays: TreeArrays | None = None

    def __repr__(self) -> str:
        state = f"n_nodes={self.n_nodes}" if self.nodes is not None else "unfitted"
        return f"KAryTree(k={self.k}, splitter={self.splitter!r}, {state})"

    # -------------------------------------------------------------------------
    # Induction
    # -------------------------------------------------------------------------

    def fit(
        self,
        data: Dataset,
        options: TreeOptions,
        rng: np.random.Generator | int,
    ) -> KAryTree:
        """Grow the tree on `data`.

        Args:
            data: Training data with responses, e.g. ``ArrayDataset(X, y)``
            options: Induction limits (assumed valid, see `TreeOptions.validate`)
            rng: Generator used for feature subsampling and by the split
                strategy. An int is used as a seed for a new generator.

        Returns:
            self: The fitted tree.
        """
        data = as_dataset(data)
        if isinstance(data, ArrayDataset) and data.y is None:
            raise ValueError(
                "Cannot fit a tree without responses; pass ArrayDataset(X, y)"
            )
        if not isinstance(rng, np.random.Generator):
            rng = np.random.default_rng(rng)

        n_points = data.num_data_points()
        if n_points == 0:
            raise ValueError("Cannot fit a tree on an empty dataset")

        k = self.k
        nodes = NodeArray()
        queue = WorkQueue()
        feature_indices = np.arange(data.num_features(), dtype=np.intp)

        root = nodes.allocate(1)
        queue.push(PendingNode(
            node_index=root,
            parent_index=-1,
            depth=0,
            indices=np.arange(n_points, dtype=np.intp),
        ))

        n_rollbacks = 0
        while queue:
            pending = queue.pop()
            nodes.reserve(pending.node_index)

            if self._is_split_worthy(pending, data, options, len(nodes)):
                # uniform subset without replacement: shuffle, take a prefix
                rng.shuffle(feature_indices)
                candidates = feature_indices[:options.max_features].copy()

                if self._split_node(pending, data, candidates, options, nodes, queue, rng):
                    continue
                n_rollbacks += 1

            nodes[pending.node_index] = self._make_leaf(pending, data)

        self.nodes = nodes
        self.n_features = data.num_features()
        self._arrays = TreeArrays.from_nodes(nodes, k, self.n_features)

        logger.info(
            "Grew %d-ary tree: %d nodes, %d leaves, depth %d (%d splits rolled back)",
            k, self.n_nodes, self.n_leaves, self.depth, n_rollbacks,
        )
        return self

    def _is_split_worthy(
        self,
        pending: PendingNode,
        data: Dataset,
        options: TreeOptions,
        n_nodes: int,
    ) -> bool:
        """All conditions must hold; purity is checked last as it scans the data."""
        return (
            pending.depth < options.max_depth
            and pending.n_samples >= options.min_samples_to_split
            and n_nodes <= options.max_num_nodes - self.k
            and not _is_pure(pending.indices, data, options.epsilon_purity)
        )

    def _split_node(
        self,
        pending: PendingNode,
        data: Dataset,
        candidates: NDArray,
        options: TreeOptions,
        nodes: NodeArray,
        queue: WorkQueue,
        rng: np.random.Generator,
    ) -> bool:
        """Turn `pending` into an internal node, or leave no trace and return False."""
        k = self.k
        split = self.splitter.split(data, pending.indices, candidates, k, rng)
        _check_partition(split, pending, k)

        node_mark = len(nodes)
        queue_mark = len(queue)

        first_child = nodes.allocate(k)
        children = tuple(range(first_child, first_child + k))
        nodes[pending.node_index] = InternalNode(
            feature=split.feature,
            thresholds=np.asarray(split.thresholds, dtype=np.float64),
            children=children,
            depth=pending.depth,
            n_samples=pending.n_samples,
        )
        for child, partition in zip(children, split.partitions):
            queue.push(PendingNode(
                node_index=child,
                parent_index=pending.node_index,
                depth=pending.depth + 1,
                indices=partition,
            ))

        if any(c.n_samples < options.min_samples_in_leaf for c in queue.tail(k)):
            queue.truncate(queue_mark)
            nodes.truncate(node_mark)
            logger.debug(
                "Rolled back split of node %d on feature %d: child sizes %s < %d",
                pending.node_index, split.feature, split.sizes, options.min_samples_in_leaf,
            )
            return False

        return True

    @staticmethod
    def _make_leaf(pending: PendingNode, data: Dataset) -> LeafNode:
        responses = np.asarray(data.responses(pending.indices), dtype=np.float64)
        return LeafNode(
            value=float(responses.mean()),
            variance=float(responses.var()),
            n_samples=pending.n_samples,
            depth=pending.depth,
            indices=np.array(pending.indices, dtype=np.intp),
        )

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def predict(self, X: Dataset | ArrayLike) -> float | NDArray:
        """Predict responses.

        Args:
            X: A single feature vector, shape (n_features,), or a batch given
               as a (n_samples, n_features) array or a `Dataset` (its
               responses, if any, are ignored)

        Returns:
            A float for a single vector, otherwise predictions of shape
            (n_samples,) in input order.
        """
        self._check_fitted()

        if isinstance(X, Dataset):
            X = feature_matrix(X)
        X = np.asarray(X, dtype=np.float64)
        _check_no_nan(X)

        if X.ndim == 1:
            return self.nodes[self._leaf_index(X)].value
        if X.ndim == 2:
            if X.shape[1] != self.n_features:
                raise ValueError(
                    f"X has {X.shape[1]} features, but the tree was fitted with "
                    f"{self.n_features}"
                )
            return self._arrays.predict(X)
        raise ValueError(f"X must be 1D or 2D, got shape {X.shape}")

    def apply(self, x: ArrayLike) -> int:
        """Index of the leaf that a single feature vector ends up in."""
        self._check_fitted()
        x = np.asarray(x, dtype=np.float64)
        _check_no_nan(x)
        return self._leaf_index(x)

    def _leaf_index(self, x: NDArray) -> int:
        if x.shape != (self.n_features,):
            raise ValueError(
                f"Expected a feature vector of length {self.n_features}, got shape {x.shape}"
            )
        index = 0
        node = self.nodes[index]
        while not node.is_leaf:
            index = node.child_for(x)
            node = self.nodes[index]
        return index

    def _check_fitted(self) -> None:
        if self.nodes is None:
            raise RuntimeError("Tree not fitted. Call fit() first.")

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def n_nodes(self) -> int:
        return 0 if self.nodes is None else len(self.nodes)

    @property
    def n_leaves(self) -> int:
        return 0 if self.nodes is None else sum(node.is_leaf for node in self.nodes)

    @property
    def depth(self) -> int:
        """Depth of the deepest node (0 for a single leaf)."""
        return 0 if self.nodes is None else max(node.depth for node in self.nodes)

    def to_arrays(self) -> TreeArrays:
        """Read-only struct-of-arrays snapshot of the fitted tree."""
        self._check_fitted()
        return self._arrays

    def describe(self) -> str:
        """One line per node, in index order."""
        self._check_fitted()
        lines = []
        for i, node in enumerate(self.nodes):
            indent = "  " * node.depth
            if node.is_leaf:
                lines.append(
                    f"{indent}[{i}] leaf value={node.value:.6g} "
                    f"var={node.variance:.6g} n={node.n_samples}"
                )
            else:
                cuts = ", ".join(f"{t:.6g}" for t in node.thresholds)
                lines.append(
                    f"{indent}[{i}] x[{node.feature}] cuts=({cuts}) "
                    f"children={list(node.children)} n={node.n_samples}"
                )
        return "\n".join(lines)

    def print_info(self) -> None:
        print(self.describe())


# =============================================================================
# Helpers
# =============================================================================

def _is_pure(indices: NDArray, data: Dataset, epsilon: float) -> bool:
    """True if every response is within `epsilon` of the first one."""
    reference = data.response(indices[0])
    for i in indices[1:]:
        if abs(data.response(i) - reference) > epsilon:
            return False
    return True


def _check_no_nan(X: NDArray) -> None:
    if np.isnan(X).any():
        raise ValueError("X contains NaN; missing values are not supported")


def _check_partition(split: Split, pending: PendingNode, k: int) -> None:
    """Reject strategy output that is not a strict k-way partition of the node."""
    if len(split.partitions) != k:
        raise ValueError(
            f"Split strategy returned {len(split.partitions)} partitions, expected {k}"
        )
    merged = np.sort(np.concatenate(split.partitions))
    if not np.array_equal(merged, np.sort(pending.indices)):
        raise ValueError(
            f"Split of node {pending.node_index} does not partition its "
            f"{pending.n_samples} instances"
        )
