"""karytree: randomized k-ary regression trees.

Grows a single randomized regression tree with a fixed branching factor k,
the building block of a random-forest surrogate model.

Quick Start:
    >>> import karytree as kt
    >>>
    >>> model = kt.RandomTreeRegressor(k=3, max_features=2, random_state=0)
    >>> model.fit(X_train, y_train)
    >>> predictions = model.predict(X_test)

Low-Level API (Full Control):
    >>> import numpy as np
    >>> data = kt.ArrayDataset(X_train, y_train)
    >>> options = kt.TreeOptions(max_depth=8, min_samples_in_leaf=3, max_features=2)
    >>> tree = kt.KAryTree(k=2, splitter="best")
    >>> tree.fit(data, options, np.random.default_rng(42))
    >>> tree.predict(X_test[0])   # single vector -> float
    >>> tree.predict(X_test)      # batch -> array, input order preserved
"""

import logging

__version__ = "0.1.0"

# Data
from ._data import ArrayDataset, Dataset, as_dataset

# Core
from ._core import (
    KAryTree, TreeArrays, TreeOptions,
    InternalNode, LeafNode, NodeArray, PendingNode, WorkQueue,
    BestSplit, RandomSplit, Split, SplitStrategy, get_split_strategy,
)

# High-level API
from ._regressor import RandomTreeRegressor

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Version
    "__version__",
    # Data
    "ArrayDataset",
    "Dataset",
    "as_dataset",
    # High-level API (recommended)
    "RandomTreeRegressor",
    # Tree induction (low-level)
    "KAryTree",
    "TreeOptions",
    "TreeArrays",
    # Node storage
    "InternalNode",
    "LeafNode",
    "NodeArray",
    "PendingNode",
    "WorkQueue",
    # Split strategies
    "SplitStrategy",
    "BestSplit",
    "RandomSplit",
    "Split",
    "get_split_strategy",
]
