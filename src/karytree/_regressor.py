"""Single randomized k-ary regression tree with a scikit-learn-like API.

Wraps `KAryTree` with input validation, option validation, seeding and
persistence. This is the building block of a random-forest surrogate:
fit many of these with different seeds to form an ensemble.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import joblib
import numpy as np

from ._core import KAryTree, TreeOptions, UNLIMITED
from ._data import ArrayDataset
from ._validation import validate_X, validate_y

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


@dataclass
class RandomTreeRegressor:
    """Randomized k-ary regression tree.

    Args:
        k: Branching factor of every internal node.
        splitter: Split strategy - 'best' (exact SSE-optimal thresholds)
            or 'random' (random thresholds, extremely randomized trees).
        max_depth: Maximum depth of the tree (None for unlimited).
        min_samples_split: Minimum number of samples to split a node.
        min_samples_leaf: Minimum number of samples in every child of a split.
        max_features: Number of features drawn per split (None for
            max(1, n_features // 3)).
        max_nodes: Maximum total number of nodes (None for unlimited).
        epsilon_purity: Response tolerance below which a node is pure.
        random_state: Seed for the random generator.

    Example:
        >>> import karytree as kt
        >>> model = kt.RandomTreeRegressor(k=2, max_features=3, random_state=0)
        >>> model.fit(X_train, y_train)
        >>> predictions = model.predict(X_test)
    """

    k: int = 2
    splitter: str = 'random'
    max_depth: int | None = None
    min_samples_split: int = 2
    min_samples_leaf: int = 1
    max_features: int | None = None
    max_nodes: int | None = None
    epsilon_purity: float = 1e-8
    random_state: int | None = None

    # Fitted attributes (not init)
    tree_: KAryTree | None = field(default=None, init=False, repr=False)
    options_: TreeOptions | None = field(default=None, init=False, repr=False)
    n_features_in_: int = field(default=0, init=False, repr=False)

    def fit(self, X: ArrayLike, y: ArrayLike) -> RandomTreeRegressor:
        """Fit the tree.

        Args:
            X: Training features, shape (n_samples, n_features).
            y: Training targets, shape (n_samples,).

        Returns:
            self: The fitted model.
        """
        X = validate_X(X)
        y = validate_y(y, X.shape[0])
        n_features = X.shape[1]

        options = TreeOptions(
            max_depth=UNLIMITED if self.max_depth is None else self.max_depth,
            min_samples_to_split=self.min_samples_split,
            min_samples_in_leaf=self.min_samples_leaf,
            max_features=(
                max(1, n_features // 3) if self.max_features is None else self.max_features
            ),
            max_num_nodes=UNLIMITED if self.max_nodes is None else self.max_nodes,
            epsilon_purity=self.epsilon_purity,
        )
        options.validate(n_features, self.k)

        tree = KAryTree(k=self.k, splitter=self.splitter)
        tree.fit(ArrayDataset(X, y), options, np.random.default_rng(self.random_state))

        self.tree_ = tree
        self.options_ = options
        self.n_features_in_ = n_features
        return self

    def predict(self, X: ArrayLike) -> NDArray:
        """Predict targets.

        Args:
            X: Features, shape (n_samples, n_features).

        Returns:
            predictions: Shape (n_samples,), float64.
        """
        if self.tree_ is None:
            raise RuntimeError("Model not fitted. Call fit() first.")
        X = validate_X(X, n_features=self.n_features_in_)
        return self.tree_.predict(X)

    def save(self, path: str | Path) -> None:
        """Save the model to disk with joblib."""
        if self.tree_ is None:
            raise RuntimeError("Model not fitted. Call fit() first.")
        joblib.dump(self, path)

    @classmethod
    def load(cls, path: str | Path) -> RandomTreeRegressor:
        """Load a model saved with `save`."""
        model = joblib.load(path)
        if not isinstance(model, cls):
            raise TypeError(f"Expected a {cls.__name__}, got {type(model).__name__}")
        return model
