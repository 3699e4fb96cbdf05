#!/usr/bin/env python
"""Basic regression example with karytree.

This example demonstrates:
- Training a single randomized k-ary regression tree
- Making predictions and evaluating performance
- Using the low-level induction API with explicit options and generator
- Saving and loading a fitted model
"""

import logging
import tempfile
from pathlib import Path

import numpy as np

import karytree as kt


def generate_synthetic_data(n_samples: int = 2000, n_features: int = 8, seed: int = 42):
    """Generate synthetic regression data."""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n_samples, n_features))
    # Non-linear relationship
    y = (
        2 * X[:, 0]
        + X[:, 1] ** 2
        - 0.5 * X[:, 2] * X[:, 3]
        + np.sin(X[:, 4])
        + rng.normal(size=n_samples) * 0.5
    )
    return X, y


def r2_score(y_true, y_pred):
    ss_res = np.sum((y_true - y_pred) ** 2)
    ss_tot = np.sum((y_true - y_true.mean()) ** 2)
    return 1.0 - ss_res / ss_tot


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    print("=" * 60)
    print("karytree Basic Regression Example")
    print("=" * 60)

    # --- Load Data ---
    print("\n1. Generating data...")
    X, y = generate_synthetic_data()
    X_train, X_test = X[:1600], X[1600:]
    y_train, y_test = y[:1600], y[1600:]
    print(f"   Train: {len(X_train)}, Test: {len(X_test)}, Features: {X.shape[1]}")

    # --- Method 1: High-level estimator ---
    print("\n2. Training RandomTreeRegressor...")
    for k, splitter in [(2, "best"), (3, "best"), (2, "random"), (4, "random")]:
        model = kt.RandomTreeRegressor(
            k=k,
            splitter=splitter,
            max_features=4,
            min_samples_leaf=5,
            random_state=0,
        )
        model.fit(X_train, y_train)
        r2 = r2_score(y_test, model.predict(X_test))
        print(f"   k={k} splitter={splitter:<6} nodes={model.tree_.n_nodes:<5} "
              f"depth={model.tree_.depth:<3} R²={r2:.4f}")

    # --- Method 2: Low-level API ---
    print("\n3. Low-level KAryTree API...")
    data = kt.ArrayDataset(X_train, y_train)
    options = kt.TreeOptions(
        max_depth=3,
        min_samples_to_split=10,
        min_samples_in_leaf=20,
        max_features=5,
        max_num_nodes=40,
    )
    tree = kt.KAryTree(k=3, splitter="best")
    tree.fit(data, options, np.random.default_rng(7))

    print(f"   Single prediction: {tree.predict(X_test[0]):.4f} (true {y_test[0]:.4f})")
    print("   Tree structure:")
    for line in tree.describe().splitlines()[:8]:
        print(f"     {line}")

    # --- Persistence ---
    print("\n4. Save / load...")
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "tree.joblib"
        model.save(path)
        loaded = kt.RandomTreeRegressor.load(path)
        same = np.array_equal(model.predict(X_test), loaded.predict(X_test))
        print(f"   Predictions identical after reload: {same}")

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
