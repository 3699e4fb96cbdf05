"""Input validation for the high-level estimator.

Raises helpful errors for common mistakes before any tree is grown.
"""

from __future__ import annotations

import warnings
from typing import TYPE_CHECKING

import numpy as np

from ._data import _to_numpy

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


def validate_X(X: ArrayLike, *, n_features: int | None = None) -> NDArray:
    """Check a feature matrix and return it as float64.

    Args:
        X: Features, shape (n_samples, n_features)
        n_features: Expected number of features (for prediction)

    Returns:
        X as a float64 numpy array
    """
    X = _to_numpy(X)
    if not isinstance(X, np.ndarray):
        X = np.asarray(X)

    if X.ndim == 1:
        raise ValueError(
            f"X must be 2D (n_samples, n_features), got shape {X.shape}. "
            "Reshape your data with X.reshape(-1, 1) for a single feature "
            "or X.reshape(1, -1) for a single sample."
        )
    if X.ndim != 2:
        raise ValueError(f"X must be 2D (n_samples, n_features), got shape {X.shape}")
    if X.shape[0] == 0 or X.shape[1] == 0:
        raise ValueError(f"X is empty (shape {X.shape}); at least one sample and feature is required")

    if X.dtype != np.float64:
        if not np.issubdtype(X.dtype, np.floating):
            warnings.warn(
                f"Converting X from dtype {X.dtype} to float64",
                UserWarning,
                stacklevel=3,
            )
        try:
            X = X.astype(np.float64)
        except (TypeError, ValueError) as e:
            raise ValueError(f"X could not be converted to float64: {e}") from e

    if np.isnan(X).any():
        raise ValueError("X contains NaN; missing values are not supported")
    if np.isinf(X).any():
        raise ValueError("X contains infinite values")

    if n_features is not None and X.shape[1] != n_features:
        raise ValueError(
            f"X has {X.shape[1]} features, but the model was fitted with {n_features}"
        )
    return X


def validate_y(y: ArrayLike, n_samples: int) -> NDArray:
    """Check a response vector against the number of samples in X."""
    y = np.asarray(_to_numpy(y))
    if y.ndim == 2 and y.shape[1] == 1:
        y = y.ravel()
    if y.ndim != 1:
        raise ValueError(f"y must be 1D (n_samples,), got shape {y.shape}")
    if y.shape[0] != n_samples:
        raise ValueError(
            f"X and y have inconsistent numbers of samples: {n_samples} != {y.shape[0]}"
        )

    try:
        y = y.astype(np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"y could not be converted to float64: {e}") from e

    if np.isnan(y).any():
        raise ValueError("y contains NaN")
    if np.isinf(y).any():
        raise ValueError("y contains infinite values")
    return y
