"""Dataset accessors for karytree.

Tree induction reads the training data only through the `Dataset`
protocol, so any read-only container can be plugged in. `ArrayDataset`
is the numpy-backed implementation used by default.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


@runtime_checkable
class Dataset(Protocol):
    """Read-only view over features and responses, indexed by instance id.

    Must stay unchanged for the duration of a `fit` call.
    """

    def num_features(self) -> int:
        """Number of features per instance."""
        ...

    def num_data_points(self) -> int:
        """Number of instances."""
        ...

    def response(self, index: int) -> float:
        """Response value of one instance."""
        ...

    def feature(self, index: int, feature_index: int) -> float:
        """Single feature value of one instance."""
        ...

    def responses(self, indices: NDArray) -> NDArray:
        """Response values for a set of instances."""
        ...

    def feature_values(self, indices: NDArray, feature_index: int) -> NDArray:
        """Values of one feature for a set of instances."""
        ...


class ArrayDataset:
    """Dataset backed by a dense feature matrix and a response vector.

    Attributes:
        X: Features, shape (n_samples, n_features), float64, read-only
        y: Responses, shape (n_samples,), float64, read-only (None for
           prediction-only data)
    """

    def __init__(self, X: ArrayLike, y: ArrayLike | None = None):
        X = np.array(_to_numpy(X), dtype=np.float64, order="C")
        if X.ndim != 2:
            raise ValueError(f"X must be 2D (n_samples, n_features), got shape {X.shape}")

        if y is not None:
            y = np.array(_to_numpy(y), dtype=np.float64).ravel()
            if y.shape[0] != X.shape[0]:
                raise ValueError(
                    f"X and y have inconsistent numbers of samples: "
                    f"{X.shape[0]} != {y.shape[0]}"
                )
            y.setflags(write=False)

        X.setflags(write=False)
        self.X = X
        self.y = y

    def __repr__(self) -> str:
        return (
            f"ArrayDataset(n_samples={self.X.shape[0]}, n_features={self.X.shape[1]}, "
            f"has_responses={self.y is not None})"
        )

    def num_features(self) -> int:
        return self.X.shape[1]

    def num_data_points(self) -> int:
        return self.X.shape[0]

    def response(self, index: int) -> float:
        return float(self._responses()[index])

    def feature(self, index: int, feature_index: int) -> float:
        return float(self.X[index, feature_index])

    def responses(self, indices: NDArray) -> NDArray:
        return self._responses()[indices]

    def feature_values(self, indices: NDArray, feature_index: int) -> NDArray:
        return self.X[indices, feature_index]

    def _responses(self) -> NDArray:
        if self.y is None:
            raise ValueError("Dataset has no responses (it was built from X only)")
        return self.y


def as_dataset(data) -> Dataset:
    """Wrap array-like features in an `ArrayDataset`; pass datasets through."""
    if isinstance(data, Dataset):
        return data
    return ArrayDataset(data)


def feature_matrix(data: Dataset) -> NDArray:
    """Dense (n_samples, n_features) float64 view of a dataset's features."""
    if isinstance(data, ArrayDataset):
        return data.X
    n_samples = data.num_data_points()
    n_features = data.num_features()
    X = np.empty((n_samples, n_features), dtype=np.float64)
    for i in range(n_samples):
        for f in range(n_features):
            X[i, f] = data.feature(i, f)
    return X


def _to_numpy(arr: ArrayLike) -> NDArray:
    """Convert various array types to numpy.

    Handles: numpy, PyTorch, JAX, CuPy
    """
    if isinstance(arr, np.ndarray):
        return arr

    # PyTorch
    if hasattr(arr, 'cpu') and hasattr(arr, 'numpy'):
        return arr.cpu().numpy()

    # JAX (has __array__ protocol)
    if hasattr(arr, '__array__'):
        return np.asarray(arr)

    # CuPy
    if hasattr(arr, 'get'):
        return arr.get()

    return np.asarray(arr)
