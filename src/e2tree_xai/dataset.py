"""Training table: predictors, response and categorical typing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike

from .exceptions import DataMismatchError


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=float, copy=True)
    arr.setflags(write=False)
    return arr


def _is_categorical_column(col: pd.Series) -> bool:
    return (
        isinstance(col.dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(col)
        or pd.api.types.is_bool_dtype(col)
    )


@dataclass(frozen=True)
class Dataset:
    """Immutable predictor matrix plus numeric response.

    Categorical predictors are stored as numeric codes in ``X``.
    ``category_codes[j]`` lists the codes of predictor *j* and
    ``categories[j]`` the matching labels (both empty for continuous
    predictors). Arrays passed to :meth:`from_arrays` keep their raw values
    as codes; frames passed to :meth:`from_frame` are encoded ``0..k-1``.

    Attributes
    ----------
    X : ndarray of shape (n_samples, n_features)
    y : ndarray of shape (n_samples,)
    feature_names : tuple of str
    categorical : tuple of bool
    category_codes : tuple of tuple of float
    categories : tuple of tuple
    """

    X: np.ndarray
    y: np.ndarray
    feature_names: tuple[str, ...]
    categorical: tuple[bool, ...]
    category_codes: tuple[tuple[float, ...], ...]
    categories: tuple[tuple, ...]

    @property
    def n_observations(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.X.shape[1])

    @classmethod
    def from_arrays(
        cls,
        X: ArrayLike,
        y: ArrayLike,
        *,
        feature_names: Optional[Sequence[str]] = None,
        categorical_features: Sequence[Union[int, str]] = (),
    ) -> Dataset:
        """Wrap numeric arrays.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Numeric predictors. Categorical columns hold numeric codes.
        y : array-like of shape (n_samples,)
            Numeric response.
        feature_names : sequence of str, optional
            Defaults to ``feature_0 ... feature_{p-1}``.
        categorical_features : sequence of int or str
            Column positions or names of categorical predictors.
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        if X.ndim != 2:
            raise DataMismatchError(f"X must be 2-dimensional, got shape {X.shape}")
        if y.ndim != 1 or y.shape[0] != X.shape[0]:
            raise DataMismatchError(
                f"y must have shape ({X.shape[0]},), got {y.shape}"
            )
        if not np.all(np.isfinite(X)) or not np.all(np.isfinite(y)):
            raise DataMismatchError("X and y must not contain NaN or infinite values")

        n_features = X.shape[1]
        if feature_names is None:
            names = tuple(f"feature_{i}" for i in range(n_features))
        else:
            names = tuple(str(f) for f in feature_names)
        if len(names) != n_features:
            raise DataMismatchError(
                f"feature_names has {len(names)} entries but X has "
                f"{n_features} columns"
            )

        flags = [False] * n_features
        for feat in categorical_features:
            if isinstance(feat, str):
                if feat not in names:
                    raise DataMismatchError(
                        f"Categorical feature {feat!r} not found in feature_names"
                    )
                idx = names.index(feat)
            else:
                idx = int(feat)
                if not 0 <= idx < n_features:
                    raise DataMismatchError(
                        f"Categorical feature index {idx} out of range for "
                        f"{n_features} columns"
                    )
            flags[idx] = True

        codes: list[tuple[float, ...]] = []
        labels: list[tuple] = []
        for j, is_cat in enumerate(flags):
            if is_cat:
                observed = tuple(float(c) for c in np.unique(X[:, j]))
                codes.append(observed)
                labels.append(tuple(int(c) if c.is_integer() else c for c in observed))
            else:
                codes.append(())
                labels.append(())

        return cls(
            X=_readonly(X),
            y=_readonly(y),
            feature_names=names,
            categorical=tuple(flags),
            category_codes=tuple(codes),
            categories=tuple(labels),
        )

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, response: str) -> Dataset:
        """Build a dataset from a DataFrame using every other column as predictor.

        Columns of ``category``, ``object`` or ``bool`` dtype are typed
        categorical.
        """
        if response not in frame.columns:
            raise DataMismatchError(f"Response column {response!r} not in frame")

        predictors = [c for c in frame.columns if c != response]
        columns: list[np.ndarray] = []
        flags: list[bool] = []
        codes: list[tuple[float, ...]] = []
        labels: list[tuple] = []
        for name in predictors:
            col = frame[name]
            if _is_categorical_column(col):
                cat = col.astype("category")
                if (cat.cat.codes < 0).any():
                    raise DataMismatchError(
                        f"Categorical column {name!r} contains missing values"
                    )
                columns.append(cat.cat.codes.to_numpy(dtype=float))
                flags.append(True)
                labels.append(tuple(cat.cat.categories))
                codes.append(tuple(float(i) for i in range(len(cat.cat.categories))))
            else:
                columns.append(col.to_numpy(dtype=float))
                flags.append(False)
                codes.append(())
                labels.append(())

        X = np.column_stack(columns) if columns else np.empty((len(frame), 0))
        y = frame[response].to_numpy(dtype=float)
        if not np.all(np.isfinite(X)) or not np.all(np.isfinite(y)):
            raise DataMismatchError("X and y must not contain NaN or infinite values")

        return cls(
            X=_readonly(X),
            y=_readonly(y),
            feature_names=tuple(str(p) for p in predictors),
            categorical=tuple(flags),
            category_codes=tuple(codes),
            categories=tuple(labels),
        )

    def encode_frame(self, frame: pd.DataFrame) -> np.ndarray:
        """Encode a new frame with this dataset's predictor columns and codes.

        Categories unseen during training are encoded as ``-1``.
        """
        missing = [f for f in self.feature_names if f not in frame.columns]
        if missing:
            raise DataMismatchError(f"Frame is missing predictor columns {missing}")
        columns = []
        for j, name in enumerate(self.feature_names):
            col = frame[name]
            if self.categorical[j]:
                lookup = dict(zip(self.categories[j], self.category_codes[j]))
                columns.append(
                    np.array([lookup.get(v, -1.0) for v in col], dtype=float)
                )
            else:
                columns.append(col.to_numpy(dtype=float))
        if not columns:
            return np.empty((len(frame), 0))
        return np.column_stack(columns)

    def category_label(self, feature_index: int, code: float):
        """Human-readable label for a categorical code."""
        codes = self.category_codes[feature_index]
        if code in codes:
            return self.categories[feature_index][codes.index(code)]
        return code
