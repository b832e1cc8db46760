"""Read leaf assignments and importances out of a fitted forest."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike

from .exceptions import DataMismatchError

logger = logging.getLogger(__name__)

#: Leaf id marking an observation with no assignment in a member tree.
MISSING_LEAF = -1


@dataclass(frozen=True)
class EnsembleSummary:
    """Everything the pipeline reads from a trained ensemble.

    Attributes
    ----------
    leaf_matrix : ndarray of shape (n_samples, n_members), int
        Terminal-leaf id of each observation in each member tree.
        :data:`MISSING_LEAF` marks observations a tree does not place.
    importances : ndarray of shape (n_features,)
        Per-predictor importance scores.
    predictions : ndarray of shape (n_samples,) or None
        Ensemble predictions on the training observations.
    """

    leaf_matrix: np.ndarray
    importances: np.ndarray
    predictions: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        leaves = np.asarray(self.leaf_matrix)
        if leaves.ndim != 2:
            raise DataMismatchError(
                f"leaf_matrix must be 2-dimensional, got shape {leaves.shape}"
            )
        if leaves.shape[1] == 0:
            raise DataMismatchError("leaf_matrix must contain at least one member tree")
        if not np.issubdtype(leaves.dtype, np.integer):
            if not np.all(np.equal(np.mod(leaves, 1), 0)):
                raise DataMismatchError("leaf_matrix must hold integer leaf ids")
        leaves = leaves.astype(np.int64)
        leaves.setflags(write=False)
        object.__setattr__(self, "leaf_matrix", leaves)

        imp = np.asarray(self.importances, dtype=float).ravel()
        if not np.all(np.isfinite(imp)):
            raise DataMismatchError("importances must be finite")
        imp.setflags(write=False)
        object.__setattr__(self, "importances", imp)

        if self.predictions is not None:
            preds = np.asarray(self.predictions, dtype=float).ravel()
            if preds.shape[0] != leaves.shape[0]:
                raise DataMismatchError(
                    f"predictions has {preds.shape[0]} entries but leaf_matrix "
                    f"has {leaves.shape[0]} rows"
                )
            preds.setflags(write=False)
            object.__setattr__(self, "predictions", preds)

    @property
    def n_observations(self) -> int:
        return int(self.leaf_matrix.shape[0])

    @property
    def n_members(self) -> int:
        return int(self.leaf_matrix.shape[1])

    @classmethod
    def from_forest(cls, forest: object, X: ArrayLike) -> EnsembleSummary:
        """Summarise a fitted scikit-learn style forest on its training data.

        The forest must expose ``apply``, ``feature_importances_`` and
        ``predict`` (``RandomForestRegressor``, ``ExtraTreesRegressor``, ...).
        *X* is passed to the forest unchanged.
        """
        return cls(
            leaf_matrix=extract_leaf_matrix(forest, X),
            importances=extract_importances(forest, np.shape(X)[1]),
            predictions=np.asarray(forest.predict(X), dtype=float),
        )


def extract_leaf_matrix(forest: object, X: ArrayLike) -> np.ndarray:
    """Return the (n_samples, n_members) terminal-leaf assignment matrix."""
    if not hasattr(forest, "apply") or not callable(forest.apply):
        raise TypeError(
            f"The ensemble must expose a callable .apply() method, "
            f"got {type(forest).__name__!r}."
        )
    leaves = np.asarray(forest.apply(X))
    if leaves.ndim == 1:
        leaves = leaves.reshape(-1, 1)
    logger.debug(
        "Extracted leaf matrix: %d observations x %d trees", *leaves.shape
    )
    return leaves


def extract_importances(forest: object, n_features: int) -> np.ndarray:
    """Return the forest's per-predictor importance vector."""
    importances = getattr(forest, "feature_importances_", None)
    if importances is None:
        raise TypeError(
            f"The ensemble must expose feature_importances_, "
            f"got {type(forest).__name__!r}."
        )
    importances = np.asarray(importances, dtype=float).ravel()
    if importances.shape[0] != n_features:
        raise DataMismatchError(
            f"Ensemble reports {importances.shape[0]} importances but the "
            f"dataset has {n_features} predictors"
        )
    return importances
