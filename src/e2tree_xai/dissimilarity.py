"""Co-occurrence dissimilarity between training observations.

Two observations are close when many member trees of the forest send them
to the same terminal leaf. For a forest of ``T`` trees::

    D[i, j] = 1 - (#trees placing i and j in the same leaf) / T

The count decomposes into one additive integer increment per tree, so trees
can be processed by independent joblib workers and summed in any order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from joblib import Parallel, delayed
from numpy.typing import ArrayLike
from scipy.spatial.distance import squareform

from .exceptions import DataMismatchError, ParallelWorkerFailure
from .proximity import MISSING_LEAF, EnsembleSummary
from .settings import ParallelConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DissimilarityMatrix:
    """Read-only symmetric ensemble dissimilarity over training observations.

    Attributes
    ----------
    values : ndarray of shape (n_samples, n_samples)
        Entries in [0, 1], zero diagonal.
    n_members : int
        Number of member trees the counts were taken over.
    """

    values: np.ndarray
    n_members: int

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float, copy=True)
        if values.ndim != 2 or values.shape[0] != values.shape[1]:
            raise DataMismatchError(
                f"Dissimilarity matrix must be square, got shape {values.shape}"
            )
        if not np.allclose(values, values.T):
            raise DataMismatchError("Dissimilarity matrix must be symmetric")
        if values.size and (values.min() < 0.0 or values.max() > 1.0):
            raise DataMismatchError("Dissimilarity entries must lie in [0, 1]")
        np.fill_diagonal(values, 0.0)
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def n_observations(self) -> int:
        return int(self.values.shape[0])

    @property
    def proximity(self) -> np.ndarray:
        """Fraction of member trees sharing a leaf (``1 - values``)."""
        return 1.0 - self.values

    def condensed(self) -> np.ndarray:
        """Strictly-triangular entries as a flat vector (scipy's condensed form)."""
        return squareform(self.values, checks=False)

    def submatrix(self, indices: ArrayLike) -> np.ndarray:
        idx = np.asarray(indices, dtype=np.intp)
        return self.values[np.ix_(idx, idx)]

    def mean_within(self, indices: ArrayLike) -> float:
        """Mean pairwise dissimilarity among *indices* (0 for fewer than two)."""
        idx = np.asarray(indices, dtype=np.intp)
        if idx.size < 2:
            return 0.0
        block = self.values[np.ix_(idx, idx)]
        # diagonal is zero, so the off-diagonal mean is sum / (k^2 - k)
        return float(block.sum() / (idx.size * (idx.size - 1)))


def _tree_cooccurrence(leaves: np.ndarray) -> np.ndarray:
    """Co-occurrence increment of a single member tree.

    ``leaves`` holds the leaf id of every observation in that tree. Pairs
    involving an unassigned observation get no vote.
    """
    assigned = leaves != MISSING_LEAF
    same = leaves[:, None] == leaves[None, :]
    same &= assigned[:, None] & assigned[None, :]
    return same.astype(np.int32)


def cooccurrence_counts(
    leaf_matrix: np.ndarray,
    *,
    parallel: Optional[ParallelConfig] = None,
) -> np.ndarray:
    """Sum per-tree co-occurrence increments into an (n, n) integer matrix."""
    parallel = parallel or ParallelConfig()
    n_obs, n_members = leaf_matrix.shape
    counts = np.zeros((n_obs, n_obs), dtype=np.int64)

    if not parallel.active:
        for t in range(n_members):
            counts += _tree_cooccurrence(leaf_matrix[:, t])
        return counts

    try:
        increments = Parallel(
            n_jobs=parallel.effective_n_jobs, return_as="generator"
        )(
            delayed(_tree_cooccurrence)(leaf_matrix[:, t]) for t in range(n_members)
        )
        for inc in increments:
            counts += inc
    except Exception as exc:
        raise ParallelWorkerFailure(
            f"Co-occurrence worker failed while processing {n_members} trees: {exc}"
        ) from exc
    return counts


def create_dissimilarity_matrix(
    ensemble: EnsembleSummary,
    *,
    n_observations: Optional[int] = None,
    parallel: Optional[ParallelConfig] = None,
) -> DissimilarityMatrix:
    """Build the ensemble dissimilarity matrix.

    Parameters
    ----------
    ensemble : EnsembleSummary
        Leaf assignments of the training observations.
    n_observations : int, optional
        Size of the training dataset. When given, a leaf matrix with a
        different number of rows raises :class:`DataMismatchError`.
    parallel : ParallelConfig, optional
        Serial (default) or joblib-parallel per-tree processing. The result
        does not depend on the worker count.

    Returns
    -------
    DissimilarityMatrix
    """
    parallel = parallel or ParallelConfig()
    leaf_matrix = ensemble.leaf_matrix
    if n_observations is not None and leaf_matrix.shape[0] != n_observations:
        raise DataMismatchError(
            f"Ensemble leaf matrix covers {leaf_matrix.shape[0]} observations "
            f"but the dataset has {n_observations}"
        )

    logger.info(
        "Computing dissimilarity for %d observations over %d trees (%s)",
        leaf_matrix.shape[0],
        ensemble.n_members,
        f"parallel, n_jobs={parallel.effective_n_jobs}" if parallel.active else "serial",
    )
    counts = cooccurrence_counts(leaf_matrix, parallel=parallel)
    values = 1.0 - counts / float(ensemble.n_members)
    return DissimilarityMatrix(values=values, n_members=ensemble.n_members)
