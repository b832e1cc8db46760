"""Recursive growth of the explanation tree."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .dataset import Dataset
from .dissimilarity import DissimilarityMatrix
from .exceptions import ConfigurationError, DataMismatchError
from .proximity import EnsembleSummary
from .settings import Settings
from .splitter import find_best_split, select_candidate_features, sum_squared_deviation
from .tree import ExplanationTree, InternalNode, LeafNode, Node

logger = logging.getLogger(__name__)


def _check_inputs(
    dataset: Dataset,
    dissimilarity: DissimilarityMatrix,
    ensemble: EnsembleSummary,
    settings: Settings,
) -> None:
    if not isinstance(settings, Settings):
        raise ConfigurationError(
            f"settings must be a Settings instance, got {type(settings).__name__!r}"
        )
    n = dataset.n_observations
    if n == 0:
        raise DataMismatchError("The dataset has no observations")
    if dissimilarity.n_observations != n:
        raise DataMismatchError(
            f"Dissimilarity matrix is {dissimilarity.n_observations}x"
            f"{dissimilarity.n_observations} but the dataset has {n} observations"
        )
    if ensemble.n_observations != n:
        raise DataMismatchError(
            f"Ensemble leaf matrix covers {ensemble.n_observations} observations "
            f"but the dataset has {n}"
        )
    if ensemble.importances.shape[0] != dataset.n_features:
        raise DataMismatchError(
            f"Ensemble reports {ensemble.importances.shape[0]} importances but "
            f"the dataset has {dataset.n_features} predictors"
        )


def build_tree(
    dataset: Dataset,
    dissimilarity: DissimilarityMatrix,
    ensemble: EnsembleSummary,
    settings: Optional[Settings] = None,
) -> ExplanationTree:
    """Grow an explanation tree.

    Parameters
    ----------
    dataset : Dataset
        Training predictors and response.
    dissimilarity : DissimilarityMatrix
        Ensemble dissimilarity over the same observations.
    ensemble : EnsembleSummary
        Supplies the importances that restrict the candidate predictors.
    settings : Settings, optional
        Stopping thresholds; defaults to ``Settings()``.

    Returns
    -------
    ExplanationTree

    Raises
    ------
    DataMismatchError
        If the inputs disagree on the number of observations or predictors.
    """
    settings = settings if settings is not None else Settings()
    _check_inputs(dataset, dissimilarity, ensemble, settings)

    candidates = select_candidate_features(ensemble.importances, settings.imp_total)
    logger.info(
        "Growing explanation tree on %d observations; candidate predictors: %s",
        dataset.n_observations,
        [dataset.feature_names[j] for j in candidates],
    )

    root_indices = np.arange(dataset.n_observations)
    root_sse = sum_squared_deviation(dataset.y)

    def _grow(indices: np.ndarray, node_id: int, parent_id: Optional[int], depth: int) -> Node:
        indices.setflags(write=False)
        y = dataset.y[indices]
        prediction = float(y.mean())
        sse = sum_squared_deviation(y)
        common = dict(
            node_id=node_id,
            parent_id=parent_id,
            depth=depth,
            indices=indices,
            prediction=prediction,
            sse=sse,
            fit_quality=sse / root_sse if root_sse > 0.0 else 0.0,
            dissimilarity=dissimilarity.mean_within(indices),
        )

        if depth >= settings.level or indices.size < settings.n:
            return LeafNode(**common)
        split = find_best_split(dataset, indices, candidates, settings)
        if split is None:
            return LeafNode(**common)

        logger.debug(
            "Node %d: split on %s (nmse=%.4f, %d/%d)",
            node_id, split.feature, split.nmse,
            split.left_indices.size, split.right_indices.size,
        )
        left = _grow(np.array(split.left_indices), 2 * node_id, node_id, depth + 1)
        right = _grow(np.array(split.right_indices), 2 * node_id + 1, node_id, depth + 1)
        return InternalNode(split=split, left=left, right=right, **common)

    root = _grow(root_indices, 1, None, 0)
    tree = ExplanationTree(
        root=root,
        settings=settings,
        feature_names=dataset.feature_names,
        categorical=dataset.categorical,
        category_codes=dataset.category_codes,
        categories=dataset.categories,
        candidate_features=candidates,
    )
    logger.info("Explanation tree grown: %r", tree)
    return tree
