"""Best-split search for a single node.

The criterion is the normalised mean-square error of a binary split::

    NMSE = (SSE_left + SSE_right) / SSE_parent

i.e. the size-weighted average of the children's mean squared error over
the parent's. A split is worth ``1 - NMSE`` of the parent's error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .dataset import Dataset
from .settings import Settings

logger = logging.getLogger(__name__)

# NMSE values closer than this are treated as ties.
_TIE_DECIMALS = 12


@dataclass(frozen=True)
class Split:
    """A chosen binary split.

    Attributes
    ----------
    feature_index : int
        Column of the splitting predictor.
    feature : str
        Name of the splitting predictor.
    threshold : float or tuple of float
        Continuous: observations with ``x <= threshold`` go left.
        Categorical: the codes sent left.
    is_categorical : bool
    nmse : float
        Split NMSE relative to the parent node.
    left_indices, right_indices : ndarray of int
        Partition of the parent's observation indices.
    """

    feature_index: int
    feature: str
    threshold: Union[float, tuple[float, ...]]
    is_categorical: bool
    nmse: float
    left_indices: np.ndarray
    right_indices: np.ndarray

    @property
    def decrease(self) -> float:
        return 1.0 - self.nmse

    def goes_left(self, values: np.ndarray) -> np.ndarray:
        """Boolean mask of the rows of *values* (one predictor) routed left."""
        if self.is_categorical:
            return np.isin(values, np.asarray(self.threshold, dtype=float))
        return values <= self.threshold


@dataclass(frozen=True)
class SplitCandidate:
    """One scored candidate split of a node."""

    feature_index: int
    order: int                 # threshold rank within the predictor
    threshold: Union[float, tuple[float, ...]]
    nmse: float
    n_left: int
    n_right: int


def sum_squared_deviation(values: np.ndarray) -> float:
    """Sum of squared deviations from the mean (0 for empty input)."""
    if values.size == 0:
        return 0.0
    return float(np.sum((values - values.mean()) ** 2))


def select_candidate_features(
    importances: Sequence[float],
    imp_total: float,
) -> tuple[int, ...]:
    """Predictors whose cumulative importance covers *imp_total*.

    Importances are clipped at zero and ranked in decreasing order (ties by
    column order). Predictors are added until the running share of the total
    reaches *imp_total*; the predictor that crosses the threshold is kept and
    at least one predictor is always returned. With zero total importance
    every predictor is a candidate.

    Returns
    -------
    tuple of int
        Column indices in increasing column order.
    """
    imp = np.clip(np.asarray(importances, dtype=float), 0.0, None)
    if imp.size == 0:
        return ()
    total = imp.sum()
    if total <= 0.0:
        return tuple(range(imp.size))

    order = np.argsort(-imp, kind="stable")
    cumulative = np.cumsum(imp[order]) / total
    # first position whose running share reaches the threshold
    stop = int(np.searchsorted(cumulative, imp_total - 1e-12, side="left"))
    stop = min(stop, imp.size - 1)
    chosen = order[: stop + 1]
    return tuple(sorted(int(j) for j in chosen))


def _continuous_candidates(
    x: np.ndarray, y: np.ndarray, parent_sse: float, feature_index: int,
) -> list[SplitCandidate]:
    order = np.argsort(x, kind="stable")
    xs = x[order]
    ys = y[order]
    n = xs.size

    # valid cut after position i: xs[i] < xs[i + 1]
    cut = np.nonzero(xs[:-1] < xs[1:])[0]
    if cut.size == 0:
        return []

    csum = np.cumsum(ys)
    csum2 = np.cumsum(ys ** 2)
    total, total2 = csum[-1], csum2[-1]

    n_left = cut + 1
    n_right = n - n_left
    s_left, s2_left = csum[cut], csum2[cut]
    s_right, s2_right = total - s_left, total2 - s2_left
    sse_left = np.maximum(s2_left - s_left ** 2 / n_left, 0.0)
    sse_right = np.maximum(s2_right - s_right ** 2 / n_right, 0.0)
    nmse = (sse_left + sse_right) / parent_sse
    thresholds = (xs[cut] + xs[cut + 1]) / 2.0

    return [
        SplitCandidate(
            feature_index=feature_index,
            order=k,
            threshold=float(thresholds[k]),
            nmse=float(nmse[k]),
            n_left=int(n_left[k]),
            n_right=int(n_right[k]),
        )
        for k in range(cut.size)
    ]


def _categorical_candidates(
    x: np.ndarray, y: np.ndarray, parent_sse: float, feature_index: int,
) -> list[SplitCandidate]:
    codes, inverse = np.unique(x, return_inverse=True)
    if codes.size < 2:
        return []
    counts = np.bincount(inverse).astype(float)
    sums = np.bincount(inverse, weights=y)
    sums2 = np.bincount(inverse, weights=y ** 2)
    means = sums / counts

    # Ordering categories by mean response makes the prefixes the only
    # groupings that can be optimal for squared error.
    rank = np.lexsort((codes, means))
    c_n = np.cumsum(counts[rank])
    c_s = np.cumsum(sums[rank])
    c_s2 = np.cumsum(sums2[rank])
    n_total, s_total, s2_total = c_n[-1], c_s[-1], c_s2[-1]

    candidates: list[SplitCandidate] = []
    for k in range(codes.size - 1):
        n_l, s_l, s2_l = c_n[k], c_s[k], c_s2[k]
        n_r, s_r, s2_r = n_total - n_l, s_total - s_l, s2_total - s2_l
        sse = max(s2_l - s_l ** 2 / n_l, 0.0) + max(s2_r - s_r ** 2 / n_r, 0.0)
        left_codes = tuple(sorted(float(c) for c in codes[rank[: k + 1]]))
        candidates.append(
            SplitCandidate(
                feature_index=feature_index,
                order=k,
                threshold=left_codes,
                nmse=float(sse / parent_sse),
                n_left=int(n_l),
                n_right=int(n_r),
            )
        )
    return candidates


def rank_candidates(
    dataset: Dataset,
    indices: np.ndarray,
    candidate_features: Sequence[int],
) -> list[SplitCandidate]:
    """Every candidate split of the node, best first.

    Ranking is by NMSE, then predictor column order, then threshold
    ascending (prefix length for categorical predictors).
    """
    y = dataset.y[indices]
    parent_sse = sum_squared_deviation(y)
    if parent_sse <= 0.0:
        return []

    candidates: list[SplitCandidate] = []
    for j in candidate_features:
        x = dataset.X[indices, j]
        if dataset.categorical[j]:
            candidates.extend(_categorical_candidates(x, y, parent_sse, j))
        else:
            candidates.extend(_continuous_candidates(x, y, parent_sse, j))

    candidates.sort(
        key=lambda c: (round(c.nmse, _TIE_DECIMALS), c.feature_index, c.order)
    )
    return candidates


def find_best_split(
    dataset: Dataset,
    indices: np.ndarray,
    candidate_features: Sequence[int],
    settings: Settings,
) -> Optional[Split]:
    """Choose the split of a node, or return None when it must stay a leaf.

    The ranked candidates are walked for at most ``settings.t_max`` steps.
    A candidate whose decrease ``1 - NMSE`` is below ``settings.max_dec``
    ends the search (later candidates are no better). A candidate leaving
    fewer than ``settings.n`` observations in a child is skipped and the
    next one is evaluated.

    Parameters
    ----------
    dataset : Dataset
    indices : ndarray of int
        Observations in the node.
    candidate_features : sequence of int
        Predictors allowed to split (see :func:`select_candidate_features`).
    settings : Settings

    Returns
    -------
    Split or None
    """
    indices = np.asarray(indices, dtype=np.intp)
    ranked = rank_candidates(dataset, indices, candidate_features)
    if not ranked:
        return None

    for attempt, cand in enumerate(ranked[: settings.t_max], 1):
        decrease = 1.0 - cand.nmse
        if decrease < settings.max_dec:
            logger.debug(
                "Best remaining split decreases NMSE by %.3g < max_dec", decrease
            )
            return None
        if min(cand.n_left, cand.n_right) < settings.n:
            logger.debug(
                "Candidate %d on %s rejected: child sizes %d/%d below n=%d",
                attempt, dataset.feature_names[cand.feature_index],
                cand.n_left, cand.n_right, settings.n,
            )
            continue

        j = cand.feature_index
        is_cat = dataset.categorical[j]
        x = dataset.X[indices, j]
        if is_cat:
            mask = np.isin(x, np.asarray(cand.threshold, dtype=float))
        else:
            mask = x <= cand.threshold
        left, right = indices[mask], indices[~mask]
        left.setflags(write=False)
        right.setflags(write=False)
        return Split(
            feature_index=j,
            feature=dataset.feature_names[j],
            threshold=cand.threshold,
            is_categorical=is_cat,
            nmse=cand.nmse,
            left_indices=left,
            right_indices=right,
        )
    return None
