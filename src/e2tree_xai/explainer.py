"""Core explainer: distils a fitted random forest into one explanation tree."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike

from .builder import build_tree
from .dataset import Dataset
from .dissimilarity import DissimilarityMatrix, create_dissimilarity_matrix
from .proximity import EnsembleSummary
from .report import ComparisonReport, compute_comparison_report
from .ruleset import RuleSet
from .settings import ParallelConfig, Settings
from .tree import ExplanationTree
from .validation import MantelResult, mantel_test

logger = logging.getLogger(__name__)

_RESPONSE_COLUMN = "__response__"


class ExplanationResult:
    """Container returned by :meth:`EnsembleExplainer.explain`.

    Attributes
    ----------
    tree : ExplanationTree
        The grown explanation tree.
    dataset : Dataset
        Training data the tree was grown on.
    dissimilarity : DissimilarityMatrix
        Ensemble dissimilarity over the training observations.
    ensemble : EnsembleSummary
        Leaf assignments, importances and predictions of the forest.
    rules : RuleSet
        One IF-THEN rule per leaf.
    report : ComparisonReport
        Fit of the tree against the response and the forest.
    validation_report : ComparisonReport or None
        Hold-out report (only when validation data is given).
    """

    def __init__(
        self,
        tree: ExplanationTree,
        dataset: Dataset,
        dissimilarity: DissimilarityMatrix,
        ensemble: EnsembleSummary,
        rules: RuleSet,
        report: ComparisonReport,
        *,
        validation_report: Optional[ComparisonReport] = None,
    ) -> None:
        self.tree = tree
        self.dataset = dataset
        self.dissimilarity = dissimilarity
        self.ensemble = ensemble
        self.rules = rules
        self.report = report
        self.validation_report = validation_report

    def to_frame(self) -> pd.DataFrame:
        return self.tree.to_frame()

    def __str__(self) -> str:
        parts = [str(self.rules), "", str(self.report)]
        if self.validation_report is not None:
            parts += ["", "--- Hold-out report ---", str(self.validation_report)]
        return "\n".join(parts)


class EnsembleExplainer:
    """Explains a fitted regression forest with a single tree.

    Parameters
    ----------
    forest : object
        Fitted forest exposing ``apply``, ``predict`` and
        ``feature_importances_`` (e.g. ``RandomForestRegressor``).
    feature_names : sequence of str, optional
        Predictor names for array input. Ignored for DataFrame input.
    categorical_features : sequence of int or str
        Categorical predictors for array input. DataFrame input types
        them from the column dtypes.
    """

    def __init__(
        self,
        forest: object,
        feature_names: Optional[Sequence[str]] = None,
        *,
        categorical_features: Sequence[Union[int, str]] = (),
    ) -> None:
        for attr in ("apply", "predict"):
            if not callable(getattr(forest, attr, None)):
                raise TypeError(
                    f"The forest must expose a callable .{attr}() method, "
                    f"got {type(forest).__name__!r}."
                )
        self.forest = forest
        self.feature_names = tuple(feature_names) if feature_names is not None else None
        self.categorical_features = tuple(categorical_features)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def explain(
        self,
        X: Union[ArrayLike, pd.DataFrame],
        y: ArrayLike,
        *,
        settings: Optional[Settings] = None,
        parallel: Optional[ParallelConfig] = None,
        X_val: Optional[Union[ArrayLike, pd.DataFrame]] = None,
        y_val: Optional[ArrayLike] = None,
    ) -> ExplanationResult:
        """Run the full pipeline on the forest's training data.

        Parameters
        ----------
        X : array-like or DataFrame of shape (n_samples, n_features)
            Training predictors, exactly as the forest was fitted on.
        y : array-like of shape (n_samples,)
            Training response.
        settings : Settings, optional
            Growth thresholds; defaults to ``Settings()``.
        parallel : ParallelConfig, optional
            Serial or parallel dissimilarity computation.
        X_val, y_val : optional
            Hold-out data for an extra comparison report.

        Returns
        -------
        ExplanationResult
        """
        settings = settings if settings is not None else Settings()
        if (X_val is None) != (y_val is None):
            raise ValueError("X_val and y_val must be given together.")

        dataset = self._dataset(X, y)
        ensemble = EnsembleSummary.from_forest(self.forest, X)
        dissimilarity = create_dissimilarity_matrix(
            ensemble, n_observations=dataset.n_observations, parallel=parallel,
        )
        tree = build_tree(dataset, dissimilarity, ensemble, settings)

        report = compute_comparison_report(
            tree, dataset.X, dataset.y, y_ensemble=ensemble.predictions,
        )
        validation_report = None
        if X_val is not None:
            X_val_enc = self._encode(dataset, X_val)
            validation_report = compute_comparison_report(
                tree,
                X_val_enc,
                np.asarray(y_val, dtype=float),
                y_ensemble=np.asarray(self.forest.predict(X_val), dtype=float),
                evaluation_type="hold_out",
            )

        return ExplanationResult(
            tree=tree,
            dataset=dataset,
            dissimilarity=dissimilarity,
            ensemble=ensemble,
            rules=tree.to_rules(),
            report=report,
            validation_report=validation_report,
        )

    def validate(
        self,
        result: ExplanationResult,
        *,
        permutations: int = 999,
        random_state: Optional[int] = None,
    ) -> MantelResult:
        """Mantel test of the result's tree; also stored on ``result.report``."""
        mantel = mantel_test(
            result.dissimilarity,
            result.tree,
            permutations=permutations,
            random_state=random_state,
        )
        result.report = replace(result.report, mantel=mantel)
        return mantel

    def predict(self, result: ExplanationResult, X: Union[ArrayLike, pd.DataFrame]) -> np.ndarray:
        """Explanation-tree predictions for new rows."""
        return result.tree.predict(self._encode(result.dataset, X))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _dataset(self, X, y) -> Dataset:
        if isinstance(X, pd.DataFrame):
            frame = X.copy()
            frame[_RESPONSE_COLUMN] = np.asarray(y)
            return Dataset.from_frame(frame, _RESPONSE_COLUMN)
        return Dataset.from_arrays(
            X,
            y,
            feature_names=self.feature_names,
            categorical_features=self.categorical_features,
        )

    @staticmethod
    def _encode(dataset: Dataset, X) -> np.ndarray:
        if isinstance(X, pd.DataFrame):
            return dataset.encode_frame(X)
        return np.asarray(X, dtype=float)
