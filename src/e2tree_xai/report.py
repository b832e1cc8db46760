"""Comparison report: how well the explanation tree mimics the forest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from numpy.typing import ArrayLike
from sklearn.metrics import mean_squared_error, r2_score

from .tree import ExplanationTree
from .validation import MantelResult


@dataclass(frozen=True)
class ComparisonReport:
    """Quantitative summary of the explanation tree.

    Attributes
    ----------
    fidelity_r2 : float or None
        R² of the tree against the ensemble predictions.
    fidelity_mse : float or None
        MSE of the tree against the ensemble predictions.
    accuracy_r2 : float
        R² of the tree against the observed response.
    accuracy_mse : float
        MSE of the tree against the observed response.
    ensemble_r2 : float or None
        R² of the ensemble against the observed response.
    num_leaves : int
    depth : int
    num_samples : int
    variable_importance : dict
        Tree-level importance per predictor (see
        :meth:`ExplanationTree.variable_importance`).
    evaluation_type : str
        ``"in_sample"`` or ``"hold_out"``.
    mantel : MantelResult or None
    num_rules : int or None
    avg_conditions : float or None
        Mean number of conditions per leaf rule.
    interaction_strength : float or None
        Fraction of rules that condition on more than one predictor.
    """

    fidelity_r2: Optional[float]
    fidelity_mse: Optional[float]
    accuracy_r2: float
    accuracy_mse: float
    ensemble_r2: Optional[float]
    num_leaves: int
    depth: int
    num_samples: int
    variable_importance: Dict[str, float]
    evaluation_type: str = "in_sample"
    mantel: Optional[MantelResult] = None
    num_rules: Optional[int] = None
    avg_conditions: Optional[float] = None
    interaction_strength: Optional[float] = None

    def __str__(self) -> str:
        lines = [
            "=== Explanation Tree Report ===",
            f"  Evaluation type: {self.evaluation_type}",
        ]
        if self.fidelity_r2 is not None:
            lines.append(f"  Fidelity R² (tree vs ensemble): {self.fidelity_r2:.4f}")
        if self.fidelity_mse is not None:
            lines.append(f"  Fidelity MSE (tree vs ensemble): {self.fidelity_mse:.4f}")
        lines.append(f"  Tree R² (vs response): {self.accuracy_r2:.4f}")
        lines.append(f"  Tree MSE (vs response): {self.accuracy_mse:.4f}")
        if self.ensemble_r2 is not None:
            lines.append(f"  Ensemble R² (vs response): {self.ensemble_r2:.4f}")
        lines += [
            f"  Leaves: {self.num_leaves}",
            f"  Depth: {self.depth}",
            f"  Samples used: {self.num_samples}",
        ]
        if self.num_rules is not None:
            lines.append(f"  Number of rules: {self.num_rules}")
        if self.avg_conditions is not None:
            lines.append(f"  Avg conditions/rule: {self.avg_conditions:.4f}")
        if self.interaction_strength is not None:
            lines.append(f"  Interaction strength: {self.interaction_strength:.4f}")
        used = {k: v for k, v in self.variable_importance.items() if v > 0}
        if used:
            lines.append("  Variable importance:")
            for name, score in sorted(used.items(), key=lambda kv: -kv[1]):
                lines.append(f"    {name}: {score:.4f}")
        if self.mantel is not None:
            lines.append(
                f"  Mantel correlation: {self.mantel.statistic:.4f} "
                f"(p={self.mantel.p_value:.4f}, "
                f"{self.mantel.n_permutations} permutations)"
            )
        return "\n".join(lines)


def compute_comparison_report(
    tree: ExplanationTree,
    X: ArrayLike,
    y_true: ArrayLike,
    *,
    y_ensemble: Optional[ArrayLike] = None,
    evaluation_type: str = "in_sample",
    mantel: Optional[MantelResult] = None,
) -> ComparisonReport:
    """Compare tree predictions with the response and the ensemble.

    Parameters
    ----------
    tree : ExplanationTree
    X : array-like of shape (n_samples, n_features)
        Encoded predictors to evaluate on.
    y_true : array-like of shape (n_samples,)
        Observed response.
    y_ensemble : array-like of shape (n_samples,), optional
        Ensemble predictions on *X*; fidelity metrics are omitted without it.
    evaluation_type : str
    mantel : MantelResult, optional
    """
    y_true = np.asarray(y_true, dtype=float)
    y_tree = tree.predict(X)
    rules = tree.to_rules()

    fidelity_r2 = fidelity_mse = ensemble_r2 = None
    if y_ensemble is not None:
        y_ens = np.asarray(y_ensemble, dtype=float)
        fidelity_r2 = float(r2_score(y_ens, y_tree))
        fidelity_mse = float(mean_squared_error(y_ens, y_tree))
        ensemble_r2 = float(r2_score(y_true, y_ens))

    return ComparisonReport(
        fidelity_r2=fidelity_r2,
        fidelity_mse=fidelity_mse,
        accuracy_r2=float(r2_score(y_true, y_tree)),
        accuracy_mse=float(mean_squared_error(y_true, y_tree)),
        ensemble_r2=ensemble_r2,
        num_leaves=tree.n_leaves,
        depth=tree.depth,
        num_samples=int(y_true.shape[0]),
        variable_importance=tree.variable_importance(),
        evaluation_type=evaluation_type,
        mantel=mantel,
        num_rules=rules.num_rules,
        avg_conditions=rules.avg_conditions,
        interaction_strength=rules.interaction_strength,
    )
