"""e2tree_xai - Explainable Ensemble Trees for random forest regression."""

import logging

from .builder import build_tree
from .dataset import Dataset
from .dissimilarity import DissimilarityMatrix, create_dissimilarity_matrix
from .exceptions import (
    ConfigurationError,
    DataMismatchError,
    E2TreeError,
    ParallelWorkerFailure,
)
from .explainer import EnsembleExplainer, ExplanationResult
from .export import tree_to_frame, tree_to_records
from .proximity import EnsembleSummary
from .report import ComparisonReport, compute_comparison_report
from .ruleset import Condition, Rule, RuleSet
from .settings import ParallelConfig, Settings
from .splitter import Split, find_best_split, select_candidate_features
from .tree import ExplanationTree, InternalNode, LeafNode
from .validation import MantelResult, mantel_test, tree_distance_matrix

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "EnsembleExplainer",
    "ExplanationResult",
    "Dataset",
    "EnsembleSummary",
    "Settings",
    "ParallelConfig",
    # Dissimilarity
    "DissimilarityMatrix",
    "create_dissimilarity_matrix",
    # Growth
    "Split",
    "find_best_split",
    "select_candidate_features",
    "build_tree",
    "ExplanationTree",
    "InternalNode",
    "LeafNode",
    # Export and rules
    "tree_to_frame",
    "tree_to_records",
    "Condition",
    "Rule",
    "RuleSet",
    # Validation
    "MantelResult",
    "mantel_test",
    "tree_distance_matrix",
    "ComparisonReport",
    "compute_comparison_report",
    # Errors
    "E2TreeError",
    "ConfigurationError",
    "DataMismatchError",
    "ParallelWorkerFailure",
]
