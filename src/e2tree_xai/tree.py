"""Explanation tree: immutable node variants and tree-level traversals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Union

import numpy as np
from numpy.typing import ArrayLike

from .ruleset import Condition, Rule, RuleSet
from .settings import Settings
from .splitter import Split


@dataclass(frozen=True)
class LeafNode:
    """Terminal node.

    Attributes
    ----------
    node_id : int
        Heap-style id: root 1, children of *k* are ``2k`` and ``2k + 1``.
    parent_id : int or None
    depth : int
    indices : ndarray of int
        Training observations in the node (read-only).
    prediction : float
        Mean response.
    sse : float
        Sum of squared deviations of the response from ``prediction``.
    fit_quality : float
        ``sse`` divided by the root's ``sse`` (node NMSE).
    dissimilarity : float
        Mean pairwise ensemble dissimilarity inside the node.
    """

    node_id: int
    parent_id: Optional[int]
    depth: int
    indices: np.ndarray
    prediction: float
    sse: float
    fit_quality: float
    dissimilarity: float

    @property
    def n_obs(self) -> int:
        return int(self.indices.size)


@dataclass(frozen=True)
class InternalNode:
    """Node split in two; fields as in :class:`LeafNode` plus the split."""

    node_id: int
    parent_id: Optional[int]
    depth: int
    indices: np.ndarray
    prediction: float
    sse: float
    fit_quality: float
    dissimilarity: float
    split: Split
    left: Node
    right: Node

    @property
    def n_obs(self) -> int:
        return int(self.indices.size)


Node = Union[LeafNode, InternalNode]


class ExplanationTree:
    """A grown explanation tree plus the settings and schema it was grown with.

    Parameters
    ----------
    root : LeafNode or InternalNode
    settings : Settings
    feature_names : tuple of str
    categorical : tuple of bool
    category_codes, categories : tuple of tuple
        Code/label pairs of categorical predictors (see :class:`Dataset`).
    candidate_features : tuple of int
        Predictors that passed the importance filter.
    """

    def __init__(
        self,
        root: Node,
        settings: Settings,
        feature_names: tuple[str, ...],
        categorical: tuple[bool, ...],
        category_codes: tuple[tuple[float, ...], ...],
        categories: tuple[tuple, ...],
        candidate_features: tuple[int, ...],
    ) -> None:
        self.root = root
        self.settings = settings
        self.feature_names = feature_names
        self.categorical = categorical
        self.category_codes = category_codes
        self.categories = categories
        self.candidate_features = candidate_features

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def nodes(self) -> Iterator[Node]:
        """Pre-order traversal (node, left subtree, right subtree)."""
        stack: list[Node] = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, InternalNode):
                stack.append(node.right)
                stack.append(node.left)

    def leaves(self) -> list[LeafNode]:
        return [n for n in self.nodes() if isinstance(n, LeafNode)]

    def node(self, node_id: int) -> Node:
        for n in self.nodes():
            if n.node_id == node_id:
                return n
        raise KeyError(f"No node with id {node_id}")

    @property
    def n_observations(self) -> int:
        return self.root.n_obs

    @property
    def n_nodes(self) -> int:
        return sum(1 for _ in self.nodes())

    @property
    def n_leaves(self) -> int:
        return len(self.leaves())

    @property
    def depth(self) -> int:
        return max(n.depth for n in self.nodes())

    # ------------------------------------------------------------------
    # Assignment and prediction
    # ------------------------------------------------------------------

    def leaf_assignments(self) -> np.ndarray:
        """Leaf id of every training observation, indexed by observation."""
        out = np.empty(self.n_observations, dtype=np.int64)
        for leaf in self.leaves():
            out[leaf.indices] = leaf.node_id
        return out

    def apply(self, X: ArrayLike) -> np.ndarray:
        """Leaf id reached by each row of *X*.

        Continuous predictors go left on ``x <= threshold``; categorical
        predictors go left when the code is in the left group, so codes not
        seen during growth go right.
        """
        X = np.asarray(X, dtype=float)
        if X.ndim != 2 or X.shape[1] != len(self.feature_names):
            raise ValueError(
                f"X must have shape (n, {len(self.feature_names)}), got {X.shape}"
            )
        out = np.empty(X.shape[0], dtype=np.int64)

        def _route(node: Node, rows: np.ndarray) -> None:
            if rows.size == 0:
                return
            if isinstance(node, LeafNode):
                out[rows] = node.node_id
                return
            mask = node.split.goes_left(X[rows, node.split.feature_index])
            _route(node.left, rows[mask])
            _route(node.right, rows[~mask])

        _route(self.root, np.arange(X.shape[0]))
        return out

    def predict(self, X: ArrayLike) -> np.ndarray:
        """Leaf mean response for each row of *X*."""
        values = {leaf.node_id: leaf.prediction for leaf in self.leaves()}
        return np.array([values[i] for i in self.apply(X)], dtype=float)

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def variable_importance(self) -> Dict[str, float]:
        """Error decrease credited to each predictor.

        For every internal node: ``(sse - sse_left - sse_right) / root sse``,
        summed per splitting predictor. Predictors never used get 0.
        """
        scores = {name: 0.0 for name in self.feature_names}
        root_sse = self.root.sse
        if root_sse <= 0.0:
            return scores
        for node in self.nodes():
            if isinstance(node, InternalNode):
                gain = node.sse - node.left.sse - node.right.sse
                scores[node.split.feature] += gain / root_sse
        return scores

    def split_labels(self, split: Split) -> tuple[tuple, tuple]:
        """Category labels sent left and right by a categorical split."""
        j = split.feature_index
        codes = self.category_codes[j]
        labels = self.categories[j]
        left = set(split.threshold)
        go_left = tuple(lab for c, lab in zip(codes, labels) if c in left)
        go_right = tuple(lab for c, lab in zip(codes, labels) if c not in left)
        return go_left, go_right

    def to_rules(self) -> RuleSet:
        """One rule per leaf, conditions in root-to-leaf order."""
        rules: list[Rule] = []

        def _dfs(node: Node, conditions: list[Condition]) -> None:
            if isinstance(node, LeafNode):
                rules.append(
                    Rule(
                        conditions=tuple(conditions),
                        prediction=node.prediction,
                        samples=node.n_obs,
                        leaf_id=node.node_id,
                        fit_quality=node.fit_quality,
                    )
                )
                return
            split = node.split
            if split.is_categorical:
                go_left, _ = self.split_labels(split)
                left_cond = Condition(split.feature, "in", go_left)
                right_cond = Condition(split.feature, "not in", go_left)
            else:
                left_cond = Condition(split.feature, "<=", split.threshold)
                right_cond = Condition(split.feature, ">", split.threshold)
            _dfs(node.left, conditions + [left_cond])
            _dfs(node.right, conditions + [right_cond])

        _dfs(self.root, [])
        return RuleSet(rules=tuple(rules), feature_names=self.feature_names)

    def to_frame(self):
        """Flattened node table (see :func:`e2tree_xai.export.tree_to_frame`)."""
        from .export import tree_to_frame

        return tree_to_frame(self)

    def __repr__(self) -> str:
        return (
            f"ExplanationTree(n_nodes={self.n_nodes}, n_leaves={self.n_leaves}, "
            f"depth={self.depth}, n_observations={self.n_observations})"
        )
