"""Tests for builder.py and tree.py - growth, invariants and traversals."""

import numpy as np
import pytest
from sklearn.datasets import make_regression
from sklearn.ensemble import RandomForestRegressor

from e2tree_xai import (
    ConfigurationError,
    DataMismatchError,
    Dataset,
    DissimilarityMatrix,
    EnsembleSummary,
    ExplanationTree,
    InternalNode,
    LeafNode,
    Settings,
    build_tree,
    create_dissimilarity_matrix,
    mantel_test,
)
from e2tree_xai.settings import MAX_LEVEL


def _pipeline_inputs(X, y, forest=None, leaf_matrix=None, importances=None, **ds_kwargs):
    ds = Dataset.from_arrays(X, y, **ds_kwargs)
    if forest is not None:
        ensemble = EnsembleSummary.from_forest(forest, X)
    else:
        ensemble = EnsembleSummary(leaf_matrix=leaf_matrix, importances=importances)
    D = create_dissimilarity_matrix(ensemble)
    return ds, D, ensemble


@pytest.fixture()
def forest_inputs():
    X, y = make_regression(
        n_samples=150, n_features=5, n_informative=3, noise=10.0, random_state=1
    )
    forest = RandomForestRegressor(n_estimators=20, random_state=1).fit(X, y)
    return _pipeline_inputs(X, y, forest=forest)


@pytest.fixture()
def clusters():
    x = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 11.0, 12.0, 13.0, 14.0, 15.0])
    y = np.array([0.0] * 5 + [10.0] * 5)
    leaves = np.repeat((x > 8).astype(int)[:, None], 4, axis=1)
    return _pipeline_inputs(x.reshape(-1, 1), y, leaf_matrix=leaves, importances=[1.0])


def _internal(tree):
    return [n for n in tree.nodes() if isinstance(n, InternalNode)]


class TestGrowthInvariants:
    def test_children_partition_parent(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0, n=5, level=4))
        assert _internal(tree)
        for node in _internal(tree):
            left, right = node.left.indices, node.right.indices
            assert left.size + right.size == node.indices.size
            assert not set(left) & set(right)
            np.testing.assert_array_equal(
                np.sort(np.concatenate([left, right])), np.sort(node.indices)
            )

    def test_depth_and_child_size(self, forest_inputs):
        ds, D, ens = forest_inputs
        settings = Settings(imp_total=1.0, n=8, level=3)
        tree = build_tree(ds, D, ens, settings)
        assert tree.depth <= 3
        for node in _internal(tree):
            assert node.left.n_obs >= 8
            assert node.right.n_obs >= 8
            assert node.split.decrease >= settings.max_dec

    def test_leaves_cover_every_observation_once(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0))
        covered = np.concatenate([leaf.indices for leaf in tree.leaves()])
        np.testing.assert_array_equal(np.sort(covered), np.arange(ds.n_observations))

    def test_node_statistics(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0, level=2))
        root = tree.root
        assert root.node_id == 1
        assert root.parent_id is None
        assert root.prediction == pytest.approx(ds.y.mean())
        assert root.fit_quality == pytest.approx(1.0)
        for node in tree.nodes():
            y = ds.y[node.indices]
            assert node.prediction == pytest.approx(y.mean())
            assert node.sse == pytest.approx(np.sum((y - y.mean()) ** 2))
            assert node.dissimilarity == pytest.approx(D.mean_within(node.indices))
            assert 0.0 <= node.fit_quality <= 1.0
        for node in _internal(tree):
            assert node.left.node_id == 2 * node.node_id
            assert node.right.node_id == 2 * node.node_id + 1
            assert node.left.parent_id == node.node_id
            assert node.left.depth == node.depth + 1

    def test_level_zero_is_single_leaf(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(level=0))
        assert isinstance(tree.root, LeafNode)
        assert tree.n_leaves == 1

    def test_node_smaller_than_n_is_leaf(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=11))
        assert isinstance(tree.root, LeafNode)

    def test_constant_response_single_leaf(self):
        X = np.arange(20, dtype=float).reshape(-1, 1)
        leaves = (np.arange(20) % 3)[:, None]
        ds, D, ens = _pipeline_inputs(X, np.full(20, 4.2), leaf_matrix=leaves, importances=[1.0])
        tree = build_tree(ds, D, ens, Settings(n=1, max_dec=0.0))
        assert isinstance(tree.root, LeafNode)
        assert tree.root.fit_quality == 0.0
        assert tree.root.prediction == pytest.approx(4.2)

    def test_nodes_are_immutable(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=2))
        with pytest.raises(AttributeError):
            tree.root.prediction = 0.0
        assert not tree.root.indices.flags.writeable


class TestKnownSplit:
    def test_two_clusters(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=2))
        assert isinstance(tree.root, InternalNode)
        assert tree.root.split.threshold == pytest.approx(8.0)
        assert tree.n_leaves == 2
        assert [leaf.prediction for leaf in tree.leaves()] == [0.0, 10.0]
        # pure leaves: no dissimilarity within, no further split
        assert all(leaf.dissimilarity == 0.0 for leaf in tree.leaves())

    def test_importance_filter_limits_predictors(self):
        rng = np.random.RandomState(3)
        X = rng.uniform(0, 1, size=(60, 2))
        y = 5 * X[:, 1] + X[:, 0]
        leaves = (X[:, 1] > 0.5).astype(int)[:, None]
        ds, D, ens = _pipeline_inputs(X, y, leaf_matrix=leaves, importances=[0.1, 0.9])
        tree = build_tree(ds, D, ens, Settings(imp_total=0.5, n=2, level=4))
        assert tree.candidate_features == (1,)
        assert {n.split.feature_index for n in _internal(tree)} == {1}


class TestFailFast:
    def test_dissimilarity_size_mismatch(self, clusters):
        ds, _, ens = clusters
        wrong = DissimilarityMatrix(values=np.zeros((9, 9)), n_members=4)
        with pytest.raises(DataMismatchError, match="9x9"):
            build_tree(ds, wrong, ens)

    def test_ensemble_row_mismatch(self, clusters):
        ds, D, _ = clusters
        ens = EnsembleSummary(leaf_matrix=np.zeros((12, 2), dtype=int), importances=[1.0])
        with pytest.raises(DataMismatchError, match="12 observations"):
            build_tree(ds, D, ens)

    def test_importance_mismatch(self, clusters):
        ds, D, _ = clusters
        ens = EnsembleSummary(leaf_matrix=np.zeros((10, 2), dtype=int), importances=[1.0, 2.0])
        with pytest.raises(DataMismatchError, match="importances"):
            build_tree(ds, D, ens)

    def test_settings_type(self, clusters):
        ds, D, ens = clusters
        with pytest.raises(ConfigurationError):
            build_tree(ds, D, ens, {"n": 2})


class TestDeepChain:
    @pytest.fixture()
    def chain(self):
        # each node isolates its largest response, growing a one-sided chain
        x = np.arange(80, dtype=float)
        y = 4.0 ** x
        leaves = np.repeat((x > 40).astype(int)[:, None], 3, axis=1)
        ds, D, ens = _pipeline_inputs(
            x.reshape(-1, 1), y, leaf_matrix=leaves, importances=[1.0]
        )
        settings = Settings(imp_total=1.0, max_dec=0.0, n=1, level=MAX_LEVEL)
        return ds, D, build_tree(ds, D, ens, settings)

    def test_reaches_max_level(self, chain):
        _, _, tree = chain
        assert tree.depth == MAX_LEVEL
        assert tree.n_leaves == MAX_LEVEL + 1

    def test_deepest_leaf_ids_fit(self, chain):
        ds, _, tree = chain
        assignments = tree.leaf_assignments()
        assert assignments.max() == max(leaf.node_id for leaf in tree.leaves())
        np.testing.assert_array_equal(tree.apply(ds.X), assignments)

    def test_predict_and_mantel(self, chain):
        ds, D, tree = chain
        by_leaf = {leaf.node_id: leaf.prediction for leaf in tree.leaves()}
        expected = [by_leaf[i] for i in tree.leaf_assignments()]
        np.testing.assert_allclose(tree.predict(ds.X), expected)
        result = mantel_test(D, tree, permutations=9, random_state=0)
        assert -1.0 <= result.statistic <= 1.0


class TestTreeTraversals:
    def test_apply_matches_training_assignment(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0, level=3))
        np.testing.assert_array_equal(tree.apply(ds.X), tree.leaf_assignments())

    def test_predict_training_rows(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0, level=3))
        preds = tree.predict(ds.X)
        for leaf in tree.leaves():
            np.testing.assert_allclose(preds[leaf.indices], leaf.prediction)

    def test_apply_shape_check(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=2))
        with pytest.raises(ValueError, match="shape"):
            tree.apply(np.ones((3, 2)))

    def test_predict_new_rows(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=2))
        np.testing.assert_allclose(tree.predict([[0.0], [7.9], [8.1], [100.0]]), [0, 0, 10, 10])

    def test_variable_importance(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0, level=3))
        imp = tree.variable_importance()
        assert set(imp) == set(ds.feature_names)
        explained = 1.0 - sum(leaf.fit_quality for leaf in tree.leaves())
        assert sum(imp.values()) == pytest.approx(explained)

    def test_node_lookup(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=2))
        assert tree.node(3).prediction == 10.0
        with pytest.raises(KeyError):
            tree.node(42)

    def test_repr(self, clusters):
        ds, D, ens = clusters
        tree = build_tree(ds, D, ens, Settings(n=2))
        assert isinstance(tree, ExplanationTree)
        assert "n_leaves=2" in repr(tree)


class TestRules:
    def test_one_rule_per_leaf(self, forest_inputs):
        ds, D, ens = forest_inputs
        tree = build_tree(ds, D, ens, Settings(imp_total=1.0, level=3))
        rules = tree.to_rules()
        assert rules.num_rules == tree.n_leaves
        assert rules.max_conditions <= 3
        for rule, leaf in zip(rules.rules, tree.leaves()):
            assert rule.leaf_id == leaf.node_id
            assert rule.samples == leaf.n_obs
            assert len(rule.conditions) == leaf.depth

    def test_categorical_rules_use_labels(self):
        X = np.array([[4], [4], [6], [6], [8], [8]], dtype=float)
        y = np.array([30.0, 31.0, 20.0, 21.0, 30.5, 29.5])
        leaves = np.array([[0], [0], [1], [1], [0], [0]])
        ds, D, ens = _pipeline_inputs(
            X, y, leaf_matrix=leaves, importances=[1.0],
            feature_names=["cylinders"], categorical_features=["cylinders"],
        )
        tree = build_tree(ds, D, ens, Settings(n=1, level=1))
        rules = tree.to_rules()
        texts = [str(r) for r in rules.rules]
        assert texts[0].startswith("IF cylinders in {6}")
        assert texts[1].startswith("IF cylinders not in {6}")
