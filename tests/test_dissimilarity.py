"""Tests for proximity.py and dissimilarity.py."""

import numpy as np
import pytest
from sklearn.datasets import make_regression
from sklearn.ensemble import RandomForestRegressor

import e2tree_xai.dissimilarity as dissimilarity_module
from e2tree_xai import (
    DataMismatchError,
    DissimilarityMatrix,
    EnsembleSummary,
    ParallelConfig,
    ParallelWorkerFailure,
    create_dissimilarity_matrix,
)
from e2tree_xai.proximity import MISSING_LEAF, extract_importances, extract_leaf_matrix


@pytest.fixture()
def forest_data():
    X, y = make_regression(n_samples=80, n_features=4, noise=5.0, random_state=0)
    forest = RandomForestRegressor(n_estimators=15, max_depth=4, random_state=0).fit(X, y)
    return X, y, forest


class TestEnsembleSummary:
    def test_from_forest(self, forest_data):
        X, _, forest = forest_data
        summary = EnsembleSummary.from_forest(forest, X)
        assert summary.leaf_matrix.shape == (80, 15)
        assert summary.n_members == 15
        assert summary.n_observations == 80
        assert summary.importances.shape == (4,)
        assert summary.predictions.shape == (80,)
        assert not summary.leaf_matrix.flags.writeable

    def test_requires_apply(self):
        class NoApply:
            feature_importances_ = np.ones(2)

        with pytest.raises(TypeError, match="apply"):
            extract_leaf_matrix(NoApply(), np.ones((3, 2)))

    def test_requires_importances(self):
        class NoImportances:
            pass

        with pytest.raises(TypeError, match="feature_importances_"):
            extract_importances(NoImportances(), 2)

    def test_importance_length_mismatch(self, forest_data):
        _, _, forest = forest_data
        with pytest.raises(DataMismatchError, match="importances"):
            extract_importances(forest, 7)

    def test_non_integer_leaves_rejected(self):
        with pytest.raises(DataMismatchError, match="integer"):
            EnsembleSummary(leaf_matrix=np.array([[0.5], [1.0]]), importances=[1.0])

    def test_no_members_rejected(self):
        with pytest.raises(DataMismatchError, match="at least one"):
            EnsembleSummary(leaf_matrix=np.empty((3, 0), dtype=int), importances=[1.0])

    def test_prediction_length_mismatch(self):
        with pytest.raises(DataMismatchError, match="predictions"):
            EnsembleSummary(
                leaf_matrix=np.zeros((3, 2), dtype=int),
                importances=[1.0],
                predictions=[1.0, 2.0],
            )


class TestCreateDissimilarity:
    def test_known_values(self):
        # 3 observations, 2 trees
        leaves = np.array([[0, 0], [0, 1], [1, 1]])
        summary = EnsembleSummary(leaf_matrix=leaves, importances=[1.0])
        D = create_dissimilarity_matrix(summary).values
        expected = np.array(
            [
                [0.0, 0.5, 1.0],
                [0.5, 0.0, 0.5],
                [1.0, 0.5, 0.0],
            ]
        )
        np.testing.assert_allclose(D, expected)

    def test_missing_assignment_does_not_vote(self):
        leaves = np.array([[0, 3], [MISSING_LEAF, 3], [0, 4]])
        summary = EnsembleSummary(leaf_matrix=leaves, importances=[1.0])
        D = create_dissimilarity_matrix(summary).values
        # (0, 1): tree 0 skipped, tree 1 agrees -> 1 vote out of 2
        assert D[0, 1] == pytest.approx(0.5)
        # (0, 2): tree 0 agrees, tree 1 differs
        assert D[0, 2] == pytest.approx(0.5)
        assert D[1, 1] == 0.0

    def test_invariants(self, forest_data):
        X, _, forest = forest_data
        D = create_dissimilarity_matrix(EnsembleSummary.from_forest(forest, X))
        values = D.values
        np.testing.assert_array_equal(values, values.T)
        np.testing.assert_array_equal(np.diag(values), 0.0)
        assert values.min() >= 0.0
        assert values.max() <= 1.0
        assert D.n_members == 15

    @pytest.mark.parametrize("n_jobs", [1, 2, 3, -1])
    def test_parallel_matches_serial(self, forest_data, n_jobs):
        X, _, forest = forest_data
        summary = EnsembleSummary.from_forest(forest, X)
        serial = create_dissimilarity_matrix(summary)
        par = create_dissimilarity_matrix(
            summary, parallel=ParallelConfig(active=True, n_jobs=n_jobs)
        )
        np.testing.assert_array_equal(serial.values, par.values)

    def test_matches_proximity_definition(self, forest_data):
        X, _, forest = forest_data
        leaves = forest.apply(X)
        D = create_dissimilarity_matrix(EnsembleSummary.from_forest(forest, X))
        i, j = 3, 17
        share = np.mean(leaves[i] == leaves[j])
        assert D.values[i, j] == pytest.approx(1.0 - share)
        assert D.proximity[i, j] == pytest.approx(share)

    def test_observation_count_mismatch(self):
        summary = EnsembleSummary(leaf_matrix=np.zeros((4, 2), dtype=int), importances=[1.0])
        with pytest.raises(DataMismatchError, match="4 observations"):
            create_dissimilarity_matrix(summary, n_observations=5)

    def test_worker_failure_is_reported(self, monkeypatch):
        def _boom(leaves):
            raise MemoryError("worker ran out of memory")

        monkeypatch.setattr(dissimilarity_module, "_tree_cooccurrence", _boom)
        summary = EnsembleSummary(leaf_matrix=np.zeros((4, 3), dtype=int), importances=[1.0])
        with pytest.raises(ParallelWorkerFailure, match="out of memory") as excinfo:
            create_dissimilarity_matrix(
                summary, parallel=ParallelConfig(active=True, n_jobs=1)
            )
        assert isinstance(excinfo.value.__cause__, MemoryError)


class TestDissimilarityMatrix:
    def test_read_only(self):
        D = DissimilarityMatrix(values=np.array([[0.0, 0.2], [0.2, 0.0]]), n_members=5)
        with pytest.raises(ValueError):
            D.values[0, 1] = 0.9

    def test_rejects_non_square(self):
        with pytest.raises(DataMismatchError, match="square"):
            DissimilarityMatrix(values=np.zeros((2, 3)), n_members=1)

    def test_rejects_asymmetric(self):
        with pytest.raises(DataMismatchError, match="symmetric"):
            DissimilarityMatrix(values=np.array([[0.0, 0.1], [0.3, 0.0]]), n_members=1)

    def test_rejects_out_of_range(self):
        with pytest.raises(DataMismatchError, match=r"\[0, 1\]"):
            DissimilarityMatrix(values=np.array([[0.0, 1.5], [1.5, 0.0]]), n_members=1)

    def test_condensed_and_means(self):
        values = np.array(
            [
                [0.0, 0.2, 0.4],
                [0.2, 0.0, 0.6],
                [0.4, 0.6, 0.0],
            ]
        )
        D = DissimilarityMatrix(values=values, n_members=10)
        np.testing.assert_allclose(D.condensed(), [0.2, 0.4, 0.6])
        assert D.mean_within([0, 1, 2]) == pytest.approx(0.4)
        assert D.mean_within([1, 2]) == pytest.approx(0.6)
        assert D.mean_within([2]) == 0.0
        np.testing.assert_allclose(D.submatrix([0, 2]), [[0.0, 0.4], [0.4, 0.0]])
