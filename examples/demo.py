#!/usr/bin/env python3
"""Demo: explain a random forest regressor on the diabetes dataset.

Grows one explanation tree from the forest's leaf co-occurrence structure,
prints its rules and comparison report, then checks the tree against the
ensemble dissimilarity with a Mantel test.
"""

import logging

from sklearn.datasets import load_diabetes
from sklearn.ensemble import RandomForestRegressor
from sklearn.model_selection import train_test_split

from e2tree_xai import EnsembleExplainer, ParallelConfig, Settings

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

# ── Data ────────────────────────────────────────────────────────────────
data = load_diabetes()
X_train, X_test, y_train, y_test = train_test_split(
    data.data, data.target, test_size=0.25, random_state=0
)
feature_names = list(data.feature_names)

# ── Forest to explain ───────────────────────────────────────────────────
forest = RandomForestRegressor(n_estimators=200, min_samples_leaf=5, random_state=0)
forest.fit(X_train, y_train)

# ── Explain ─────────────────────────────────────────────────────────────
explainer = EnsembleExplainer(forest, feature_names)
result = explainer.explain(
    X_train,
    y_train,
    settings=Settings(imp_total=0.5, n=10, level=4),
    parallel=ParallelConfig(active=True),
    X_val=X_test,
    y_val=y_test,
)

mantel = explainer.validate(result, permutations=199, random_state=0)

print(result)
print()
print(mantel)
print()
print(result.to_frame().to_string(index=False))
