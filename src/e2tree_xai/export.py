"""Flatten an explanation tree into one row per node."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pandas as pd

from .tree import InternalNode

if TYPE_CHECKING:
    from .tree import ExplanationTree

FRAME_COLUMNS = (
    "node",
    "parent",
    "depth",
    "n",
    "prediction",
    "fit_quality",
    "sse",
    "dissimilarity",
    "variable",
    "split",
    "decrease",
    "terminal",
)


def tree_to_records(tree: ExplanationTree) -> list[dict]:
    """Node rows in pre-order.

    Leaves carry ``None`` in ``variable``, ``split`` and ``decrease``. The
    ``split`` of a continuous predictor is its threshold (left on ``<=``); for
    a categorical predictor it is the tuple of labels sent left.
    """
    records: list[dict] = []
    for node in tree.nodes():
        row = {
            "node": node.node_id,
            "parent": node.parent_id,
            "depth": node.depth,
            "n": node.n_obs,
            "prediction": node.prediction,
            "fit_quality": node.fit_quality,
            "sse": node.sse,
            "dissimilarity": node.dissimilarity,
            "variable": None,
            "split": None,
            "decrease": None,
            "terminal": True,
        }
        if isinstance(node, InternalNode):
            split = node.split
            row["variable"] = split.feature
            if split.is_categorical:
                row["split"] = tree.split_labels(split)[0]
            else:
                row["split"] = split.threshold
            row["decrease"] = split.decrease
            row["terminal"] = False
        records.append(row)
    return records


def tree_to_frame(tree: ExplanationTree) -> pd.DataFrame:
    """Node table as a DataFrame with the columns of :data:`FRAME_COLUMNS`."""
    frame = pd.DataFrame.from_records(tree_to_records(tree), columns=list(FRAME_COLUMNS))
    frame["parent"] = frame["parent"].astype("Int64")
    return frame
