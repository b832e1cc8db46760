"""Data classes for the IF-THEN rules read off an explanation tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Condition:
    """A single split condition, e.g. ``rm <= 6.94`` or ``origin in {1, 2}``.

    ``threshold`` is a float for ``"<="``/``">"`` and a tuple of category
    labels for ``"in"``/``"not in"``.
    """

    feature: str
    operator: str  # "<=", ">", "in" or "not in"
    threshold: Union[float, tuple]

    def __str__(self) -> str:
        if self.operator in ("in", "not in"):
            labels = ", ".join(str(v) for v in self.threshold)
            return f"{self.feature} {self.operator} {{{labels}}}"
        return f"{self.feature} {self.operator} {self.threshold:.4f}"


@dataclass(frozen=True)
class Rule:
    """An IF-THEN rule for one leaf of the explanation tree.

    Parameters
    ----------
    conditions : tuple of Condition
        The conjunction of split predicates leading to this leaf.
    prediction : float
        Mean response of the leaf.
    samples : int
        Number of training observations in the leaf.
    leaf_id : int
        Node id of the leaf.
    fit_quality : float
        NMSE of the leaf relative to the whole training response.
    """

    conditions: tuple[Condition, ...]
    prediction: float
    samples: int
    leaf_id: int
    fit_quality: float = 0.0

    def __str__(self) -> str:
        if self.conditions:
            antecedent = " AND ".join(str(c) for c in self.conditions)
        else:
            antecedent = "TRUE"
        return (
            f"IF {antecedent} THEN value = {self.prediction:.4f}"
            f"  [samples={self.samples}]"
        )


@dataclass(frozen=True)
class RuleSet:
    """Ordered collection of rules, one per leaf, in pre-order."""

    rules: tuple[Rule, ...]
    feature_names: tuple[str, ...]

    @property
    def num_rules(self) -> int:
        return len(self.rules)

    @property
    def avg_conditions(self) -> float:
        if not self.rules:
            return 0.0
        return sum(len(r.conditions) for r in self.rules) / len(self.rules)

    @property
    def max_conditions(self) -> int:
        if not self.rules:
            return 0
        return max(len(r.conditions) for r in self.rules)

    @property
    def interaction_strength(self) -> float:
        """Fraction of rules that reference more than one distinct feature."""
        if not self.rules:
            return 0.0
        multi = sum(
            1
            for r in self.rules
            if len({c.feature for c in r.conditions}) > 1
        )
        return multi / len(self.rules)

    def rule_for_leaf(self, leaf_id: int) -> Rule:
        for rule in self.rules:
            if rule.leaf_id == leaf_id:
                return rule
        raise KeyError(f"No rule for leaf {leaf_id}")

    def to_text(self) -> str:
        """Render every rule as a human-readable string."""
        lines: list[str] = []
        for i, rule in enumerate(self.rules, 1):
            lines.append(f"Rule {i}: {rule}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.to_text()
