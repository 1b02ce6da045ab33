import math

from ..decision_tree import DecisionTree
from ..gaussian import GaussianFactorGraph
from ..utils import FactorKind
from ._base import HybridConfigurationError


class GaussianMixtureFactor:
    """
    A Gaussian factor over `continuous_keys` whose form depends on an
    assignment of `discrete_keys`: one Gaussian factor per leaf of
    `factors`.

    A `None` leaf means that branch carries no evidence at all.
    """
    kind = FactorKind.MIXTURE

    @classmethod
    def from_factors(cls, continuous_keys, discrete_keys, factors):
        """
        Build from a list of per-assignment factors in assignment order,
        first discrete key most significant.
        """
        return cls(
            continuous_keys, discrete_keys,
            DecisionTree.from_values(discrete_keys, factors))

    def __init__(self, continuous_keys, discrete_keys, factors):
        self.continuous_keys = tuple(continuous_keys)
        self.discrete_keys = tuple(discrete_keys)
        if isinstance(factors, DecisionTree):
            declared = [dk.key for dk in self.discrete_keys]
            stray = [
                dk.key for dk in factors.discrete_keys()
                if dk.key not in declared]
            if stray:
                raise HybridConfigurationError(
                    f"factor tree branches on {stray}, which are not among "
                    f"the declared discrete keys {declared}")
        self.factors = factors

    def __repr__(self):
        return (
            f"{type(self).__name__}("
            f"{list(self.continuous_keys)}, "
            f"{[dk.key for dk in self.discrete_keys]})")

    def keys(self):
        return self.continuous_keys

    def __call__(self, assignment):
        """
        The Gaussian factor for this assignment, or None.
        """
        return self.factors(assignment)

    def graph_tree(self):
        """
        Tree of single-factor Gaussian graphs, ready to be summed.
        """
        if not isinstance(self.factors, DecisionTree) or self.factors.is_empty():
            raise HybridConfigurationError(
                f"{self!r} does not carry a decision tree of Gaussian factors")
        return self.factors.map(lambda factor: GaussianFactorGraph([factor]))

    def error(self, values, assignment):
        factor = self(assignment)
        if factor is None:
            return math.inf
        return factor.error(values)

    def diagnosis(self):
        leaves = self.factors.leaves()
        return dict(
            continuous_keys=list(self.continuous_keys),
            discrete_keys=[dk.key for dk in self.discrete_keys],
            n_leaves=len(leaves),
            n_null=sum(1 for f in leaves if f is None),
        )


class GaussianMixture:
    """
    Hybrid conditional: one Gaussian conditional per discrete assignment.

    All branches share the frontal and parent keys; only the numbers differ.
    A `None` branch had nothing to eliminate.
    """

    def __init__(self, n_frontals, continuous_keys, discrete_keys, conditionals):
        self.n_frontals = n_frontals
        self.continuous_keys = tuple(continuous_keys)
        self.discrete_keys = tuple(discrete_keys)
        self.conditionals = conditionals

    def __repr__(self):
        return (
            f"{type(self).__name__}("
            f"{list(self.frontal_keys())} | {list(self.parent_keys())}; "
            f"{[dk.key for dk in self.discrete_keys]})")

    def frontal_keys(self):
        return self.continuous_keys[:self.n_frontals]

    def parent_keys(self):
        return self.continuous_keys[self.n_frontals:]

    def __call__(self, assignment):
        return self.conditionals(assignment)

    def solve(self, parent_values, assignment):
        """
        Most likely frontal values under this assignment, or None if that
        branch had nothing to eliminate.
        """
        conditional = self(assignment)
        if conditional is None:
            return None
        return conditional.solve(parent_values)

    def error(self, values, assignment):
        conditional = self(assignment)
        if conditional is None:
            return math.inf
        return conditional.error(values)
