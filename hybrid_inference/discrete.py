"""
Discrete factors and elimination.

Potentials are stored as decision trees of floats. Elimination is the usual
product-then-reduce: max-product for MPE, sum-product for marginals.
"""
import math
import operator

import torch

from .decision_tree import DecisionTree, DiscreteKey, assignments
from .utils import EliminationResult, FactorKind

__all__ = [
    'DiscreteKey',
    'DecisionTreeFactor',
    'DiscreteConditional',
    'DiscreteFactorGraph',
    'eliminate_for_mpe',
    'eliminate_discrete',
    'merge_discrete_keys',
]


def merge_discrete_keys(*key_lists):
    """
    Union of discrete key lists, in order of first appearance.
    The same key must always come with the same cardinality.
    """
    merged = {}
    for key_list in key_lists:
        for dk in key_list:
            seen = merged.setdefault(dk.key, dk)
            if seen.cardinality != dk.cardinality:
                raise ValueError(
                    f"discrete key {dk.key!r} has cardinality "
                    f"{seen.cardinality} and {dk.cardinality}")
    return list(merged.values())


def _safe_div(a, b):
    if b == 0.0:
        return 0.0
    return a / b


class DecisionTreeFactor:
    """
    A nonnegative potential over discrete keys.
    """
    kind = FactorKind.DISCRETE

    def __init__(self, discrete_keys, tree):
        self.discrete_keys = tuple(
            dk if isinstance(dk, DiscreteKey) else DiscreteKey(*dk)
            for dk in discrete_keys)
        if not isinstance(tree, DecisionTree):
            tree = DecisionTree.from_values(self.discrete_keys, tree)
        if tree.is_empty():
            raise ValueError("a discrete factor needs a non-empty tree")
        unknown = [
            dk.key for dk in tree.discrete_keys()
            if dk.key not in self.keys()]
        if unknown:
            raise ValueError(
                f"tree branches on keys {unknown} not in {self.keys()}")
        self.tree = tree

    def __repr__(self):
        return f"{type(self).__name__}({list(self.keys())})"

    def keys(self):
        return tuple(dk.key for dk in self.discrete_keys)

    def discrete_key(self, key):
        for dk in self.discrete_keys:
            if dk.key == key:
                return dk
        raise KeyError(f"no discrete key {key!r} in {self.keys()}")

    def __call__(self, assignment):
        return float(self.tree(assignment))

    def error(self, assignment):
        value = self(assignment)
        if value <= 0.0:
            return math.inf
        return -math.log(value)

    def _combine(self, other, op):
        keys = merge_discrete_keys(self.discrete_keys, other.discrete_keys)
        return DecisionTreeFactor(keys, self.tree.apply(other.tree, op))

    def __mul__(self, other):
        return self._combine(other, operator.mul)

    def __truediv__(self, other):
        """ Leaf-wise division with 0/0 == 0. """
        return self._combine(other, _safe_div)

    def _reduce(self, keys, op):
        keys = list(keys)
        frontal = [self.discrete_key(k) for k in keys]
        rest = [dk for dk in self.discrete_keys if dk.key not in keys]

        def reduce_frontal(assignment):
            return op([
                self({**assignment, **frontal_assignment})
                for frontal_assignment in assignments(frontal)])

        return DecisionTreeFactor(
            rest, DecisionTree.from_function(rest, reduce_frontal))

    def max(self, keys):
        """ Max out `keys`, returning a factor over the rest. """
        return self._reduce(keys, max)

    def sum(self, keys):
        """ Sum out `keys`, returning a factor over the rest. """
        return self._reduce(keys, math.fsum)

    def reorder(self, discrete_keys):
        """ Same potential, branching on keys in the given order. """
        discrete_keys = list(discrete_keys)
        if {dk.key for dk in discrete_keys} != set(self.keys()):
            raise ValueError(
                f"cannot reorder {self.keys()} as {discrete_keys}")
        return DecisionTreeFactor(
            discrete_keys, DecisionTree.from_function(discrete_keys, self))

    def normalize(self):
        total = self.sum(self.keys())(dict())
        if total <= 0.0:
            raise ValueError("cannot normalize a factor with zero mass")
        return DecisionTreeFactor(
            self.discrete_keys, self.tree.map(lambda v: v / total))

    def to_tensor(self, dtype=None):
        """
        Dense table with one axis per discrete key, in key order.
        """
        if dtype is None:
            dtype = torch.get_default_dtype()
        values = [self(a) for a in assignments(self.discrete_keys)]
        shape = [dk.cardinality for dk in self.discrete_keys]
        return torch.tensor(values, dtype=dtype).reshape(shape)


class DiscreteConditional(DecisionTreeFactor):
    """
    P(frontals | parents). The first `n_frontals` discrete keys of `factor`
    are the frontal keys.
    """
    def __init__(self, n_frontals, factor):
        super().__init__(factor.discrete_keys, factor.tree)
        self.n_frontals = n_frontals

    def __repr__(self):
        return (
            f"{type(self).__name__}("
            f"{[dk.key for dk in self.frontal_keys()]} | "
            f"{[dk.key for dk in self.parent_keys()]})")

    def frontal_keys(self):
        return self.discrete_keys[:self.n_frontals]

    def parent_keys(self):
        return self.discrete_keys[self.n_frontals:]

    def argmax(self, parent_assignment=None):
        """
        Most probable frontal assignment given the parents; ties go to the
        first in enumeration order.
        """
        if parent_assignment is None:
            parent_assignment = {}
        best, best_value = None, -math.inf
        for frontal_assignment in assignments(self.frontal_keys()):
            value = self({**parent_assignment, **frontal_assignment})
            if value > best_value:
                best, best_value = frontal_assignment, value
        return best


class DiscreteFactorGraph:
    def __init__(self, factors=()):
        self.factors = list(factors)

    def __repr__(self):
        return f"{type(self).__name__}({self.factors})"

    def __len__(self):
        return len(self.factors)

    def __iter__(self):
        return iter(self.factors)

    def push_back(self, factor):
        self.factors.append(factor)

    def discrete_keys(self):
        return merge_discrete_keys(
            *[factor.discrete_keys for factor in self.factors])

    def product(self):
        """
        Product of all factors; the unit factor if there are none.
        """
        product = DecisionTreeFactor((), DecisionTree.leaf(1.0))
        for factor in self.factors:
            product = product * factor
        return product


def _eliminate(factors, ordering, reduction):
    ordering = list(ordering)
    product = DiscreteFactorGraph(factors).product()
    missing = [k for k in ordering if k not in product.keys()]
    if missing:
        raise KeyError(f"ordering keys {missing} not in discrete factors")
    frontal = [product.discrete_key(k) for k in ordering]
    separator = [dk for dk in product.discrete_keys if dk.key not in ordering]
    reduced = reduction(product, ordering)
    conditional = DiscreteConditional(
        len(frontal), (product / reduced).reorder(frontal + separator))
    return EliminationResult(conditional, reduced)


def eliminate_for_mpe(factors, ordering):
    """
    Max-product elimination of the `ordering` keys.
    Returns EliminationResult(DiscreteConditional, DecisionTreeFactor); keys
    not in the ordering stay in the separator factor.
    """
    return _eliminate(factors, ordering, DecisionTreeFactor.max)


def eliminate_discrete(factors, ordering):
    """
    Sum-product elimination of the `ordering` keys.
    """
    return _eliminate(factors, ordering, DecisionTreeFactor.sum)
