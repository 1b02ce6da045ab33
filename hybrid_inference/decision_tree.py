"""
Decision trees keyed by discrete variables.

A tree maps every assignment of its discrete keys to a leaf value.
Internal `Choice` nodes branch on a single `DiscreteKey`; `Leaf` nodes hold
values of any type, including `None`.
Trees are immutable: `map` and `apply` build new trees and never touch the
leaves of their inputs.

An *empty* tree, with no root at all, is a legitimate value distinct from a
tree with a single leaf. It is what you get from `DecisionTree.empty()` and
means "nothing has been accumulated yet".

Assignments are plain dicts from discrete key to value index.
"""
import itertools
from collections import namedtuple

DiscreteKey = namedtuple('DiscreteKey', ['key', 'cardinality'])


class Leaf:
    __slots__ = ("value",)

    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return f"Leaf({self.value!r})"


class Choice:
    __slots__ = ("label", "branches")

    def __init__(self, label, branches):
        branches = tuple(branches)
        if len(branches) != label.cardinality:
            raise ValueError(
                f"{label} needs {label.cardinality} branches,"
                f" got {len(branches)}")
        self.label = label
        self.branches = branches

    def __repr__(self):
        return f"Choice({self.label.key}, {list(self.branches)})"


def assignments(discrete_keys):
    """
    All assignments of these discrete keys, first key most significant.
    """
    discrete_keys = list(discrete_keys)
    names = [dk.key for dk in discrete_keys]
    for values in itertools.product(
            *[range(dk.cardinality) for dk in discrete_keys]):
        yield dict(zip(names, values))


def _build(discrete_keys, fn, assignment):
    if not discrete_keys:
        return Leaf(fn(dict(assignment)))
    label, rest = discrete_keys[0], discrete_keys[1:]
    branches = []
    for i in range(label.cardinality):
        assignment[label.key] = i
        branches.append(_build(rest, fn, assignment))
    del assignment[label.key]
    return Choice(label, branches)


def _choose(node, label, index):
    """
    Restrict `node` to `label == index`.
    """
    if isinstance(node, Leaf):
        return node
    if node.label.key == label.key:
        if node.label.cardinality != label.cardinality:
            raise ValueError(
                f"cardinality mismatch for discrete key {label.key}: "
                f"{node.label.cardinality} vs {label.cardinality}")
        return _choose(node.branches[index], label, index)
    return Choice(
        node.label,
        [_choose(branch, label, index) for branch in node.branches])


def _apply(a, b, op):
    if isinstance(a, Leaf) and isinstance(b, Leaf):
        return Leaf(op(a.value, b.value))
    if isinstance(a, Choice):
        return Choice(a.label, [
            _apply(branch, _choose(b, a.label, i), op)
            for i, branch in enumerate(a.branches)])
    return Choice(b.label, [_apply(a, branch, op) for branch in b.branches])


def _map(node, fn, with_assignment, assignment):
    if isinstance(node, Leaf):
        if with_assignment:
            return Leaf(fn(dict(assignment), node.value))
        return Leaf(fn(node.value))
    branches = []
    for i, branch in enumerate(node.branches):
        assignment[node.label.key] = i
        branches.append(_map(branch, fn, with_assignment, assignment))
    del assignment[node.label.key]
    return Choice(node.label, branches)


def _labels(node, seen):
    if isinstance(node, Choice):
        seen.setdefault(node.label.key, node.label)
        for branch in node.branches:
            _labels(branch, seen)
    return seen


class DecisionTree:
    """
    Immutable decision tree over discrete assignments.
    """

    @classmethod
    def empty(cls):
        return cls(None)

    @classmethod
    def leaf(cls, value):
        """
        A tree with no keys and a single leaf.
        """
        return cls(Leaf(value))

    @classmethod
    def from_function(cls, discrete_keys, fn):
        """
        Build a tree by calling `fn(assignment)` for every assignment of
        `discrete_keys`.
        """
        return cls(_build(list(discrete_keys), fn, {}))

    @classmethod
    def from_values(cls, discrete_keys, values):
        """
        Build a tree from leaf values listed in assignment order,
        first key most significant.
        """
        discrete_keys = list(discrete_keys)
        values = list(values)
        n = 1
        for dk in discrete_keys:
            n *= dk.cardinality
        if len(values) != n:
            raise ValueError(
                f"need {n} values for keys {discrete_keys}, got {len(values)}")
        it = iter(values)
        return cls.from_function(discrete_keys, lambda assignment: next(it))

    def __init__(self, root=None):
        self.root = root

    def __repr__(self):
        if self.is_empty():
            return f"{type(self).__name__}.empty()"
        return f"{type(self).__name__}({self.root!r})"

    def is_empty(self):
        return self.root is None

    def _check_not_empty(self):
        if self.is_empty():
            raise ValueError("operation is undefined on an empty decision tree")

    def discrete_keys(self):
        """
        The discrete keys this tree branches on, in order of first appearance.
        """
        if self.is_empty():
            return []
        return list(_labels(self.root, {}).values())

    def __call__(self, assignment):
        """
        Look up the leaf value for an assignment.
        Keys the tree does not branch on are ignored.
        """
        self._check_not_empty()
        node = self.root
        while isinstance(node, Choice):
            node = node.branches[assignment[node.label.key]]
        return node.value

    def map(self, fn, with_assignment=False):
        """
        Leaf-wise transform. If `with_assignment`, call
        `fn(assignment, value)` instead of `fn(value)`; the assignment covers
        the keys on the path to that leaf.
        """
        if self.is_empty():
            return type(self).empty()
        return type(self)(_map(self.root, fn, with_assignment, {}))

    def apply(self, other, op):
        """
        Leaf-wise `op(mine, theirs)`. Trees over different keys are merged by
        restriction, so the result branches on the union of both key sets.
        """
        self._check_not_empty()
        other._check_not_empty()
        return type(self)(_apply(self.root, other.root, op))

    def unzip(self):
        """
        Split a tree of pairs into a pair of identically shaped trees.
        """
        return (
            self.map(lambda pair: pair[0]),
            self.map(lambda pair: pair[1]))

    def items(self, discrete_keys=None):
        """
        (assignment, value) for every assignment of `discrete_keys`, which
        defaults to the keys this tree branches on.
        """
        self._check_not_empty()
        if discrete_keys is None:
            discrete_keys = self.discrete_keys()
        for assignment in assignments(discrete_keys):
            yield assignment, self(assignment)

    def leaves(self):
        """
        Leaf values in depth-first order; one per tree leaf, so shared
        subtrees are not expanded to every assignment.
        """
        if self.is_empty():
            return []
        out = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            if isinstance(node, Leaf):
                out.append(node.value)
            else:
                stack.extend(reversed(node.branches))
        return out
