import functools
import math

from ..decision_tree import DecisionTree
from ..discrete import DecisionTreeFactor, DiscreteFactorGraph, \
    merge_discrete_keys
from ..gaussian import GaussianFactorGraph
from ..utils import FactorKind, factor_kind
from ._base import HybridConfigurationError, count_assignments
from .eliminate import _zero_out, eliminate_hybrid


def _add_mixture(total, mixture):
    """
    Fold step for a mixture factor: its branches join the matching leaves.
    """
    contribution = mixture.graph_tree()
    if total.is_empty():
        return contribution
    return total.apply(contribution, lambda graph, other: graph + other)


def _add_gaussian(total, factor):
    """
    Fold step for a plain Gaussian factor: it joins every leaf.
    """
    if total.is_empty():
        return DecisionTree.leaf(GaussianFactorGraph([factor]))
    return total.map(lambda graph: graph + factor)


class HybridGaussianFactorGraph:
    """
    A factor graph over discrete and continuous variables.

    Factors are sorted by kind into discrete factors, plain Gaussian factors,
    and Gaussian mixture factors. The graph only ever reads them.
    """

    def __init__(self, factors=(), **settings):
        self._discrete = []
        self._gaussian = []
        self._mixtures = []
        self._settings = settings
        self._settings.setdefault("atol", 0.)
        self._settings.setdefault("rtol", None)
        self._settings.setdefault("verbose", 0)
        self._settings.setdefault("DEBUG_MODE", False)
        self.extend(factors)

    def __repr__(self):
        return (
            f"{type(self).__name__}("
            f"discrete={self._discrete}, "
            f"gaussian={self._gaussian}, "
            f"mixtures={self._mixtures})")

    def __len__(self):
        return len(self._discrete) + len(self._gaussian) + len(self._mixtures)

    def is_debug(self):
        return self.get_setting('DEBUG_MODE', False)

    def push_back(self, factor):
        """
        Add one factor, routed by its kind.
        """
        bucket = {
            FactorKind.DISCRETE: self._discrete,
            FactorKind.CONTINUOUS: self._gaussian,
            FactorKind.MIXTURE: self._mixtures,
        }.get(factor_kind(factor))
        if bucket is None:
            raise HybridConfigurationError(
                f"cannot add {factor!r}: only discrete, Gaussian and "
                f"Gaussian mixture factors are supported")
        bucket.append(factor)

    def extend(self, factors):
        for factor in factors:
            self.push_back(factor)

    def discrete_graph(self):
        return DiscreteFactorGraph(self._discrete)

    def gaussian_graph(self):
        return GaussianFactorGraph(self._gaussian)

    def mixture_factors(self):
        return list(self._mixtures)

    def discrete_keys(self):
        """
        Every discrete key in the graph, mixtures first, in order of first
        appearance.
        """
        return merge_discrete_keys(
            *[m.discrete_keys for m in self._mixtures],
            *[f.discrete_keys for f in self._discrete])

    def continuous_keys(self):
        seen = {}
        for m in self._mixtures:
            for k in m.continuous_keys:
                seen.setdefault(k, None)
        for k in self.gaussian_graph().keys():
            seen.setdefault(k, None)
        return list(seen)

    def sum(self):
        """
        Gather all continuous evidence into one decision tree whose leaves
        are Gaussian factor graphs, one per discrete assignment.

        Returns the empty tree if there are no mixture or Gaussian factors.
        """
        total = functools.reduce(
            _add_mixture, self._mixtures, DecisionTree.empty())
        return functools.reduce(_add_gaussian, self._gaussian, total)

    def to_decision_tree_factor(self, exponentiate=False):
        """
        Discrete factor whose value at each assignment is the error of that
        branch's Gaussian graph at its least-squares optimum.
        With `exponentiate`, the value is exp(-error) instead.

        A branch holding a missing factor is emptied, as in elimination, and
        has infinite error (likelihood 0).
        """
        total = self.sum()
        if total.is_empty():
            raise ValueError("no continuous evidence to summarize")
        atol = self.get_setting("atol")
        rtol = self.get_setting("rtol")

        def graph_error(graph):
            if len(graph) == 0:
                error = math.inf
            else:
                values = graph.optimize(atol=atol, rtol=rtol)
                error = graph.error(values)
            if exponentiate:
                return math.exp(-error)
            return error

        return DecisionTreeFactor(
            self.discrete_keys(), total.map(_zero_out).map(graph_error))

    def eliminate(self, ordering):
        """
        One hybrid elimination step of the continuous `ordering` keys, using
        this graph's settings.
        """
        return eliminate_hybrid(
            self, ordering,
            atol=self.get_setting("atol"),
            rtol=self.get_setting("rtol"),
            verbose=self.get_setting("verbose"),
            DEBUG_MODE=self.is_debug(),
        )

    def diagnosis(self):
        """
        Return a dict of diagnostic information about the graph.
        """
        discrete_keys = self.discrete_keys()
        return dict(
            n_discrete=len(self._discrete),
            n_gaussian=len(self._gaussian),
            n_mixture=len(self._mixtures),
            discrete_keys=[dk.key for dk in discrete_keys],
            continuous_keys=self.continuous_keys(),
            n_assignments=count_assignments(discrete_keys),
            mixtures=[m.diagnosis() for m in self._mixtures],
        )

    def get_settings(self):
        """
        Get the settings for this factor graph
        """
        return self._settings

    def get_setting(self, key, *fallbackarg):
        """
        Get a setting for this factor graph
        """
        if len(fallbackarg) > 0:
            return self._settings.get(key, fallbackarg[0])
        return self._settings[key]

    def set_settings(self, **settings):
        """
        update the settings for this factor graph
        """
        self._settings.update(settings)
