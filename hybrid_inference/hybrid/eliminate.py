"""
A single hybrid elimination step.

The continuous evidence of a hybrid graph is summed into a decision tree of
Gaussian graphs, each branch is Cholesky-eliminated on its own, and the
per-branch results are reassembled into a Gaussian mixture conditional plus
a remainder: a discrete factor if no continuous separator is left, else a
Gaussian mixture factor over the separator.

Graphs with no continuous evidence at all fall back to discrete MPE
elimination.
"""
import math
import warnings
from time import perf_counter

from ..discrete import DecisionTreeFactor, eliminate_for_mpe
from ..gaussian import GaussianFactorGraph, eliminate_cholesky
from ..utils import EliminationResult
from ._base import HybridEliminationError, KeyInvarianceError, \
    _assignment_name, count_assignments
from .mixture import GaussianMixture, GaussianMixtureFactor


def _zero_out(graph):
    """
    A branch holding a missing factor has no evidence, so it is emptied.
    """
    if graph.has_null():
        return GaussianFactorGraph()
    return graph


def _representative_keys(total, ordering):
    """
    Frontal and separator keys, read off the first non-empty branch.
    """
    for graph in total.leaves():
        if len(graph) == 0:
            continue
        keys = graph.keys()
        missing = [k for k in ordering if k not in keys]
        if missing:
            raise KeyInvarianceError(
                f"ordering keys {missing} do not appear in branch with "
                f"keys {keys}")
        return tuple(ordering), tuple(k for k in keys if k not in ordering)
    raise HybridEliminationError(
        "no discrete branch has continuous evidence to eliminate")


def _check_keys(assignment, graph, frontal_keys, separator_keys):
    keys = set(graph.keys())
    frontal = set(frontal_keys)
    if not frontal <= keys or keys - frontal != set(separator_keys):
        raise KeyInvarianceError(
            f"branch {_assignment_name(assignment)} has keys "
            f"{sorted(map(str, keys))}, expected frontals "
            f"{list(frontal_keys)} and separator {list(separator_keys)}")


def _likelihood(factor):
    """
    exp(-error) of a keyless remainder; a missing remainder has likelihood 0.
    """
    if factor is None:
        return 0.0
    return math.exp(-factor.error({}))


def eliminate_hybrid(
        factors, ordering,
        atol=0.0, rtol=None,
        verbose=0,
        DEBUG_MODE=False):
    """
    Eliminate the continuous `ordering` keys from a hybrid graph as one
    frontal block.

    Returns EliminationResult(conditional, factor). Normally the conditional
    is a GaussianMixture and the factor a DecisionTreeFactor (no continuous
    separator left) or a GaussianMixtureFactor (over the separator). If the
    graph has no continuous evidence, this is `eliminate_for_mpe` of its
    discrete factors instead.

    Per-branch numerical failures (NotPSDError) propagate unchanged.
    """
    start_time = perf_counter()
    ordering = list(ordering)
    total = factors.sum()
    if total.is_empty():
        if verbose > 0:
            print(f"no continuous evidence; MPE-eliminating {ordering}")
        return eliminate_for_mpe(factors.discrete_graph(), ordering)

    total = total.map(_zero_out)
    frontal_keys, separator_keys = _representative_keys(total, ordering)

    def eliminate(assignment, graph):
        if len(graph) == 0:
            if verbose > 1:
                warnings.warn(
                    f"branch {_assignment_name(assignment)} has no "
                    f"continuous evidence")
            return EliminationResult(None, None)
        _check_keys(assignment, graph, frontal_keys, separator_keys)
        result = eliminate_cholesky(
            graph, ordering, separator=separator_keys, atol=atol, rtol=rtol)
        ## DEBUG
        if DEBUG_MODE:
            assert result.conditional.keys == frontal_keys + separator_keys
            assert result.factor.keys == separator_keys
        ## END DEBUG
        return result

    results = total.map(eliminate, with_assignment=True)
    conditionals, separator_factors = results.unzip()

    discrete_keys = factors.discrete_keys()
    conditional = GaussianMixture(
        len(ordering), frontal_keys + separator_keys,
        discrete_keys, conditionals)

    if not separator_keys:
        remainder = DecisionTreeFactor(
            discrete_keys, separator_factors.map(_likelihood))
        if all(v == 0.0 for v in remainder.tree.leaves()):
            warnings.warn("every discrete branch has zero likelihood")
    else:
        remainder = GaussianMixtureFactor(
            separator_keys, discrete_keys, separator_factors)

    if verbose > 0:
        print(
            f"eliminated {ordering} over "
            f"{count_assignments(total.discrete_keys())} branches "
            f"in {perf_counter() - start_time:.3g}s; "
            f"separator {list(separator_keys)}")
    return EliminationResult(conditional, remainder)
