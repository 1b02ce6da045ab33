"""
Helper functions to make contrived test problems.
"""

import torch

from .decision_tree import DiscreteKey
from .discrete import DecisionTreeFactor
from .gaussian import JacobianFactor, SquaredLoss
from .hybrid import GaussianMixtureFactor, HybridGaussianFactorGraph

##
## continuous factors
##

def make_prior(key, mean, var=1.0, dim=1, dtype=None):
    """
    x ~ N(mean, var I), as a Jacobian factor
    """
    if dtype is None:
        dtype = torch.get_default_dtype()
    mean = torch.as_tensor(mean, dtype=dtype).expand(dim).clone()
    return JacobianFactor(
        {key: torch.eye(dim, dtype=dtype)}, mean,
        loss=SquaredLoss(dim, var))


def make_between(key1, key2, offset, var=1.0, dim=1, dtype=None):
    """
    x2 - x1 ~ N(offset, var I)
    """
    if dtype is None:
        dtype = torch.get_default_dtype()
    offset = torch.as_tensor(offset, dtype=dtype).expand(dim).clone()
    eye = torch.eye(dim, dtype=dtype)
    return JacobianFactor(
        {key1: -eye, key2: eye}, offset,
        loss=SquaredLoss(dim, var))


def make_contradiction(key, a, b, var=1.0, dtype=None):
    """
    Two measurements of a scalar x in one factor, x=a and x=b.
    At the optimum the error is (a-b)^2 / (4 var).
    """
    if dtype is None:
        dtype = torch.get_default_dtype()
    return JacobianFactor(
        {key: torch.ones(2, 1, dtype=dtype)},
        torch.tensor([a, b], dtype=dtype),
        loss=SquaredLoss(2, var))

##
## hybrid graphs
##

def make_mode_switch_graph(contradiction=10.0, dtype=None, **settings):
    """
    One binary mode D over a scalar x.
    D=0 is a single measurement x=0, which fits perfectly;
    D=1 adds the conflicting measurement x=`contradiction`.
    """
    D = DiscreteKey("D", 2)
    mixture = GaussianMixtureFactor.from_factors(
        ["x"], [D], [
            make_prior("x", 0.0, dtype=dtype),
            make_contradiction("x", 0.0, contradiction, dtype=dtype),
        ])
    return HybridGaussianFactorGraph([mixture], **settings), D


def make_discrete_only_graph(**settings):
    """
    Discrete factors only, over D1 (binary) and D2 (ternary).
    """
    D1 = DiscreteKey("D1", 2)
    D2 = DiscreteKey("D2", 3)
    f1 = DecisionTreeFactor([D1], [0.3, 0.7])
    f12 = DecisionTreeFactor([D1, D2], [0.2, 0.5, 0.3, 0.6, 0.1, 0.3])
    return HybridGaussianFactorGraph([f1, f12], **settings), D1, D2


def make_partially_empty_graph(dtype=None, **settings):
    """
    One binary mode D over x, where the D=1 branch has no factor at all.
    """
    D = DiscreteKey("D", 2)
    mixture = GaussianMixtureFactor.from_factors(
        ["x"], [D], [make_prior("x", 1.0, dtype=dtype), None])
    return HybridGaussianFactorGraph([mixture], **settings), D


def make_chain_mixture_graph(offsets=(0.0, 1.0), dtype=None, **settings):
    """
    x ~ N(0, 1) and a binary mode D choosing the offset of y - x.
    Eliminating x leaves y as a continuous separator.
    """
    D = DiscreteKey("D", len(offsets))
    mixture = GaussianMixtureFactor.from_factors(
        ["x", "y"], [D],
        [make_between("x", "y", offset, dtype=dtype) for offset in offsets])
    graph = HybridGaussianFactorGraph(
        [make_prior("x", 0.0, dtype=dtype), mixture], **settings)
    return graph, D


def make_two_mode_graph(dtype=None, **settings):
    """
    Two independent binary modes over one scalar x:
    A picks the prior mean, B the measurement noise.
    """
    A = DiscreteKey("A", 2)
    B = DiscreteKey("B", 2)
    prior = GaussianMixtureFactor.from_factors(
        ["x"], [A],
        [make_prior("x", 0.0, dtype=dtype), make_prior("x", 2.0, dtype=dtype)])
    measurement = GaussianMixtureFactor.from_factors(
        ["x"], [B],
        [make_prior("x", 1.0, var=0.5, dtype=dtype),
         make_prior("x", 1.0, var=4.0, dtype=dtype)])
    return HybridGaussianFactorGraph([prior, measurement], **settings), A, B
