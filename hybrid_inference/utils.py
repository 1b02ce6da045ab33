from collections import namedtuple
from enum import Enum

import torch


class FactorKind(Enum):
    """
    The closed set of factor kinds a hybrid graph knows how to hold.
    Every factor class carries one of these as its `kind` attribute.
    """
    DISCRETE = "discrete"
    CONTINUOUS = "continuous"
    MIXTURE = "mixture"


class EliminationResult(namedtuple(
        'EliminationResult', ['conditional', 'factor'])):
    """
    (conditional, remainder factor) pair produced by one elimination.

    `EliminationResult(None, None)` means nothing was eliminated, which is
    not the same thing as an elimination that produced an empty factor.
    """
    __slots__ = ()

    def is_empty(self):
        return self.conditional is None and self.factor is None


def factor_kind(factor):
    """
    what kind of factor is this? `None` if it does not say.
    """
    kind = getattr(factor, "kind", None)
    if isinstance(kind, FactorKind):
        return kind
    return None


def isscalar(v):
    """
    how is this not a builtin?
    """
    v = torch.as_tensor(v)
    return (
        v.shape == torch.Size([]) or
        v.shape == torch.Size([1]))


def _dtype_for(v, dtype):
    """
    Keep the dtype of floating tensors unless told otherwise.
    """
    if dtype is not None:
        return dtype
    if isinstance(v, torch.Tensor) and v.is_floating_point():
        return v.dtype
    return torch.get_default_dtype()


def as_vector(v, dtype=None):
    """
    Upcast scalars and lists to a 1d tensor.
    """
    v = torch.as_tensor(v, dtype=_dtype_for(v, dtype))
    if v.dim() == 0:
        v = v.reshape(1)
    elif v.dim() != 1:
        raise ValueError(f"expected a vector, got shape {tuple(v.shape)}")
    return v


def as_matrix(m, dtype=None):
    """
    Upcast scalars and vectors to a 2d tensor; a vector becomes a column.
    """
    m = torch.as_tensor(m, dtype=_dtype_for(m, dtype))
    if m.dim() == 0:
        m = m.reshape(1, 1)
    elif m.dim() == 1:
        m = m.reshape(-1, 1)
    elif m.dim() != 2:
        raise ValueError(f"expected a matrix, got shape {tuple(m.shape)}")
    return m
