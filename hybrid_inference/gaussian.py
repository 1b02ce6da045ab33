# -*- coding: utf-8 -*-
"""Gaussian factors, conditionals and Cholesky elimination.

Loss and information-form conventions follow Joseph Ortiz's Gaussian Belief
Propagation library, https://gaussianbp.github.io/

Variables are identified by arbitrary hashable keys. Values are passed around
as dicts mapping key to a 1d tensor, with `_d` helpers to pack and unpack
them into a single vector.

Every factor here has a quadratic error

    error(x) = 0.5 x' lam x - x' eta + 0.5 f

which is nonnegative for factors that come from least-squares residuals.
"""

import math
from typing import Dict, List, Optional, Sequence

import torch

from .linalg import cholesky_upper, solve_upper, solve_upper_adjoint, \
    symmetrize
from .utils import EliminationResult, FactorKind, as_matrix, as_vector, \
    isscalar


def var_slices_d(dims):
    """
    return slices for each key, given a dict of dims in packing order
    """
    var_slices = {}
    offset = 0
    for k, dim in dims.items():
        next_offset = offset + dim
        var_slices[k] = slice(offset, next_offset)
        offset = next_offset
    return var_slices


def pack_d(values, keys):
    """
    Concatenate a dict of vectors into a single vector, in `keys` order.
    """
    if not keys:
        return torch.zeros(0, dtype=torch.get_default_dtype())
    try:
        return torch.cat([as_vector(values[k]) for k in keys])
    except KeyError as e:
        raise KeyError(f"no value for key {e.args[0]!r}") from e


def unpack_d(vec, dims):
    """
    Split a vector into a dict of vectors; inverse of `pack_d`.
    """
    return {k: vec[s] for k, s in var_slices_d(dims).items()}


class SquaredLoss():
    def __init__(self, dofs: int, diag_cov) -> None:
        """
            dofs: dofs of the measurement
            diag_cov: diagonal elements of covariance matrix, or one shared
                variance
        """
        diag_cov = as_vector(diag_cov)
        if isscalar(diag_cov) and dofs != 1:
            diag_cov = diag_cov.expand(dofs)
        assert diag_cov.shape == torch.Size([dofs])
        if torch.any(diag_cov <= 0.0):
            raise ValueError(f"variances must be positive, got {diag_cov}")
        self.dofs = dofs
        self.diag_cov = diag_cov

    def __repr__(self):
        return f"{type(self).__name__}({self.dofs}, {self.diag_cov})"

    @property
    def cov(self) -> torch.Tensor:
        return torch.diag(self.diag_cov)

    def whiten(self, t: torch.Tensor) -> torch.Tensor:
        """ Scale residual rows to unit variance. """
        scale = torch.sqrt(self.diag_cov).to(t.dtype)
        if t.dim() == 1:
            return t / scale
        return t / scale.reshape(-1, 1)


class GaussianFactor:
    """
    Base class for continuous factors over `keys`, each with dimension
    `dims[key]`.
    """
    kind = FactorKind.CONTINUOUS

    def __init__(self, keys, dims):
        self.keys = tuple(keys)
        self.dims = {k: int(dims[k]) for k in self.keys}

    def get_dim(self) -> int:
        return sum(self.dims.values())

    def hessian(self):
        """
        (lam, eta, f) in the order of `self.keys`.
        """
        raise NotImplementedError

    def error(self, values: Dict) -> float:
        lam, eta, f = self.hessian()
        x = pack_d(values, self.keys).to(lam.dtype)
        return float(0.5 * x @ lam @ x - x @ eta + 0.5 * f)

    def prob_prime(self, values: Dict) -> float:
        return math.exp(-self.error(values))


class JacobianFactor(GaussianFactor):
    """
    Linear measurement factor, 0.5 * || W (sum_k A_k x_k - b) ||^2,
    where W whitens by the (diagonal) measurement covariance.
    """
    def __init__(
            self, terms, b,
            loss: Optional[SquaredLoss] = None,
            dtype: Optional[torch.dtype] = None) -> None:
        b = as_vector(b, dtype=dtype)
        blocks = []
        dims = {}
        for k, A in terms.items():
            A = as_matrix(A, dtype=b.dtype)
            if A.shape[0] != b.shape[0]:
                raise ValueError(
                    f"block for {k!r} has {A.shape[0]} rows but b has "
                    f"{b.shape[0]}")
            blocks.append(A)
            dims[k] = A.shape[1]
        super().__init__(terms.keys(), dims)
        if blocks:
            A = torch.cat(blocks, dim=1)
        else:
            A = torch.zeros(b.shape[0], 0, dtype=b.dtype)
        if loss is not None:
            if loss.dofs != b.shape[0]:
                raise ValueError(
                    f"loss has {loss.dofs} dofs but b has {b.shape[0]}")
            A = loss.whiten(A)
            b = loss.whiten(b)
        self.A = A
        self.b = b
        self.loss = loss

    def __repr__(self):
        return f"{type(self).__name__}({list(self.keys)}, rows={self.b.shape[0]})"

    def get_residual(self, values: Dict) -> torch.Tensor:
        """ Whitened residual vector. """
        x = pack_d(values, self.keys).to(self.A.dtype)
        return self.A @ x - self.b

    def error(self, values: Dict) -> float:
        residual = self.get_residual(values)
        return float(0.5 * residual @ residual)

    def hessian(self):
        return self.A.T @ self.A, self.A.T @ self.b, self.b @ self.b


class HessianFactor(GaussianFactor):
    """
    Information-form factor, 0.5 x' lam x - x' eta + 0.5 f.
    A factor with no keys is a constant.
    """
    def __init__(self, keys, dims, lam, eta, f=0.0) -> None:
        super().__init__(keys, dims)
        n = self.get_dim()
        eta = as_vector(eta) if n > 0 else torch.as_tensor(eta).reshape(0)
        lam = torch.as_tensor(lam, dtype=eta.dtype).reshape(n, n)
        if eta.shape != torch.Size([n]):
            raise ValueError(f"eta has shape {tuple(eta.shape)}, need ({n},)")
        self.eta = eta
        self.lam = lam
        self.f = torch.as_tensor(f, dtype=eta.dtype)

    def __repr__(self):
        return f"{type(self).__name__}({list(self.keys)}, f={self.f.item():.6g})"

    def hessian(self):
        return self.lam, self.eta, self.f

    def mean(self) -> torch.Tensor:
        return torch.linalg.solve(self.lam, self.eta)

    def cov(self) -> torch.Tensor:
        return torch.inverse(self.lam)

    def mean_and_cov(self) -> List[torch.Tensor]:
        cov = self.cov()
        mean = torch.matmul(cov, self.eta)
        return [mean, cov]


class GaussianConditional:
    """
    p(x_F | x_S) with unit-noise constraint R x_F + S x_S = d,
    R upper triangular.
    """
    def __init__(self, frontal_keys, parent_keys, dims, R, S, d) -> None:
        self.frontal_keys = tuple(frontal_keys)
        self.parent_keys = tuple(parent_keys)
        self.keys = self.frontal_keys + self.parent_keys
        self.n_frontals = len(self.frontal_keys)
        self.dims = {k: int(dims[k]) for k in self.keys}
        self.R = R
        self.S = S
        self.d = d

    def __repr__(self):
        return (
            f"{type(self).__name__}("
            f"{list(self.frontal_keys)} | {list(self.parent_keys)})")

    def _frontal_dims(self):
        return {k: self.dims[k] for k in self.frontal_keys}

    def _parent_vec(self, parent_values):
        return pack_d(parent_values, self.parent_keys).to(self.R.dtype)

    def solve(self, parent_values: Optional[Dict] = None) -> Dict:
        """ Most likely frontal values given the parents. """
        if parent_values is None:
            parent_values = {}
        rhs = self.d
        if self.parent_keys:
            rhs = rhs - self.S @ self._parent_vec(parent_values)
        return unpack_d(solve_upper(self.R, rhs), self._frontal_dims())

    def error(self, values: Dict) -> float:
        residual = self.R @ pack_d(values, self.frontal_keys).to(self.R.dtype) - self.d
        if self.parent_keys:
            residual = residual + self.S @ self._parent_vec(values)
        return float(0.5 * residual @ residual)

    def mean_and_cov(self, parent_values: Optional[Dict] = None) -> List[torch.Tensor]:
        mean = pack_d(self.solve(parent_values), self.frontal_keys)
        Rinv = solve_upper(
            self.R, torch.eye(self.R.shape[0], dtype=self.R.dtype))
        return [mean, Rinv @ Rinv.adjoint()]


class GaussianFactorGraph:
    """
    An ordered collection of Gaussian factors.

    `None` entries are allowed; they stand for branches without evidence
    and are skipped by everything except `has_null` and `len`.
    """
    def __init__(self, factors: Sequence = ()) -> None:
        self.factors = list(factors)

    def __repr__(self):
        return f"{type(self).__name__}({self.factors})"

    def __len__(self):
        return len(self.factors)

    def __iter__(self):
        return iter(self.factors)

    def __getitem__(self, i):
        return self.factors[i]

    def __add__(self, other):
        """
        New graph with a factor, or every factor of another graph, appended.
        """
        if isinstance(other, GaussianFactorGraph):
            return type(self)(self.factors + other.factors)
        return type(self)(self.factors + [other])

    def push_back(self, factor) -> None:
        self.factors.append(factor)

    def has_null(self) -> bool:
        return any(factor is None for factor in self.factors)

    def keys(self) -> List:
        """ Keys in order of first appearance. """
        seen = {}
        for factor in self.factors:
            if factor is None:
                continue
            for k in factor.keys:
                seen.setdefault(k, None)
        return list(seen)

    def dims(self) -> Dict:
        dims = {}
        for factor in self.factors:
            if factor is None:
                continue
            for k, dim in factor.dims.items():
                if dims.setdefault(k, dim) != dim:
                    raise ValueError(
                        f"key {k!r} has inconsistent dims {dims[k]} and {dim}")
        return dims

    def get_joint(self, keys: Optional[Sequence] = None) -> HessianFactor:
        """
            Get the joint information form over `keys` (default: all keys in
            order of appearance).
        """
        all_dims = self.dims()
        if keys is None:
            keys = list(all_dims)
        dims = {k: all_dims[k] for k in keys}
        var_ix = var_slices_d(dims)
        dim = sum(dims.values())
        dtype = None
        lam = eta = f = None
        for factor in self.factors:
            if factor is None:
                continue
            f_lam, f_eta, f_f = factor.hessian()
            if lam is None:
                dtype = f_eta.dtype
                lam = torch.zeros(dim, dim, dtype=dtype)
                eta = torch.zeros(dim, dtype=dtype)
                f = torch.zeros((), dtype=dtype)
            f = f + f_f
            if not factor.keys:
                continue
            ix = torch.cat([
                torch.arange(var_ix[k].start, var_ix[k].stop)
                for k in factor.keys])
            lam[ix.unsqueeze(1), ix.unsqueeze(0)] += f_lam.to(dtype)
            eta[ix] += f_eta.to(dtype)
        if lam is None:
            lam = torch.zeros(dim, dim)
            eta = torch.zeros(dim)
            f = torch.zeros(())
        return HessianFactor(keys, dims, lam, eta, f)

    def optimize(self, atol=0.0, rtol=None) -> Dict:
        """ Least-squares MAP estimate of every key in the graph. """
        joint = self.get_joint()
        if not joint.keys:
            return {}
        R = cholesky_upper(joint.lam, atol=atol, rtol=rtol)
        x = solve_upper(R, solve_upper_adjoint(R, joint.eta))
        return unpack_d(x, joint.dims)

    def error(self, values: Dict) -> float:
        """ Sum of factor errors. """
        return sum(
            factor.error(values) for factor in self.factors
            if factor is not None)

    def prob_prime(self, values: Dict) -> float:
        return math.exp(-self.error(values))

    def eliminate_cholesky(
            self, ordering, separator=None, atol=0.0, rtol=None):
        return eliminate_cholesky(
            self, ordering, separator=separator, atol=atol, rtol=rtol)


def eliminate_cholesky(graph, ordering, separator=None, atol=0.0, rtol=None):
    """
    Eliminate the `ordering` keys from `graph` as one frontal block.

    Returns EliminationResult(GaussianConditional, HessianFactor); the factor
    is over the remaining (separator) keys, in `separator` order if given.
    An empty graph gives EliminationResult(None, None).
    Raises NotPSDError if the frontal block is not positive definite.
    """
    if len(graph) == 0:
        return EliminationResult(None, None)
    ordering = list(ordering)
    if not ordering:
        raise ValueError("nothing to eliminate: empty ordering")
    keys = graph.keys()
    missing = [k for k in ordering if k not in keys]
    if missing:
        raise KeyError(f"ordering keys {missing} not in graph")
    remaining = [k for k in keys if k not in ordering]
    if separator is None:
        separator = remaining
    else:
        separator = list(separator)
        if set(separator) != set(remaining):
            raise KeyError(
                f"separator {separator} does not match remaining keys "
                f"{remaining}")
    joint = graph.get_joint(ordering + separator)
    dims = joint.dims
    n_f = sum(dims[k] for k in ordering)
    lam, eta = joint.lam, joint.eta

    R = cholesky_upper(lam[:n_f, :n_f], atol=atol, rtol=rtol)
    if separator:
        S = solve_upper_adjoint(R, lam[:n_f, n_f:])
    else:
        S = torch.zeros(n_f, 0, dtype=lam.dtype)
    d = solve_upper_adjoint(R, eta[:n_f])
    conditional = GaussianConditional(ordering, separator, dims, R, S, d)

    # Schur complement onto the separator
    new_lam = symmetrize(lam[n_f:, n_f:] - S.adjoint() @ S)
    new_eta = eta[n_f:] - S.adjoint() @ d
    # the minimum of a least-squares residual cannot be negative
    new_f = torch.clamp(joint.f - d @ d, min=0.0)
    factor = HessianFactor(
        separator, {k: dims[k] for k in separator}, new_lam, new_eta, new_f)
    return EliminationResult(conditional, factor)
