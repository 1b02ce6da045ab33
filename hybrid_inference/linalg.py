"""
Checked dense linear algebra for Gaussian elimination.

Everything here works on plain dense tensors; we do not support batching.
"""

import torch
from torch.linalg import cholesky_ex, solve_triangular


class LinearOperatorError(Exception):
    pass


class NanError(LinearOperatorError):
    pass


class NotPSDError(LinearOperatorError):
    pass


def atol_rtol(dtype, m, n=None, atol=0.0, rtol=None):
    if rtol is not None:
        return atol, rtol
    elif rtol is None and atol > 0.0:
        return atol, 0.0
    else:
        if n is None:
            n = m
        # choose bigger of m, n
        mn = max(m, n)
        # choose based on eps for float type
        eps = torch.finfo(dtype).eps
        return 0.0, eps * mn


def symmetrize(mat):
    return 0.5 * (mat + mat.adjoint())


def cholesky_upper(mat, atol=0.0, rtol=None):
    """
    Upper triangular R with R.adjoint() @ R == mat.

    Raises NotPSDError if `mat` is not positive definite, or if some pivot is
    so small relative to the diagonal that the factor is numerically
    singular.
    """
    if torch.any(torch.isnan(mat)):
        raise NanError("NaN in matrix to factorize")
    L, info = cholesky_ex(mat)
    if info.item() != 0:
        raise NotPSDError(
            f"matrix of size {mat.shape[0]} is not positive definite "
            f"(leading minor of order {info.item()} failed)")
    atol, rtol = atol_rtol(mat.dtype, mat.shape[0], atol=atol, rtol=rtol)
    # compare squared pivots with the diagonal scale of the original matrix
    pivots2 = torch.diagonal(L) ** 2
    floor = rtol * torch.diagonal(mat).abs().max() + atol
    if torch.any(pivots2 <= floor):
        raise NotPSDError(
            f"matrix of size {mat.shape[0]} is numerically singular; "
            f"smallest squared pivot {pivots2.min().item()} <= {floor.item()}")
    return L.adjoint()


def solve_upper(R, rhs):
    """
    Solve R x = rhs for upper triangular R; rhs may be a vector.
    """
    if rhs.dim() == 1:
        return solve_triangular(R, rhs.unsqueeze(-1), upper=True).squeeze(-1)
    return solve_triangular(R, rhs, upper=True)


def solve_upper_adjoint(R, rhs):
    """
    Solve R.adjoint() x = rhs for upper triangular R; rhs may be a vector.
    """
    Rt = R.adjoint()
    if rhs.dim() == 1:
        return solve_triangular(Rt, rhs.unsqueeze(-1), upper=False).squeeze(-1)
    return solve_triangular(Rt, rhs, upper=False)
