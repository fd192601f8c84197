from typing import Callable, NamedTuple, Optional

import numpy as np

from pwresponse.typing import Array1D, LinearMap


class CGInfo(NamedTuple):
    niter: int
    x: Array1D
    residual_norm: float
    tol: float
    converged: bool


class CGResult(NamedTuple):
    converged: bool
    x: Array1D
    niter: int
    residual_norm: float
    tol: float
    maxiter: int


def cg(A, b: Array1D,
       precon: Optional[LinearMap] = None,
       proj: Optional[LinearMap] = None,
       tol: float = 1e-9,
       maxiter: int = 100,
       miniter: int = 0,
       callback: Optional[Callable[[CGInfo], None]] = None,
       x0: Optional[Array1D] = None) -> CGResult:
    """Projected, preconditioned conjugate gradients.

    Solves ``A x = b`` for Hermitian positive definite A on the range of
    the projector ``proj`` (b and the images of A and precon must lie in
    it).  Converged means ``|b - A x| <= tol`` after at least ``miniter``
    iterations.

    A: matrix, scipy LinearOperator or callable
    precon: callable approximating the inverse of A
    """
    if hasattr(A, 'matvec'):
        matvec = A.matvec
    elif callable(A):
        matvec = A
    else:
        matvec = A.__matmul__
    if precon is None:
        def precon(r):
            return r
    if proj is None:
        def proj(x):
            return x

    if x0 is None:
        x = np.zeros_like(b)
        r = b.copy()
    else:
        x = x0.copy()
        r = b - matvec(x)
    c = precon(r)
    gamma = np.vdot(r, c).real
    p = c.copy()

    niter = 0
    while True:
        residual_norm = np.linalg.norm(r)
        converged = niter >= miniter and residual_norm <= tol
        if callback is not None:
            callback(CGInfo(niter, x, residual_norm, tol, converged))
        if converged or niter == maxiter:
            break
        niter += 1
        c = matvec(p)
        pAp = np.vdot(p, c).real
        if pAp <= 0.0:
            break  # breakdown
        alpha = gamma / pAp
        # update iterate and residual while staying in the range of proj
        x = proj(x + alpha * p)
        r = proj(r - alpha * c)
        c = precon(r)
        gamma_prev, gamma = gamma, np.vdot(r, c).real
        beta = gamma / gamma_prev
        p = proj(c + beta * p)

    return CGResult(converged, x, niter, residual_norm, tol, maxiter)
