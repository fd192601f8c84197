"""Sternheimer equation for one band at one k-point.

Solves::

    (1 - P) (H - e) (1 - P) dpsi = -(1 - P) rhs

where P projects onto the occupied orbitals.  The complement of the
occupied subspace is split into the span of the computed but
unconverged ("extra") bands and the rest (R).  Only the Schur
complement on R is solved iteratively::

    <---- P ----><------------ Q = 1 - P ---------------->
                 <-- P_extra -->
    <------ P_computed --------><-- R = 1 - P_computed -->

The extra bands must be Rayleigh-Ritz vectors of H (their Hamiltonian
matrix is real and diagonal).
"""
from __future__ import annotations

import warnings
from typing import Callable, NamedTuple

import numpy as np
from scipy.sparse.linalg import LinearOperator

from pwresponse import ConvergenceWarning
from pwresponse.basis import KPoint, PlaneWaveBasis
from pwresponse.hamiltonian import HamiltonianBlock
from pwresponse.linalg import CGInfo, CGResult, cg
from pwresponse.preconditioner import TPAPreconditioner
from pwresponse.typing import Array1D, Array2D


class SternheimerInfo(NamedTuple):
    basis: PlaneWaveBasis
    kpt: KPoint
    res: CGResult


def sternheimer_solver(H: HamiltonianBlock,
                       psit_nG: Array2D,
                       eps: float,
                       rhs_G: Array1D,
                       *,
                       psit_extra_nG: Array2D | None = None,
                       eps_extra_n: Array1D | None = None,
                       Hpsit_extra_nG: Array2D | None = None,
                       tol: float = 1e-9,
                       maxiter: int = 100,
                       callback: Callable[[SternheimerInfo], None]
                       | None = None,
                       cg_callback: Callable[[CGInfo], None] | None = None,
                       context=None) -> Array1D:
    """Response of one orbital orthogonal to the occupied ones.

    H: HamiltonianBlock
    psit_nG: ndarray
        Occupied orbitals (rows, orthonormal).
    eps: float
        Eigenvalue of the perturbed orbital.
    rhs_G: ndarray
        Right-hand side (normally dH psi).
    psit_extra_nG, eps_extra_n, Hpsit_extra_nG:
        Extra bands, their (diagonal) energies and H applied to them.
        Default is no extra bands.
    tol: float
        Absolute tolerance of the conjugate-gradient residual.

    Returns ``psit_extra_nG.T @ alpha + dpsi_R``.
    """
    ng = H.shape[0]
    rhs_G = np.asarray(rhs_G, dtype=complex)
    if psit_extra_nG is None:
        psit_extra_nG = np.zeros((0, ng), complex)
        Hpsit_extra_nG = np.zeros((0, ng), complex)
        eps_extra_n = np.zeros(0)
    elif Hpsit_extra_nG is None:
        Hpsit_extra_nG = H.apply(psit_extra_nG)
    if eps_extra_n is None:
        eps_extra_n = np.einsum('nG, nG -> n', psit_extra_nG.conj(),
                                Hpsit_extra_nG).real

    def P(phi):
        return psit_nG.T @ (psit_nG.conj() @ phi)

    def P_extra(phi):
        return psit_extra_nG.T @ (psit_extra_nG.conj() @ phi)

    def Q(phi):
        return phi - P(phi)

    def R(phi):
        return phi - P(phi) - P_extra(phi)

    def Hs(phi):
        return H.apply(phi) - eps * phi

    d_n = np.real(eps_extra_n - eps)

    # Right-hand side of the Schur complement on Ran(R):
    b_G = -Q(rhs_G)
    bb_G = R(b_G - Hpsit_extra_nG.T @ ((psit_extra_nG.conj() @ b_G) / d_n))

    def RAR(phi):
        Rphi = R(phi)
        return R(Hs(Rphi) -
                 Hpsit_extra_nG.T @ ((Hpsit_extra_nG.conj() @ Rphi) / d_n))

    tpa = TPAPreconditioner(H.kpt)
    # No natural kinetic energy: use the first occupied orbital if any
    tpa.prepare(psit_nG[0] if len(psit_nG) > 0 else None)

    def precon(r):
        return R(tpa(R(r)))

    J = LinearOperator((ng, ng), matvec=RAR, dtype=complex)
    res = cg(J, bb_G, precon=precon, proj=R, tol=tol, maxiter=maxiter,
             callback=cg_callback)
    if not res.converged:
        msg = (f'Sternheimer CG not converged: {res.niter} iterations, '
               f'tol={res.tol:.3e}, residual={res.residual_norm:.3e}')
        if context is not None:
            context.print(msg)
        warnings.warn(msg, ConvergenceWarning)
    dpsit_R = res.x
    if callback is not None:
        callback(SternheimerInfo(H.basis, H.kpt, res))

    # Coefficients of the extra bands (empty without extra bands)
    alpha_n = (psit_extra_nG.conj() @ (b_G - Hs(dpsit_R))) / d_n
    return psit_extra_nG.T @ alpha_n + dpsit_R
