from __future__ import annotations

import numpy as np

from pwresponse.basis import PlaneWaveBasis
from pwresponse.hamiltonian import HamiltonianBlock
from pwresponse.response.sternheimer import sternheimer_solver
from pwresponse.typing import Array1D, Array2D


def compute_alpha(fm: float, fn: float, ratio: float) -> float:
    """Coefficient of <psi_m|dH|psi_n> in <psi_m|dpsi_n>.

    The pair (alpha_mn, alpha_nm) has the smallest norm among those
    satisfying ``fn * alpha_mn + fm * alpha_nm = ratio``, where ratio is
    the occupation divided difference.  This is finite for degenerate
    bands, gives ``fn * alpha_mn = 0`` for empty bands and reduces to
    ``1 / (em - en)`` for one full and one empty band.
    """
    if ratio == 0:
        return ratio
    return ratio * fn / (fn**2 + fm**2)


def compute_dpsi(basis: PlaneWaveBasis,
                 blocks: list[HamiltonianBlock],
                 psi: list[Array2D],
                 fermi_level: float,
                 eigenvalues: list[Array1D],
                 dHpsi: list[Array2D],
                 eigenvalues_minus_q: list[Array1D] | None = None,
                 psi_extra: list[Array2D] | None = None,
                 q_c=(0.0, 0.0, 0.0),
                 cg_tol_scale: list[Array1D] | None = None,
                 tol: float = 1e-9,
                 **kwargs) -> list[Array2D]:
    """Orbital responses of all occupied bands.

    Solves for every k-point and band n of k-q::

        (H_k - e_{n,k-q}) dpsi_{n,k} = -(1 - P_k) dH psi_{n,k-q}

    plus an explicit term inside the occupied subspace of k (only
    non-zero at finite width).

    psi, eigenvalues:
        Occupied orbitals and eigenvalues at k.
    dHpsi:
        ``dH psi_{k-q}`` for the occupied bands of k-q, in the basis of k.
    eigenvalues_minus_q:
        Occupied eigenvalues of k-q (default: same as k).
    psi_extra:
        Extra (unoccupied, computed) bands at k.
    cg_tol_scale:
        Per-band factors dividing the tolerance, indexed like
        ``eigenvalues_minus_q``.

    Remaining keyword arguments go to
    :func:`pwresponse.response.sternheimer.sternheimer_solver`.
    """
    model = basis.model
    occ = model.occupations
    filled_occ = model.filled_occupation
    if eigenvalues_minus_q is None:
        eigenvalues_minus_q = eigenvalues
    is_gamma = not np.any(q_c)
    min_tol = 0.5 * np.finfo(float).eps

    dpsi = []
    for k, (H, psit_nG, eps_n) in enumerate(zip(blocks, psi, eigenvalues)):
        eps_minus_q_n = np.asarray(eigenvalues_minus_q[k])
        dHpsit_nG = dHpsi[k]
        dpsit_nG = np.zeros((len(eps_minus_q_n), H.shape[0]), complex)

        if psi_extra is None:
            psit_extra_nG = None
            Hpsit_extra_nG = None
            eps_extra_n = None
        else:
            psit_extra_nG = psi_extra[k]
            Hpsit_extra_nG = H.apply(psit_extra_nG)
            eps_extra_n = np.einsum('nG, nG -> n', psit_extra_nG.conj(),
                                    Hpsit_extra_nG).real

        f_m = filled_occ * occ.occupation(np.asarray(eps_n), fermi_level)
        for n, eps in enumerate(eps_minus_q_n):
            fn = filled_occ * occ.occupation(eps, fermi_level)

            # Explicit part in the occupied subspace
            for m, (psit_G, em) in enumerate(zip(psit_nG, eps_n)):
                # The m == n term goes into the occupation response
                if is_gamma and m == n:
                    continue
                ratio = filled_occ * occ.divided_difference(em, eps,
                                                            fermi_level)
                alpha = compute_alpha(f_m[m], fn, ratio)
                if alpha == 0:
                    continue
                dpsit_nG[n] += (alpha * np.vdot(psit_G, dHpsit_nG[n]) *
                                psit_G)

            band_tol = tol
            if cg_tol_scale is not None:
                band_tol = tol / cg_tol_scale[k][n]
            band_tol = max(min_tol, band_tol)
            dpsit_nG[n] += sternheimer_solver(
                H, psit_nG, eps, dHpsit_nG[n],
                psit_extra_nG=psit_extra_nG,
                eps_extra_n=eps_extra_n,
                Hpsit_extra_nG=Hpsit_extra_nG,
                tol=band_tol, **kwargs)
        dpsi.append(dpsit_nG)
    return dpsi
