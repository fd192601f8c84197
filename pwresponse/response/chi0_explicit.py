"""Explicit sum-over-states chi0 for small systems.

With ``rho_mn = psi_m^* psi_n`` and ``f'`` the occupation divided
difference, the kernel in ``drho(r) = int chi0(r, r') dv(r') dr'`` is::

    chi0(r, r') = sum_k w_k sum_mn f'_mn rho_mn(r) rho_mn(r')^*
                  + LDOS(r) LDOS(r') / DOS

The last term comes from the Fermi-level shift and is only present at
finite width.  It couples the two spin channels.
"""
from __future__ import annotations

import numpy as np
from scipy.linalg import eigh

from pwresponse import ConfigurationError
from pwresponse.density import compute_dos, compute_ldos
from pwresponse.hamiltonian import Hamiltonian
from pwresponse.occupations import compute_occupations
from pwresponse.response.context import ensure_context
from pwresponse.typing import Array2D


def compute_chi0(ham: Hamiltonian,
                 temperature: float | None = None,
                 context=None) -> Array2D:
    """Dense chi0 matrix of shape ``(nspins * N, nspins * N)``.

    N is the number of grid points.  Spin channel s occupies rows and
    columns ``s * N:(s + 1) * N``.

    temperature: float
        Smearing width in Hartree (default: that of the model).
    """
    basis = ham.basis
    model = basis.model
    context = ensure_context(context)

    if not model.symmetry.is_trivial:
        raise ConfigurationError('Disable symmetries for computing chi0')

    occ = model.occupations
    if temperature is not None:
        occ = occ.new(temperature)
    filled_occ = model.filled_occupation
    nfft = basis.nfft

    with context.timer('Diagonalize'):
        eigenvalues = []
        psi = []
        for block in ham.blocks:
            eig_n, u_Gn = eigh(block.todense())
            eigenvalues.append(eig_n)
            psi.append(u_Gn.T)

    _, fermi_level = compute_occupations(basis, eigenvalues, occ,
                                         tol_n_elec=10 * np.finfo(float).eps)
    context.print(f'Fermi level: {fermi_level:.6f} Ha')

    chi0 = np.zeros((model.nspins * nfft, model.nspins * nfft))
    with context.timer('Sum over states'):
        for kpt, weight, eig_n, psit_nG in zip(basis.kpoints, basis.kweights,
                                               eigenvalues, psi):
            # Sum-over-states terms do not couple spin channels
            sl = slice(kpt.spin * nfft, (kpt.spin + 1) * nfft)
            psit_nR = np.array([basis.ifft(kpt, psit_G).ravel()
                                for psit_G in psit_nG])
            for em, psit_R in zip(eig_n, psit_nR):
                ratio_n = np.array(
                    [filled_occ * occ.divided_difference(em, en, fermi_level)
                     for en in eig_n])
                factor_n = weight * ratio_n * basis.dvol
                rho_nR = psit_R.conj() * psit_nR
                chi0[sl, sl] += ((factor_n[:, np.newaxis] * rho_nR).T @
                                 rho_nR.conj()).real
    basis.comm.sum(chi0)

    if occ.width > 0.0:
        # Fermi-level shift from globally reduced (L)DOS
        dos = compute_dos(fermi_level, basis, eigenvalues, occ).sum()
        if dos > 0.0 and model.fermi_level is None:
            ldos_x = compute_ldos(fermi_level, basis, eigenvalues, psi,
                                  occ).ravel()
            chi0 += np.outer(ldos_x, ldos_x) * basis.dvol / dos
    return chi0
