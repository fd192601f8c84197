"""Densities, density responses and densities of states.

All functions return globally reduced arrays of shape
``(nspins, N1, N2, N3)`` (or ``(nspins,)`` for the DOS).
"""
from __future__ import annotations

import numpy as np

from pwresponse.basis import PlaneWaveBasis, k_to_kpq_permutation
from pwresponse.occupations import OccupationNumbers
from pwresponse.typing import Array1D, ArrayND


def compute_density(basis: PlaneWaveBasis,
                    psi: list[ArrayND],
                    f_kn: list[Array1D]) -> ArrayND:
    """Electron density from orbitals and occupations (in electrons)."""
    rho_sR = basis.zeros()
    for kpt, weight, psit_nG, f_n in zip(basis.kpoints, basis.kweights,
                                         psi, f_kn):
        for psit_G, f in zip(psit_nG, f_n):
            if f == 0.0:
                continue
            psit_R = basis.ifft(kpt, psit_G)
            rho_sR[kpt.spin] += weight * f * abs(psit_R)**2
    basis.comm.sum(rho_sR)
    return basis.model.symmetry.symmetrize(rho_sR)


def compute_drho(basis: PlaneWaveBasis,
                 psi: list[ArrayND],
                 dpsi: list[ArrayND],
                 f_kn: list[Array1D],
                 df_kn: list[Array1D],
                 occupation_threshold: float,
                 q_c=(0.0, 0.0, 0.0)) -> ArrayND:
    """Density response from orbital and occupation responses.

    ``dpsi[k][n]`` is the response of band n of the k-point equivalent to
    k-q, expressed in the basis of k.  Bands with occupations below
    ``occupation_threshold`` do not contribute.  The result is real for
    q=0 and complex (the periodic part of a Bloch wave at q) otherwise.
    """
    q_c = np.asarray(q_c, dtype=float)
    is_gamma = not q_c.any()
    index_k, shift_kc = k_to_kpq_permutation(basis, -q_c)

    drho_sR = basis.zeros(dtype=complex)
    for kpt, weight, k2, shift_c, dpsit_nG in zip(basis.kpoints,
                                                  basis.kweights,
                                                  index_k, shift_kc, dpsi):
        kpt2 = basis.kpoints[k2]
        phase_R = basis.bloch_phase(shift_c) if shift_c.any() else 1.0
        for n, (psit_G, f) in enumerate(zip(psi[k2], f_kn[k2])):
            if abs(f) < occupation_threshold:
                continue
            psit_R = basis.ifft(kpt2, psit_G)
            dpsit_R = basis.ifft(kpt, dpsit_nG[n])
            drho_sR[kpt.spin] += (weight * 2 * f *
                                  psit_R.conj() * phase_R * dpsit_R)
            if is_gamma:
                drho_sR[kpt.spin] += weight * df_kn[k2][n] * abs(psit_R)**2

    basis.comm.sum(drho_sR)
    if is_gamma:
        drho_sR = drho_sR.real.copy()
    return basis.model.symmetry.symmetrize(drho_sR)


def compute_dos(fermi_level: float,
                basis: PlaneWaveBasis,
                eigenvalues: list[Array1D],
                occ: OccupationNumbers | None = None) -> Array1D:
    """Density of states per spin channel at the Fermi level."""
    occ = occ or basis.model.occupations
    filled_occ = basis.model.filled_occupation
    dos_s = np.zeros(basis.model.nspins)
    for kpt, weight, eig_n in zip(basis.kpoints, basis.kweights,
                                  eigenvalues):
        dfde_n = occ.derivative(np.asarray(eig_n), fermi_level)
        dos_s[kpt.spin] -= filled_occ * weight * dfde_n.sum()
    basis.comm.sum(dos_s)
    return dos_s


def compute_ldos(fermi_level: float,
                 basis: PlaneWaveBasis,
                 eigenvalues: list[Array1D],
                 psi: list[ArrayND],
                 occ: OccupationNumbers | None = None) -> ArrayND:
    """Local density of states at the Fermi level."""
    occ = occ or basis.model.occupations
    filled_occ = basis.model.filled_occupation
    ldos_sR = basis.zeros()
    for kpt, weight, eig_n, psit_nG in zip(basis.kpoints, basis.kweights,
                                           eigenvalues, psi):
        dfde_n = occ.derivative(np.asarray(eig_n), fermi_level)
        for psit_G, dfde in zip(psit_nG, dfde_n):
            if dfde == 0.0:
                continue
            psit_R = basis.ifft(kpt, psit_G)
            ldos_sR[kpt.spin] -= filled_occ * weight * dfde * abs(psit_R)**2
    basis.comm.sum(ldos_sR)
    return basis.model.symmetry.symmetrize(ldos_sR)
