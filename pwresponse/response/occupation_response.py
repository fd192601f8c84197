from __future__ import annotations

import numpy as np

from pwresponse.basis import PlaneWaveBasis
from pwresponse.typing import Array1D, Array2D


def compute_docc(basis: PlaneWaveBasis,
                 psi: list[Array2D],
                 fermi_level: float,
                 eigenvalues: list[Array1D],
                 dHpsi: list[Array2D]) -> tuple[list[Array1D], float]:
    """Occupation and Fermi-level responses.

    With ``de_n = Re <psi_n|dH|psi_n>`` and ``f'_n = df/de``::

        df_n = f'_n (de_n - dfermi)

    where dfermi is fixed by charge conservation (zero if the Fermi level
    of the model is pinned).  Occupations do not respond at zero width.

    Returns (df_kn, dfermi).
    """
    model = basis.model
    occ = model.occupations
    df_kn = [np.zeros(len(eig_n)) for eig_n in eigenvalues]
    if model.temperature == 0.0:
        return df_kn, 0.0

    filled_occ = model.filled_occupation
    fp_kn = [filled_occ * occ.derivative(np.asarray(eig_n), fermi_level)
             for eig_n in eigenvalues]

    # Without Fermi-level shift:
    D = 0.0
    for weight, psit_nG, dHpsit_nG, fp_n, df_n in zip(basis.kweights, psi,
                                                      dHpsi, fp_kn, df_kn):
        de_n = np.einsum('nG, nG -> n', psit_nG.conj(), dHpsit_nG).real
        df_n[:] = de_n * fp_n
        D += weight * fp_n.sum()

    D = basis.comm.sum(D)  # minus the density of states
    dn = basis.comm.sum(float(sum(weight * df_n.sum()
                                  for weight, df_n in zip(basis.kweights,
                                                          df_kn))))
    if model.fermi_level is not None or D == 0.0:
        dfermi = 0.0
    else:
        dfermi = dn / D

    for fp_n, df_n in zip(fp_kn, df_kn):
        df_n -= fp_n * dfermi
    return df_kn, dfermi
