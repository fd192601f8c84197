from __future__ import annotations

import numpy as np

from pwresponse.basis import KPoint, PlaneWaveBasis, k_to_kpq_permutation
from pwresponse.typing import ArrayND


class HamiltonianBlock:
    """Kinetic energy plus local potential at one k-point.

    Wave functions are rows: ``psit_nG[n]`` is band n.
    """
    def __init__(self, basis: PlaneWaveBasis, kpt: KPoint, vt_R: ArrayND):
        self.basis = basis
        self.kpt = kpt
        self.vt_R = vt_R
        ng = len(kpt)
        self.shape = (ng, ng)
        self.dtype = np.dtype(complex)

    def __repr__(self):
        return f'HamiltonianBlock({self.kpt!r})'

    def apply(self, psit_xG: ArrayND) -> ArrayND:
        psit_xG = np.asarray(psit_xG)
        if psit_xG.ndim == 1:
            return self._apply(psit_xG)
        out_xG = np.empty(psit_xG.shape, complex)
        for psit_G, out_G in zip(psit_xG, out_xG):
            out_G[:] = self._apply(psit_G)
        return out_xG

    def _apply(self, psit_G):
        out_G = self.kpt.ekin_G * psit_G
        if self.vt_R is not None:
            f_R = self.basis.ifft(self.kpt, psit_G)
            f_R *= self.vt_R
            out_G += self.basis.fft(self.kpt, f_R)
        return out_G

    def __matmul__(self, psit_xG):
        return self.apply(psit_xG)

    def todense(self) -> ArrayND:
        """Dense Hermitian matrix (only for small bases)."""
        H_GG = self.apply(np.eye(self.shape[0], dtype=complex)).T
        return 0.5 * (H_GG + H_GG.conj().T)


class Hamiltonian:
    """Blocks for all k-points of the basis.

    vt_sR: ndarray, shape=(nspins, N1, N2, N3)
        Local (effective) potential in Hartree.  None means free
        electrons.
    """
    def __init__(self, basis: PlaneWaveBasis, vt_sR: ArrayND | None = None):
        self.basis = basis
        if vt_sR is not None:
            vt_sR = np.asarray(vt_sR, dtype=float)
            if vt_sR.shape != (basis.model.nspins,) + basis.fft_size:
                raise ValueError(f'Potential has shape {vt_sR.shape}, '
                                 f'expected {(basis.model.nspins,)} + '
                                 f'{basis.fft_size}')
        self.vt_sR = vt_sR
        self.blocks = [
            HamiltonianBlock(basis, kpt,
                             None if vt_sR is None else vt_sR[kpt.spin])
            for kpt in basis.kpoints]

    def __getitem__(self, k):
        return self.blocks[k]

    def __len__(self):
        return len(self.blocks)


def multiply_psi_by_blochwave(basis: PlaneWaveBasis,
                              psi: list[ArrayND],
                              dv_sR: ArrayND,
                              q_c=(0.0, 0.0, 0.0)) -> list[ArrayND]:
    """Apply a potential variation to all orbitals.

    The potential variation is ``exp(iq.r) dv_sR(r)`` with dv_sR periodic.
    Returns, for every k-point, ``dv * psi_{k-q}`` expressed in the basis
    of k (one row per band of k-q)."""
    index_k, shift_kc = k_to_kpq_permutation(basis, -np.asarray(q_c))
    dHpsi = []
    for kpt, k2, shift_c in zip(basis.kpoints, index_k, shift_kc):
        kpt2 = basis.kpoints[k2]
        dv_R = dv_sR[kpt.spin]
        if shift_c.any():
            # psi_{k-q} = exp(-iG.r) psi_{k'} in terms of periodic parts:
            dv_R = dv_R * basis.bloch_phase(-shift_c)
        psit_nG = psi[k2]
        dHpsit_nG = np.zeros((len(psit_nG), len(kpt)), complex)
        for psit_G, out_G in zip(psit_nG, dHpsit_nG):
            out_G[:] = basis.fft(kpt, basis.ifft(kpt2, psit_G) * dv_R)
        dHpsi.append(dHpsit_nG)
    return dHpsi
