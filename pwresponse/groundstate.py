from __future__ import annotations

import numpy as np
from scipy.linalg import eigh

from pwresponse.density import compute_density
from pwresponse.hamiltonian import Hamiltonian
from pwresponse.occupations import OccupationNumbers, compute_occupations
from pwresponse.typing import Array1D, ArrayND, DTypeLike


def default_occupation_threshold(dtype: DTypeLike = float) -> float:
    """Bands with smaller occupations are treated as empty."""
    eps = np.finfo(dtype).eps
    return max(1e-6, 100 * eps)


class GroundState:
    """Converged Kohn-Sham ground state.

    ham: Hamiltonian
    psi: list of ndarray
        Orbitals ``psit_nG`` (one row per band) for every k-point.
    occupations: list of ndarray
        Occupation numbers in electrons (0 to filled occupation).
    fermi_level: float
        Hartree.
    eigenvalues: list of ndarray
    occupation_threshold: float
        Bands with occupations below this are response-wise "extra" bands.
    """
    def __init__(self,
                 ham: Hamiltonian,
                 psi: list[ArrayND],
                 occupations: list[Array1D],
                 fermi_level: float,
                 eigenvalues: list[Array1D],
                 occupation_threshold: float | None = None):
        self.ham = ham
        self.psi = psi
        self.occupations = occupations
        self.fermi_level = fermi_level
        self.eigenvalues = eigenvalues
        if occupation_threshold is None:
            occupation_threshold = default_occupation_threshold()
        self.occupation_threshold = occupation_threshold

    @property
    def basis(self):
        return self.ham.basis

    @property
    def nbands(self) -> int:
        return min(len(eig_n) for eig_n in self.eigenvalues)

    def __str__(self):
        from ase.units import Ha
        return (f'GroundState: {len(self.psi)} k-points, '
                f'{self.nbands} bands, '
                f'Fermi level={self.fermi_level * Ha:.5f} eV')

    def density(self) -> ArrayND:
        return compute_density(self.basis, self.psi, self.occupations)

    def chi0_context(self, q_c=(0.0, 0.0, 0.0), cg_tol_type='hdmd',
                     context=None):
        """Band partition and tolerance scales for repeated responses."""
        from pwresponse.response.chi0 import ApplyChi0Context
        return ApplyChi0Context(self.ham, self.psi, self.occupations,
                                self.fermi_level, self.eigenvalues,
                                occupation_threshold=self.occupation_threshold,
                                q_c=q_c, cg_tol_type=cg_tol_type,
                                context=context)

    def apply_chi0(self, dv_sR: ArrayND, **kwargs) -> ArrayND:
        """Density response to the potential variation dv_sR.

        See :func:`pwresponse.response.chi0.apply_chi0` for the keyword
        arguments."""
        from pwresponse.response.chi0 import apply_chi0
        kwargs.setdefault('occupation_threshold', self.occupation_threshold)
        return apply_chi0(self.ham, self.psi, self.occupations,
                          self.fermi_level, self.eigenvalues, dv_sR,
                          **kwargs)


def diagonalize(ham: Hamiltonian,
                nbands: int | None = None,
                occ: OccupationNumbers | None = None,
                tol_n_elec: float = 1e-10,
                occupation_threshold: float | None = None) -> GroundState:
    """Full diagonalization of all Hamiltonian blocks.

    Keeps the lowest ``nbands`` eigenpairs (default: as many as the
    smallest basis allows) and fills them according to the smearing of
    the model (or ``occ``)."""
    basis = ham.basis
    if nbands is None:
        nbands = basis.comm.min(min(len(kpt) for kpt in basis.kpoints))
    nbands = int(nbands)

    psi = []
    eigenvalues = []
    for block in ham.blocks:
        if nbands > block.shape[0]:
            raise ValueError(f'Too many bands: {nbands} > {block.shape[0]} '
                             f'plane waves at {block.kpt}')
        eig_n, u_Gn = eigh(block.todense(),
                           subset_by_index=[0, nbands - 1])
        eigenvalues.append(eig_n)
        psi.append(np.ascontiguousarray(u_Gn.T))

    f_kn, fermi_level = compute_occupations(basis, eigenvalues, occ,
                                            tol_n_elec)
    return GroundState(ham, psi, f_kn, fermi_level, eigenvalues,
                       occupation_threshold)
