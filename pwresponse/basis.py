from __future__ import annotations

from math import pi

import numpy as np
from ase.units import Ha

from pwresponse.mpi import serial_comm
from pwresponse.occupations import (OccupationNumbers, ZeroWidth,
                                    create_occupation_number_object)
from pwresponse.symmetry import Symmetry
from pwresponse.typing import Array1D, Array2D, ArrayND, MPIComm


class Model:
    """Everything about the physical system that is not a basis.

    cell_cv: 3x3 array
        Unit cell in Bohr (rows are lattice vectors).
    nelectrons: float
        Number of electrons per unit cell.
    nspins: int
        1 for spin-paired, 2 for collinear spin-polarized calculations.
    occupations: dict or OccupationNumbers
        Smearing, e.g. ``{'name': 'fermi-dirac', 'width': 0.1}`` (eV).
        Default is zero width.
    fermi_level: float or None
        Pin the Fermi level (Hartree) instead of fixing the number
        of electrons.
    symmetry: Symmetry
        Default is the trivial group.
    """
    def __init__(self, cell_cv, nelectrons, nspins=1, occupations=None,
                 fermi_level=None, symmetry=None):
        self.cell_cv = np.array(cell_cv, dtype=float).reshape((3, 3))
        self.icell_cv = np.linalg.inv(self.cell_cv).T
        self.volume = abs(np.linalg.det(self.cell_cv))
        self.nelectrons = nelectrons
        if nspins not in (1, 2):
            raise ValueError(f'nspins must be 1 or 2, not {nspins}')
        self.nspins = nspins

        if occupations is None:
            occupations = ZeroWidth()
        elif isinstance(occupations, dict):
            occupations = create_occupation_number_object(**occupations)
        self.occupations: OccupationNumbers = occupations
        self.fermi_level = fermi_level
        self.symmetry = symmetry or Symmetry()

    @property
    def temperature(self) -> float:
        """Smearing width in Hartree."""
        return self.occupations.width

    @property
    def filled_occupation(self) -> float:
        return 2.0 / self.nspins

    def __str__(self):
        s = (f'Model: {self.nelectrons} electrons, {self.nspins} spin(s), '
             f'volume={self.volume:.3f} Bohr^3\n')
        s += str(self.occupations)
        if self.fermi_level is not None:
            s += f'  Fermi level pinned at {self.fermi_level * Ha:.5f} eV\n'
        return s


class KPoint:
    def __init__(self, k, spin, k_c, G_plus_k_Gv, ekin_G, indices):
        self.k = k  # global index
        self.spin = spin
        self.k_c = k_c
        self.G_plus_k_Gv = G_plus_k_Gv
        self.ekin_G = ekin_G
        self.indices = indices  # flat index into the FFT grid

    def __len__(self):
        return len(self.ekin_G)

    def __repr__(self):
        return (f'KPoint(k={self.k}, spin={self.spin}, '
                f'k_c={self.k_c.tolist()}, nG={len(self)})')


def get_fft_size(cell_cv, ecut, supersampling=2.0):
    """Grid size holding all products of two wave functions."""
    a_c = np.linalg.norm(cell_cv, axis=1)
    Gmax_c = np.ceil(supersampling * np.sqrt(2 * ecut) * a_c / (2 * pi))
    return tuple(int(n) for n in 2 * Gmax_c + 1)


def find_reciprocal_vectors(ecut: float,
                            size_c,
                            icell_cv: Array2D,
                            k_c: Array1D) -> tuple[Array2D, Array1D, Array1D]:
    size_c = np.array(size_c)
    i_Qc = np.indices(size_c).transpose((1, 2, 3, 0))
    half = size_c // 2
    i_Qc += half
    i_Qc %= size_c
    i_Qc -= half

    # Calculate reciprocal lattice vectors:
    B_cv = 2.0 * pi * icell_cv
    i_Qc = i_Qc.reshape((-1, 3))
    G_plus_k_Qv = np.dot(i_Qc + k_c, B_cv)

    G2_Q = (G_plus_k_Qv**2).sum(axis=1)
    mask_Q = (G2_Q <= 2 * ecut)

    indices = np.arange(len(i_Qc))[mask_Q]
    ekin = 0.5 * G2_Q[indices]
    G_plus_k = G_plus_k_Qv[mask_Q]

    return G_plus_k, ekin, indices


class PlaneWaveBasis:
    """Plane waves inside a kinetic-energy cutoff at a set of k-points.

    ecut: float
        Cutoff in Hartree.
    kpts: list of 3-vectors
        k-points in scaled coordinates (one spin channel).
    kweights: list of float
        Normalized to one.  Default is uniform.
    fft_size: 3-tuple of int
        Default from the cutoff.
    comm:
        k-point communicator.  Each rank gets a contiguous block of
        k-points (all spin-up k-points come before the spin-down ones).

    Wave functions are stored as coefficient arrays ``psit_G`` with
    ``sum |psit_G|^2 = 1``; real-space functions are periodic parts
    normalized over the unit cell.
    """
    def __init__(self, model: Model, ecut: float, kpts=None, kweights=None,
                 fft_size=None, comm: MPIComm = serial_comm):
        self.model = model
        self.ecut = ecut
        self.comm = comm

        if kpts is None:
            kpts = [(0.0, 0.0, 0.0)]
        ibzk_kc = np.array(kpts, dtype=float).reshape((-1, 3))
        if kweights is None:
            kweights = np.ones(len(ibzk_kc))
        weight_k = np.array(kweights, dtype=float)
        if weight_k.shape != (len(ibzk_kc),):
            raise ValueError('Need one weight per k-point')
        weight_k /= weight_k.sum()
        self.ibzk_kc = ibzk_kc

        if fft_size is None:
            fft_size = get_fft_size(model.cell_cv, ecut)
        self.fft_size = tuple(int(n) for n in fft_size)
        self.nfft = int(np.prod(self.fft_size))
        self.dvol = model.volume / self.nfft

        nkpts = model.nspins * len(ibzk_kc)
        k1 = comm.rank * nkpts // comm.size
        k2 = (comm.rank + 1) * nkpts // comm.size

        self.kpoints: list[KPoint] = []
        self.kweights: list[float] = []
        for K in range(k1, k2):
            spin, k = divmod(K, len(ibzk_kc))
            k_c = ibzk_kc[k]
            G_plus_k_Gv, ekin_G, indices = find_reciprocal_vectors(
                ecut, self.fft_size, model.icell_cv, k_c)
            self.kpoints.append(
                KPoint(K, spin, k_c, G_plus_k_Gv, ekin_G, indices))
            self.kweights.append(weight_k[k])

        i_cR = np.indices(self.fft_size).reshape((3, -1))
        self._r_cR = i_cR / np.array(self.fft_size)[:, np.newaxis]

    def __str__(self):
        a, b, c = self.fft_size
        txt = (f'PlaneWaveBasis(ecut={self.ecut * Ha:.2f} eV, '
               f'grid={a}*{b}*{c}, kpts={len(self.ibzk_kc)}')
        if self.comm.size > 1:
            txt += f', comm={self.comm.rank}/{self.comm.size}'
        return txt + ')'

    def zeros(self, nspins=None, dtype=float) -> ArrayND:
        """Zero real-space array of shape (nspins, N1, N2, N3)."""
        if nspins is None:
            nspins = self.model.nspins
        return np.zeros((nspins,) + self.fft_size, dtype)

    def ifft(self, kpt: KPoint, psit_G: Array1D) -> ArrayND:
        """Periodic part of a Bloch function on the real-space grid."""
        a_Q = np.zeros(self.nfft, complex)
        a_Q[kpt.indices] = psit_G
        a_R = np.fft.ifftn(a_Q.reshape(self.fft_size))
        return a_R * (self.nfft / np.sqrt(self.model.volume))

    def fft(self, kpt: KPoint, f_R: ArrayND) -> Array1D:
        """Plane-wave coefficients of f_R (truncated to the sphere)."""
        a_Q = np.fft.fftn(f_R).ravel()
        return a_Q[kpt.indices] * (np.sqrt(self.model.volume) / self.nfft)

    def bloch_phase(self, shift_c) -> ArrayND:
        """exp(i G.r) on the grid for a reciprocal lattice vector G."""
        phase_R = np.exp(2j * pi * np.dot(shift_c, self._r_cR))
        return phase_R.reshape(self.fft_size)


def k_to_kpq_permutation(basis: PlaneWaveBasis, q_c) -> tuple[list[int],
                                                               ArrayND]:
    """Find k+q in the list of k-points of the basis.

    Returns, for every k-point, the (local) index of the k-point equivalent
    to k+q in the same spin channel, and the reciprocal lattice vector
    ``shift_c`` (scaled coordinates) with ``k + q = k' + shift_c``.
    """
    q_c = np.asarray(q_c, dtype=float)
    index_k = []
    shift_kc = np.zeros((len(basis.kpoints), 3), dtype=int)
    for k, kpt in enumerate(basis.kpoints):
        kpq_c = kpt.k_c + q_c
        for k2, kpt2 in enumerate(basis.kpoints):
            if kpt2.spin != kpt.spin:
                continue
            shift_c = kpq_c - kpt2.k_c
            if np.allclose(shift_c, shift_c.round(), atol=1e-8):
                index_k.append(k2)
                shift_kc[k] = shift_c.round()
                break
        else:
            raise ValueError(f'k+q={kpq_c.tolist()} is not on the k-point '
                             'mesh of this rank')
    return index_k, shift_kc
