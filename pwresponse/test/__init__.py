from math import pi

import numpy as np
import pytest

from pwresponse import Hamiltonian, Model, PlaneWaveBasis


def equal(x, y, tolerance=0):
    assert x == pytest.approx(y, abs=tolerance)


def cosine_potential(basis, amplitude, axis=0):
    """amplitude * cos(2 pi x_axis / a) on the grid (nspins copies)."""
    N = basis.fft_size[axis]
    x_R = np.indices(basis.fft_size)[axis] / N
    vt_R = amplitude * np.cos(2 * pi * x_R)
    return np.array([vt_R] * basis.model.nspins)


def make_hamiltonian(a=6.0, ecut=1.2, nelectrons=2, nspins=1,
                     occupations=None, fermi_level=None, symmetry=None,
                     kpts=None, vt=0.0):
    """Electrons in a cubic cell with a weak cosine potential along x.

    The default cutoff gives 19 plane waves at Gamma on a 7x7x7 grid.
    """
    model = Model(np.eye(3) * a, nelectrons, nspins=nspins,
                  occupations=occupations, fermi_level=fermi_level,
                  symmetry=symmetry)
    basis = PlaneWaveBasis(model, ecut, kpts=kpts)
    vt_sR = cosine_potential(basis, vt) if vt else None
    return Hamiltonian(basis, vt_sR)
