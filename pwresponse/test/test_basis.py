from math import pi

import numpy as np
import pytest

from pwresponse import Hamiltonian, Model, PlaneWaveBasis, Symmetry
from pwresponse.basis import get_fft_size, k_to_kpq_permutation
from pwresponse.hamiltonian import multiply_psi_by_blochwave
from pwresponse.test import make_hamiltonian


@pytest.mark.ci
def test_plane_waves():
    basis = make_hamiltonian().basis
    assert basis.fft_size == (7, 7, 7)
    kpt = basis.kpoints[0]
    assert len(kpt) == 19
    assert basis.dvol == pytest.approx(216 / 343)
    assert kpt.ekin_G.min() == 0.0
    assert kpt.ekin_G.max() == pytest.approx(2 * 0.5 * (2 * pi / 6)**2)


def test_fft_size():
    assert get_fft_size(np.diag([10.0, 2.0, 2.0]), 0.1) == (5, 3, 3)


def test_fft_normalization(rng):
    basis = make_hamiltonian(kpts=[(0.25, 0, 0)]).basis
    kpt = basis.kpoints[0]
    psit_G = rng.random(len(kpt)) + 1j * rng.random(len(kpt))
    psit_G /= np.linalg.norm(psit_G)
    psit_R = basis.ifft(kpt, psit_G)
    assert (abs(psit_R)**2).sum() * basis.dvol == pytest.approx(1.0)
    assert basis.fft(kpt, psit_R) == pytest.approx(psit_G)


def test_kweights():
    model = Model(np.eye(3) * 4, 2, nspins=2)
    basis = PlaneWaveBasis(model, 1.0, kpts=[(0, 0, 0), (0.5, 0, 0)],
                           kweights=[1, 3])
    assert [kpt.spin for kpt in basis.kpoints] == [0, 0, 1, 1]
    assert basis.kweights == pytest.approx([0.25, 0.75, 0.25, 0.75])
    with pytest.raises(ValueError):
        PlaneWaveBasis(model, 1.0, kpts=[(0, 0, 0)], kweights=[1, 1])


def test_k_to_kpq_permutation():
    model = Model(np.eye(3) * 4, 2)
    basis = PlaneWaveBasis(model, 1.0,
                           kpts=[(0, 0, 0), (0.25, 0, 0), (0.5, 0, 0),
                                 (-0.25, 0, 0)])
    index_k, shift_kc = k_to_kpq_permutation(basis, [0.25, 0, 0])
    assert index_k == [1, 2, 3, 0]
    assert shift_kc.tolist() == [[0, 0, 0], [0, 0, 0], [1, 0, 0],
                                 [0, 0, 0]]
    index_k, shift_kc = k_to_kpq_permutation(basis, [0, 0, 0])
    assert index_k == [0, 1, 2, 3]
    assert not shift_kc.any()
    with pytest.raises(ValueError):
        k_to_kpq_permutation(basis, [0.1, 0, 0])


def test_hamiltonian_block():
    ham = make_hamiltonian(vt=0.3)
    H = ham[0]
    H_GG = H.todense()
    assert H_GG == pytest.approx(H_GG.conj().T)
    # <G|v|G'> of 0.3 cos(2 pi x / 6) couples G and G +- b_x by 0.15:
    G_Gv = H.kpt.G_plus_k_Gv
    b = 2 * pi / 6
    g0 = np.flatnonzero((abs(G_Gv) < 1e-10).all(1))[0]
    g1 = np.flatnonzero((abs(G_Gv - [b, 0, 0]) < 1e-10).all(1))[0]
    assert H_GG[g0, g1] == pytest.approx(0.15)
    assert H_GG[g1, g1] == pytest.approx(0.5 * b**2)
    assert len(ham) == 1
    with pytest.raises(ValueError):
        Hamiltonian(ham.basis, np.zeros((1, 3, 3, 3)))


def test_multiply_psi_by_blochwave(rng):
    ham = make_hamiltonian(vt=0.3)
    basis = ham.basis
    kpt = basis.kpoints[0]
    psi = [np.eye(len(kpt))[:3].astype(complex)]
    dv_sR = rng.random((1,) + basis.fft_size)
    dHpsi = multiply_psi_by_blochwave(basis, psi, dv_sR)
    # Matrix elements agree with the dense Hamiltonian of dv:
    dham = Hamiltonian(basis, dv_sR)
    dH_GG = dham[0].todense() - np.diag(kpt.ekin_G)
    assert dHpsi[0] == pytest.approx(dH_GG[:, :3].T, abs=1e-12)


def test_symmetry(rng):
    mirror = Symmetry([np.diag([-1, 1, 1])])
    assert len(mirror) == 2
    assert not mirror.is_trivial
    assert Symmetry().is_trivial
    a_sR = rng.random((1, 7, 7, 7))
    b_sR = mirror.symmetrize(a_sR)
    assert b_sR[0, 1] == pytest.approx(b_sR[0, 6])
    assert mirror.symmetrize(b_sR) == pytest.approx(b_sR)
    assert a_sR.sum() == pytest.approx(b_sR.sum())
    # Half a lattice vector does not fit a 7-point grid:
    glide = Symmetry([np.eye(3, dtype=int)], [[0.5, 0, 0]])
    with pytest.raises(ValueError):
        glide.symmetrize(a_sR)
