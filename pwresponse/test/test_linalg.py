import numpy as np
import pytest

from pwresponse.linalg import cg
from pwresponse.preconditioner import TPAPreconditioner, pw_precond
from pwresponse.test import make_hamiltonian


def spd_matrix(rng, n=20):
    A = rng.random((n, n)) + 1j * rng.random((n, n))
    return A @ A.conj().T + n * np.eye(n)


@pytest.mark.ci
def test_cg(rng):
    A = spd_matrix(rng)
    b = rng.random(20) + 1j * rng.random(20)
    iterations = []
    res = cg(A.__matmul__, b, tol=1e-12, maxiter=100,
             callback=lambda info: iterations.append(info.niter))
    assert res.converged
    assert res.residual_norm <= 1e-12
    assert res.x == pytest.approx(np.linalg.solve(A, b), abs=1e-10)
    assert iterations == list(range(res.niter + 1))


def test_cg_preconditioned_and_projected(rng):
    A = spd_matrix(rng)
    d = np.diag(A).real
    # Solve in the subspace orthogonal to the first unit vector:
    P = np.eye(20)
    P[0, 0] = 0.0

    def proj(x):
        return P @ x

    b = proj(rng.random(20) + 0j)
    res = cg(lambda x: proj(A @ proj(x)), b,
             precon=lambda r: proj(r / d), proj=proj, tol=1e-12)
    assert res.converged
    assert res.x[0] == 0.0
    x_ref = np.linalg.solve(A[1:, 1:], b[1:])
    assert res.x[1:] == pytest.approx(x_ref, abs=1e-10)


def test_cg_zero_rhs():
    A = np.diag([1.0, 2.0, 3.0])
    res = cg(A, np.zeros(3))
    assert res.converged
    assert res.niter == 0
    assert not res.x.any()


def test_cg_maxiter(rng):
    A = spd_matrix(rng)
    res = cg(A, rng.random(20), tol=1e-15, maxiter=2)
    assert not res.converged
    assert res.niter == 2
    assert res.maxiter == 2


def test_tpa_preconditioner(rng):
    kpt = make_hamiltonian().basis.kpoints[0]
    precon = TPAPreconditioner(kpt)
    r_G = rng.random(len(kpt)) + 0j
    # No reference orbital: inverse of shift + kinetic energy
    assert precon.prepare(None)(r_G) == pytest.approx(
        r_G / (1.0 + kpt.ekin_G))
    # A G=0 reference orbital has no kinetic energy; the shift is used
    psit_G = np.zeros(len(kpt), complex)
    psit_G[kpt.ekin_G.argmin()] = 1.0
    precon.prepare(psit_G)
    assert precon.ekin == 1.0
    x_G = precon(r_G)
    assert (x_G.real > 0).all()
    assert x_G == pytest.approx(pw_precond(2 * kpt.ekin_G, r_G, 1.0))
    # Long wavelengths are scaled by 4 / (3 ekin):
    assert x_G[kpt.ekin_G.argmin()] == pytest.approx(
        4 / 3 * r_G[kpt.ekin_G.argmin()])
