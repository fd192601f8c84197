import numpy as np
import pytest

from pwresponse import diagonalize
from pwresponse.density import compute_dos, compute_ldos
from pwresponse.mpi import SerialCommunicator, world
from pwresponse.response.context import ResponseContext
from pwresponse.test import make_hamiltonian


@pytest.mark.ci
@pytest.mark.parametrize('nspins', [1, 2])
def test_density(nspins):
    ham = make_hamiltonian(nspins=nspins, vt=-0.2, nelectrons=3,
                           occupations={'name': 'fermi-dirac', 'width': 0.5})
    gs = diagonalize(ham)
    rho_sR = gs.density()
    assert rho_sR.shape == (nspins, 7, 7, 7)
    assert rho_sR.sum() * gs.basis.dvol == pytest.approx(3.0, abs=1e-9)
    # Attracted by the potential minimum at x=0:
    assert rho_sR[0, 0].sum() > rho_sR[0, 3].sum()


def test_dos(smeared):
    basis = smeared.basis
    dos_s = compute_dos(smeared.fermi_level, basis, smeared.eigenvalues)
    ldos_sR = compute_ldos(smeared.fermi_level, basis, smeared.eigenvalues,
                           smeared.psi)
    assert dos_s[0] > 0.0
    assert (ldos_sR >= 0.0).all()
    assert ldos_sR.sum() * basis.dvol == pytest.approx(dos_s[0])


def test_dos_zero_width(free_electrons):
    dos_s = compute_dos(free_electrons.fermi_level, free_electrons.basis,
                        free_electrons.eigenvalues)
    assert dos_s.tolist() == [0.0]


def test_serial_comm():
    comm = SerialCommunicator()
    assert comm.sum(2.5) == 2.5
    a = np.arange(3.0)
    comm.sum(a)
    assert a.tolist() == [0.0, 1.0, 2.0]
    assert comm.max(4) == 4
    assert comm.min(3.0) == 3.0


def test_world():
    MPI = pytest.importorskip('mpi4py.MPI')
    assert world.size == MPI.COMM_WORLD.size
    assert world.rank == MPI.COMM_WORLD.rank


class SecondRank(SerialCommunicator):
    size = 2
    rank = 1


def test_output_only_on_rank_zero(capsys):
    context = ResponseContext(comm=SecondRank())
    context.print('Fermi level')
    context.close()
    assert capsys.readouterr().out == ''
    context = ResponseContext(comm=SerialCommunicator())
    context.print('Fermi level')
    assert capsys.readouterr().out == 'Fermi level\n'
