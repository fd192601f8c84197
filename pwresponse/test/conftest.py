import numpy as np
import pytest
from ase.utils import devnull

from pwresponse import diagonalize
from pwresponse.mpi import world
from pwresponse.test import make_hamiltonian


@pytest.fixture
def free_electrons():
    """Two electrons at Gamma, zero width, all 19 plane waves as bands."""
    return diagonalize(make_hamiltonian())


@pytest.fixture
def smeared():
    """Two electrons, Fermi-Dirac smearing and a cosine potential."""
    ham = make_hamiltonian(occupations={'name': 'fermi-dirac',
                                        'width': 1.0},
                           vt=-0.2)
    return diagonalize(ham)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


def pytest_configure(config):
    if world.rank != 0:
        try:
            tw = config.get_terminal_writer()
        except AttributeError:
            pass
        else:
            tw._file = devnull
    config.addinivalue_line('markers', 'ci: test included in CI')
    config.addinivalue_line('markers', 'serial: run in serial only')


def pytest_runtest_setup(item):
    if world.size > 1:
        for mark in item.iter_markers():
            if mark.name == 'serial':
                pytest.skip('Only run in serial')
