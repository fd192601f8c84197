# encoding: utf-8
# Copyright (C) 2003  CAMP
# Please see the accompanying LICENSE file for further information.

"""Linear density response of plane-wave Kohn-Sham ground states."""

__version__ = '0.1.0'
__ase_version_required__ = '3.22.1'

__all__ = ['ConfigurationError', 'ConvergenceWarning',
           'UnrecognizedOptionWarning',
           'Model', 'PlaneWaveBasis', 'Hamiltonian', 'Symmetry',
           'FermiDirac', 'MarzariVanderbilt', 'MethfesselPaxton', 'ZeroWidth',
           'GroundState', 'diagonalize',
           'apply_chi0', 'compute_chi0']


class ConfigurationError(Exception):
    pass


class ConvergenceWarning(UserWarning):
    pass


class UnrecognizedOptionWarning(UserWarning):
    pass


from pwresponse.occupations import (FermiDirac, MarzariVanderbilt,  # noqa
                                    MethfesselPaxton, ZeroWidth)
from pwresponse.basis import Model, PlaneWaveBasis  # noqa
from pwresponse.hamiltonian import Hamiltonian  # noqa
from pwresponse.symmetry import Symmetry  # noqa
from pwresponse.groundstate import GroundState, diagonalize  # noqa
from pwresponse.response.chi0 import apply_chi0  # noqa
from pwresponse.response.chi0_explicit import compute_chi0  # noqa
