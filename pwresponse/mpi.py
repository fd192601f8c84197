"""Communicators for k-point parallelization.

Every k-point belongs to exactly one rank of the k-point communicator.
Global quantities (electron count, density of states, Fermi-level shift,
densities) are sum-reduced through ``comm.sum``.  Scalars are returned,
arrays are reduced in place::

    x = comm.sum(x)      # scalars
    comm.sum(a_sR)       # arrays

``world`` wraps ``MPI.COMM_WORLD`` when running under MPI with mpi4py
installed and is the serial communicator otherwise.
"""
from importlib.util import find_spec

import numpy as np


class SerialCommunicator:
    size = 1
    rank = 0

    def sum(self, array, root=-1):
        if isinstance(array, (int, float, complex, np.number)):
            return array

    def max(self, value, root=-1):
        if isinstance(value, (int, float, complex, np.number)):
            return value

    def min(self, value, root=-1):
        if isinstance(value, (int, float, complex, np.number)):
            return value

    def __repr__(self):
        return 'SerialCommunicator()'


class MPI4PYWrapper:
    """Communicator interface on top of an mpi4py communicator.

    Example::

        from mpi4py import MPI
        comm = MPI4PYWrapper(MPI.COMM_WORLD)
    """
    def __init__(self, comm):
        self.comm = comm
        self.size = comm.size
        self.rank = comm.rank

    def sum(self, a, root=-1, op=None):
        from mpi4py import MPI
        op = op or MPI.SUM
        if isinstance(a, (int, float, complex, np.number)):
            if root == -1:
                return self.comm.allreduce(a, op=op)
            else:
                return self.comm.reduce(a, root=root, op=op)
        else:
            if root == -1:
                self.comm.Allreduce(MPI.IN_PLACE, a, op=op)
            else:
                self.comm.Reduce(MPI.IN_PLACE if self.rank == root else a,
                                 a, root=root, op=op)

    def max(self, a, root=-1):
        from mpi4py import MPI
        return self.sum(a, root, MPI.MAX)

    def min(self, a, root=-1):
        from mpi4py import MPI
        return self.sum(a, root, MPI.MIN)

    def __repr__(self):
        return f'MPI4PYWrapper(rank={self.rank}, size={self.size})'


def get_world():
    """Communicator of all processes."""
    if find_spec('mpi4py') is not None:
        from mpi4py import MPI
        if MPI.COMM_WORLD.size > 1:
            return MPI4PYWrapper(MPI.COMM_WORLD)
    return serial_comm


serial_comm = SerialCommunicator()
world = get_world()
