import numpy as np

from pwresponse.basis import KPoint
from pwresponse.typing import Array1D


def pw_precond(G2_G: Array1D,
               r_G: Array1D,
               ekin: float) -> Array1D:
    x = 1 / ekin / 3 * G2_G
    a = 27.0 + x * (18.0 + x * (12.0 + x * 8.0))
    xx = x * x
    return 4.0 / 3 / ekin * a / (a + 16.0 * xx * xx) * r_G


class TPAPreconditioner:
    """Preconditioner for shifted Kohn-Sham equations.

    From:

      Teter, Payne and Allen, Phys. Rev. B 40, 12255 (1989)

    The kinetic energy of a reference orbital sets the energy scale
    (floored at ``shift``).  Without a reference orbital the inverse of
    ``shift + ekin_G`` is used.
    """
    def __init__(self, kpt: KPoint, shift: float = 1.0):
        self.G2_G = 2 * kpt.ekin_G
        self.shift = shift
        self.ekin = None

    def prepare(self, psit_G=None):
        if psit_G is None:
            self.ekin = None
            return self
        norm2 = np.vdot(psit_G, psit_G).real
        ekin = np.vdot(psit_G, 0.5 * self.G2_G * psit_G).real / norm2
        self.ekin = max(ekin, self.shift)
        return self

    def __call__(self, r_G: Array1D) -> Array1D:
        if self.ekin is None:
            return r_G / (self.shift + 0.5 * self.G2_G)
        return pw_precond(self.G2_G, r_G, self.ekin)
