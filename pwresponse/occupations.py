"""Smearing functions and occupation number calculators."""

from math import factorial, inf, nan, pi
from typing import Callable, List, Tuple

import numpy as np
from scipy.special import erf
from ase.units import Ha

from pwresponse.mpi import serial_comm
from pwresponse.typing import Array1D, MPIComm


def fermi_dirac(eig, fermi_level, width):
    x = (eig - fermi_level) / width
    x = np.clip(x, -100, 100)
    f = 1.0 / (np.exp(x) + 1.0)
    dfde = (f - f**2) / width
    return f, dfde


def marzari_vanderbilt(eig, fermi_level, width):
    x = (eig - fermi_level) / width
    expterm = np.exp(-(x + (1 / np.sqrt(2)))**2)
    f = expterm / np.sqrt(2 * np.pi) + 0.5 * (1 - erf(1. / np.sqrt(2) + x))
    dfde = expterm * (2 + np.sqrt(2) * x) / np.sqrt(np.pi) / width
    return f, dfde


def methfessel_paxton(eig, fermi_level, width, order=0):
    x = (eig - fermi_level) / width
    f = 0.5 * (1 - erf(x))
    for i in range(order):
        f += (coff_function(i + 1) *
              hermite_poly(2 * i + 1, x) * np.exp(-x**2))
    dfde = 1 / np.sqrt(pi) * np.exp(-x**2)
    for i in range(order):
        dfde += (coff_function(i + 1) *
                 hermite_poly(2 * i + 2, x) * np.exp(-x**2))
    dfde *= 1.0 / width
    return f, dfde


def coff_function(n):
    return (-1)**n / (factorial(n) * 4**n * np.sqrt(np.pi))


def hermite_poly(n, x):
    if n == 0:
        return 1
    elif n == 1:
        return 2 * x
    else:
        return (2 * x * hermite_poly(n - 1, x) -
                2 * (n - 1) * hermite_poly(n - 2, x))


def create_occupation_number_object(width=None,
                                    name=None,
                                    order=None):
    """Create occupation number object from a parameter dictionary.

    Example: ``{'name': 'fermi-dirac', 'width': 0.05}`` (width in eV).
    """
    if width == 0.0 or name == 'zero-width':
        return ZeroWidth()
    if name == 'methfessel-paxton':
        return MethfesselPaxton(width, order=order or 0)
    assert order is None
    if name is None or name == 'fermi-dirac':
        return FermiDirac(width)
    if name == 'marzari-vanderbilt':
        return MarzariVanderbilt(width)
    raise ValueError('Unknown occupation number object name: ' + name)


class OccupationNumbers:
    """Base class for all occupation number objects.

    All energies are in Hartree.  Occupation numbers are between 0 and 1;
    multiply by the filled occupation to get electrons per band.
    """
    name = 'unknown'
    width = 0.0

    def todict(self):
        return {'name': self.name}

    def new(self, width: float) -> 'OccupationNumbers':
        """Same kind of smearing with a different width (in Hartree)."""
        dct = self.todict()
        if width > 0.0 and dct['name'] == 'zero-width':
            dct['name'] = 'fermi-dirac'
        dct['width'] = width * Ha
        return create_occupation_number_object(**dct)

    def distribution(self, eig_n, fermi_level):
        raise NotImplementedError

    def occupation(self, eig_n, fermi_level):
        return self.distribution(eig_n, fermi_level)[0]

    def derivative(self, eig_n, fermi_level):
        """Energy derivative of the occupation, df/de (non-positive)."""
        return -self.distribution(eig_n, fermi_level)[1]

    def divided_difference(self, eig1, eig2, fermi_level):
        """(f(eig1) - f(eig2)) / (eig1 - eig2), f'(eig1) in the limit."""
        if abs(eig1 - eig2) < np.sqrt(np.finfo(float).eps):
            return 0.5 * (self.derivative(eig1, fermi_level) +
                          self.derivative(eig2, fermi_level))
        return ((self.occupation(eig1, fermi_level) -
                 self.occupation(eig2, fermi_level)) / (eig1 - eig2))

    def calculate(self,
                  nelectrons: float,
                  eigenvalues: List[Array1D],
                  weights: List[float],
                  comm: MPIComm = serial_comm,
                  fermi_level_guess: float = nan,
                  tol: float = 1e-10
                  ) -> Tuple[List[Array1D], float]:
        """Calculate occupation numbers from eigenvalues.

        nelectrons: float
            Number of electrons divided by the filled occupation.
        eigenvalues: list of ndarray
            Eigenvalues of the k-points owned by this rank.  The number
            of bands may differ between k-points.
        weights: list of float
            Weights of those k-points.
        comm:
            k-point communicator.

        Returns a tuple containing:

        * f_kn, one array per k-point (weighted sum over all ranks is
          nelectrons)
        * fermi-level
        """
        eig_kn = [np.asarray(eig_n, dtype=float) for eig_n in eigenvalues]
        weight_k = np.asarray(weights, dtype=float)
        f_kn = [np.empty_like(eig_n) for eig_n in eig_kn]
        fermi_level = self._calculate(nelectrons, eig_kn, weight_k, f_kn,
                                      comm, fermi_level_guess, tol)
        return f_kn, fermi_level


class SmoothDistribution(OccupationNumbers):
    """Base class for Fermi-Dirac and other smooth distributions."""
    def __init__(self, width):
        """Smooth distribution.

        Find the Fermi level by integrating in energy until
        the number of electrons is correct.

        width: float
            Width of distribution in eV.
        """
        self.width = width / Ha

    def todict(self):
        dct = OccupationNumbers.todict(self)
        dct['width'] = self.width * Ha
        return dct

    def _calculate(self,
                   nelectrons,
                   eig_kn,
                   weight_k,
                   f_kn,
                   comm,
                   fermi_level_guess,
                   tol):

        if np.isnan(fermi_level_guess):
            zero = ZeroWidth()
            fermi_level_guess = zero._calculate(
                nelectrons, eig_kn, weight_k, f_kn, comm)
            if np.isinf(fermi_level_guess):
                return fermi_level_guess

        data = np.empty(2)

        def func(x, data=data):
            data[:] = 0.0
            for eig_n, weight, f_n in zip(eig_kn, weight_k, f_kn):
                f_n[:], dfde_n = self.distribution(eig_n, x)
                data += [weight * f_n.sum(), weight * dfde_n.sum()]
            comm.sum(data)
            f, dfde = data
            df = f - nelectrons
            return df, dfde

        fermi_level, niter = findroot(func, fermi_level_guess, tol)
        # Make sure f_kn belongs to the final Fermi level:
        func(fermi_level)
        return fermi_level


class FermiDirac(SmoothDistribution):
    name = 'fermi-dirac'

    def distribution(self, eig_n, fermi_level):
        return fermi_dirac(eig_n, fermi_level, self.width)

    def __str__(self):
        return f'  Fermi-Dirac: width={self.width * Ha:.4f} eV\n'


class MarzariVanderbilt(SmoothDistribution):
    name = 'marzari-vanderbilt'

    def distribution(self, eig_n, fermi_level):
        return marzari_vanderbilt(eig_n, fermi_level, self.width)

    def __str__(self):
        return '  Marzari-Vanderbilt: width={0:.4f} eV\n'.format(
            self.width * Ha)


class MethfesselPaxton(SmoothDistribution):
    name = 'methfessel-paxton'

    def __init__(self, width, order=0):
        SmoothDistribution.__init__(self, width)
        self.order = order

    def todict(self):
        dct = SmoothDistribution.todict(self)
        dct['order'] = self.order
        return dct

    def __str__(self):
        return '  Methfessel-Paxton: width={0:.4f} eV, order={1}\n'.format(
            self.width * Ha, self.order)

    def distribution(self, eig_n, fermi_level):
        return methfessel_paxton(eig_n, fermi_level, self.width, self.order)


def findroot(func: Callable[[float], Tuple[float, float]],
             x: float,
             tol: float = 1e-10) -> Tuple[float, int]:
    """Function used for locating Fermi level.

    The function should return a (value, derivative) tuple:

    >>> x, _ = findroot(lambda x: (x, 1.0), 1.0)
    >>> assert abs(x) < 1e-10
    """
    xmin = -np.inf
    xmax = np.inf

    # Try 10 step using the gradient:
    niter = 0
    while True:
        f, dfdx = func(x)
        if abs(f) < tol:
            return x, niter
        if f < 0.0 and x > xmin:
            xmin = x
        elif f > 0.0 and x < xmax:
            xmax = x
        dx = -f / max(dfdx, 1e-18)
        if niter == 10 or abs(dx) > 0.01 or not (xmin < x + dx < xmax):
            break  # try bisection
        x += dx
        niter += 1

    # Bracket the solution:
    if not np.isfinite(xmin):
        xmin = x
        fmin = f
        step = 0.01
        while fmin > tol:
            xmin -= step
            fmin = func(xmin)[0]
            step *= 2

    if not np.isfinite(xmax):
        xmax = x
        fmax = f
        step = 0.01
        while fmax < 0:
            xmax += step
            fmax = func(xmax)[0]
            step *= 2

    # Bisect:
    while True:
        x = (xmin + xmax) / 2
        f = func(x)[0]
        if abs(f) < tol or xmax - xmin < 1e-15 * max(1.0, abs(x)):
            return x, niter
        if f > 0:
            xmax = x
        else:
            xmin = x
        niter += 1
        assert niter < 1000


class ZeroWidth(OccupationNumbers):
    name = 'zero-width'
    width = 0.0

    def distribution(self, eig_n, fermi_level):
        eig_n = np.asarray(eig_n, dtype=float)
        f_n = np.zeros_like(eig_n)
        f_n[eig_n < fermi_level] = 1.0
        f_n[eig_n == fermi_level] = 0.5
        return f_n, np.zeros_like(eig_n)

    def divided_difference(self, eig1, eig2, fermi_level):
        if abs(eig1 - eig2) < np.sqrt(np.finfo(float).eps):
            return 0.0
        return ((self.occupation(eig1, fermi_level) -
                 self.occupation(eig2, fermi_level)) / (eig1 - eig2))

    def __str__(self):
        return '  Zero width\n'

    def _calculate(self,
                   nelectrons,
                   eig_kn,
                   weight_k,
                   f_kn,
                   comm,
                   fermi_level_guess=nan,
                   tol=1e-10):
        eig_Kn, weight_K, k1, k2 = collect_eigenvalues(eig_kn, weight_k,
                                                       comm)

        f_Kn = np.zeros_like(eig_Kn)
        f_m = f_Kn.ravel()
        w_Kn = np.empty_like(eig_Kn)
        w_Kn[:] = weight_K[:, np.newaxis]
        eig_m = eig_Kn.ravel()
        w_m = w_Kn.ravel()
        m_i = eig_m.argsort(kind='stable')
        w_i = w_m[m_i]
        sum_i = np.add.accumulate(w_i)
        filled_i = (sum_i <= nelectrons + 1e-12)
        i = sum(filled_i)
        f_m[m_i[:i]] = 1.0
        if i == len(m_i):
            fermi_level = inf
        else:
            extra = nelectrons - (sum_i[i - 1] if i > 0 else 0.0)
            if extra > 1e-12:
                assert extra <= w_i[i]
                f_m[m_i[i]] = extra / w_i[i]
                fermi_level = eig_m[m_i[i]]
            elif i == 0:
                fermi_level = -inf
            else:
                fermi_level = (eig_m[m_i[i]] + eig_m[m_i[i - 1]]) / 2

        for f_n, f_N in zip(f_kn, f_Kn[k1:k2]):
            f_n[:] = f_N[:len(f_n)]
        return fermi_level


def collect_eigenvalues(eig_kn, weight_k, comm):
    """Gather eigenvalues and weights of all k-points on every rank.

    k-points with fewer bands are padded with infinite eigenvalues.
    Returns the global arrays together with the slice k1:k2 of the
    k-points owned by this rank."""
    nkpts_r = np.zeros(comm.size, int)
    nkpts_r[comm.rank] = len(weight_k)
    comm.sum(nkpts_r)
    k1 = nkpts_r[:comm.rank].sum()
    k2 = k1 + len(weight_k)
    nbands = comm.max(max((len(eig_n) for eig_n in eig_kn), default=0))
    eig_Kn = np.zeros((nkpts_r.sum(), nbands))
    weight_K = np.zeros(nkpts_r.sum())
    for eig_N, eig_n in zip(eig_Kn[k1:k2], eig_kn):
        eig_N[:len(eig_n)] = eig_n
        eig_N[len(eig_n):] = inf
    weight_K[k1:k2] = weight_k
    comm.sum(eig_Kn)
    comm.sum(weight_K)
    return eig_Kn, weight_K, k1, k2


def compute_occupations(basis, eigenvalues, occ=None, tol_n_elec=1e-10):
    """Occupations (in electrons per band) and Fermi level.

    basis: PlaneWaveBasis
        Provides the model (electron count, filled occupation, pinned
        Fermi level), the k-point weights and the k-point communicator.
    eigenvalues: list of ndarray
        One array per k-point of the basis.
    occ: OccupationNumbers
        Smearing to use instead of the model's.
    tol_n_elec: float
        Tolerance on the total number of electrons.
    """
    model = basis.model
    occ = occ or model.occupations
    filled_occ = model.filled_occupation

    if model.fermi_level is not None:
        fermi_level = model.fermi_level
        f_kn = [filled_occ * occ.occupation(np.asarray(eig_n), fermi_level)
                for eig_n in eigenvalues]
        return f_kn, fermi_level

    f_kn, fermi_level = occ.calculate(model.nelectrons / filled_occ,
                                      eigenvalues,
                                      basis.kweights,
                                      comm=basis.comm,
                                      tol=tol_n_elec / filled_occ)
    return [filled_occ * f_n for f_n in f_kn], fermi_level
