"""Application of the independent-particle susceptibility chi0.

The four-point operator maps a change of the total Hamiltonian to the
changes ``(dpsi, docc, dfermi)`` of the density matrix::

    P = sum_n f_n |psi_n><psi_n|,    tr P = N

Charge conservation, ``sum_n f'_n (de_n - dfermi) = 0``, fixes dfermi.
The gauge ``<psi_n|dpsi_n> = 0`` is chosen so that diagonal changes are
carried by ``df_n = f'_n (de_n - dfermi)``.  Off-diagonal changes inside
the computed bands are explicit, the rest comes from Sternheimer
equations (see arXiv:2210.04512).
"""
from __future__ import annotations

import warnings

import numpy as np
from scipy.sparse.linalg import LinearOperator

from pwresponse import UnrecognizedOptionWarning
from pwresponse.basis import k_to_kpq_permutation
from pwresponse.density import compute_drho
from pwresponse.groundstate import default_occupation_threshold
from pwresponse.hamiltonian import Hamiltonian, multiply_psi_by_blochwave
from pwresponse.response.context import ensure_context, timer
from pwresponse.response.occupation_response import compute_docc
from pwresponse.response.wavefunction_response import compute_dpsi
from pwresponse.typing import Array1D, Array2D, ArrayND


class ApplyChi0Context:
    """Band partition and tolerance scales for one ground state.

    Bands with ``|f| >= occupation_threshold`` are occupied, the others
    are extra bands.  Rebuild the object if the ground state changes.

    cg_tol_type: str or None
        How Sternheimer tolerances are scaled per band:

        * 'hdmd': ``f w N_occ sqrt(N_fft) / volume``
        * 'grt': ``f w sqrt(max_r sum_n (Re psi_n)^2) sqrt(N_occ N_fft)
          / sqrt(volume)``
        * 'agr', 'plain', '1.0': no scaling
        * None: no scaling and no scale array

    Unknown names give an UnrecognizedOptionWarning, which is also
    written to the log of ``context``.
    """
    def __init__(self,
                 ham: Hamiltonian,
                 psi: list[Array2D],
                 occupations: list[Array1D],
                 fermi_level: float,
                 eigenvalues: list[Array1D],
                 occupation_threshold: float | None = None,
                 q_c=(0.0, 0.0, 0.0),
                 cg_tol_type: str | None = 'hdmd',
                 context=None):
        if occupation_threshold is None:
            occupation_threshold = default_occupation_threshold()
        self.ham = ham
        self.basis = basis = ham.basis
        self.context = ensure_context(context)
        self.occupation_threshold = occupation_threshold
        self.q_c = np.array(q_c, dtype=float)
        self.index_k, self.shift_kc = k_to_kpq_permutation(basis,
                                                           -self.q_c)

        self.mask_occ = []
        self.mask_extra = []
        for f_n in occupations:
            occupied_n = abs(np.asarray(f_n)) >= occupation_threshold
            self.mask_occ.append(np.flatnonzero(occupied_n))
            self.mask_extra.append(np.flatnonzero(~occupied_n))

        self.psi_occ = [psit_nG[mask_n]
                        for psit_nG, mask_n in zip(psi, self.mask_occ)]
        self.psi_extra = [psit_nG[mask_n]
                          for psit_nG, mask_n in zip(psi, self.mask_extra)]
        self.eps_occ = [np.asarray(eig_n)[mask_n]
                        for eig_n, mask_n in zip(eigenvalues, self.mask_occ)]
        self.f_occ = [np.asarray(f_n)[mask_n]
                      for f_n, mask_n in zip(occupations, self.mask_occ)]
        self.eps_minus_q_occ = [self.eps_occ[k2] for k2 in self.index_k]

        self.cg_tol_type = cg_tol_type
        self.cg_tol_scale = None
        if cg_tol_type is not None:
            scale_kn = self.calculate_cg_tol_scale(str(cg_tol_type).lower())
            self.cg_tol_scale = [scale_kn[k2] for k2 in self.index_k]

    @property
    def is_gamma(self) -> bool:
        return not self.q_c.any()

    def calculate_cg_tol_scale(self, cg_tol_type: str) -> list[Array1D]:
        basis = self.basis
        nocc = basis.comm.sum(sum(len(eps_n) for eps_n in self.eps_occ))
        nfft = basis.nfft
        volume = basis.model.volume

        if cg_tol_type == 'hdmd':
            return [f_n * weight * nocc * np.sqrt(nfft) / volume
                    for f_n, weight in zip(self.f_occ, basis.kweights)]

        if cg_tol_type == 'grt':
            scale_kn = []
            for kpt, weight, psit_nG, f_n in zip(basis.kpoints,
                                                 basis.kweights,
                                                 self.psi_occ, self.f_occ):
                a_R = np.zeros(basis.fft_size)
                for psit_G in psit_nG:
                    a_R += basis.ifft(kpt, psit_G).real**2
                kcoef = np.sqrt(a_R.max()) * weight
                scale_kn.append(f_n * kcoef * np.sqrt(nocc) *
                                np.sqrt(nfft) / np.sqrt(volume))
            return scale_kn

        if cg_tol_type not in 'agrplain1.0':
            msg = f'Unknown cg_tol_type {cg_tol_type!r}: no tolerance scaling'
            warnings.warn(msg, UnrecognizedOptionWarning)
            self.context.print(msg)
        return [np.ones(len(f_n)) for f_n in self.f_occ]


def apply_chi0_4p(ham: Hamiltonian,
                  psi: list[Array2D],
                  occupations: list[Array1D],
                  fermi_level: float,
                  eigenvalues: list[Array1D],
                  dHpsi: list[Array2D],
                  *,
                  occupation_threshold: float | None = None,
                  q_c=(0.0, 0.0, 0.0),
                  chi0_context: ApplyChi0Context | None = None,
                  **kwargs) -> tuple[list[Array2D], list[Array1D], float]:
    """Response to a change of the total Hamiltonian.

    ``dHpsi[k]`` is ``dH psi_{k-q}`` (all bands of k-q) in the basis of k.
    Returns ``(dpsi, docc, dfermi)`` where ``dpsi[k]`` is zero for the
    extra bands of k-q.  Remaining keyword arguments go to the
    Sternheimer solver.
    """
    if chi0_context is None:
        chi0_context = ApplyChi0Context(
            ham, psi, occupations, fermi_level, eigenvalues,
            occupation_threshold=occupation_threshold, q_c=q_c,
            cg_tol_type=None)
    ctx = chi0_context
    basis = ham.basis

    dHpsi_occ = [dHpsi[k][ctx.mask_occ[k2]]
                 for k, k2 in enumerate(ctx.index_k)]

    docc = [np.zeros(len(f_n)) for f_n in occupations]
    if ctx.is_gamma:
        df_kn, dfermi = compute_docc(basis, ctx.psi_occ, fermi_level,
                                     ctx.eps_occ, dHpsi_occ)
        for docc_n, mask_n, df_n in zip(docc, ctx.mask_occ, df_kn):
            docc_n[mask_n] = df_n
    else:
        # dH psi_k is a Bloch wave at k+q: no first-order band shifts
        dfermi = 0.0

    dpsi_occ = compute_dpsi(basis, ham.blocks, ctx.psi_occ, fermi_level,
                            ctx.eps_occ, dHpsi_occ,
                            eigenvalues_minus_q=ctx.eps_minus_q_occ,
                            psi_extra=ctx.psi_extra,
                            q_c=ctx.q_c,
                            cg_tol_scale=ctx.cg_tol_scale,
                            **kwargs)
    dpsi = []
    for k, k2 in enumerate(ctx.index_k):
        dpsit_nG = np.zeros(dHpsi[k].shape, complex)
        dpsit_nG[ctx.mask_occ[k2]] = dpsi_occ[k]
        dpsi.append(dpsit_nG)
    return dpsi, docc, dfermi


def apply_chi0(ham: Hamiltonian,
               psi: list[Array2D],
               occupations: list[Array1D],
               fermi_level: float,
               eigenvalues: list[Array1D],
               dv_sR: ArrayND,
               *,
               occupation_threshold: float | None = None,
               q_c=(0.0, 0.0, 0.0),
               chi0_context: ApplyChi0Context | None = None,
               context=None,
               **kwargs) -> ArrayND:
    """Density response to the potential variation ``exp(iq.r) dv_sR``.

    dv_sR: ndarray, shape=(nspins, N1, N2, N3)
        Periodic part of the potential variation (Hartree).
    chi0_context: ApplyChi0Context
        Precomputed band partition (recommended for repeated calls).
    context: ResponseContext
        Log and timer.  Default is silent.

    Remaining keyword arguments (``tol``, ``maxiter``, ``callback``,
    ``cg_callback``) go to the Sternheimer solver.
    """
    basis = ham.basis
    context = ensure_context(context)
    if chi0_context is not None:
        if not np.allclose(chi0_context.q_c, q_c):
            raise ValueError(f'q_c={list(q_c)} does not match the '
                             f'chi0 context (q_c={chi0_context.q_c})')
        occupation_threshold = chi0_context.occupation_threshold
    elif occupation_threshold is None:
        occupation_threshold = default_occupation_threshold()

    # Only symmetric perturbations can be represented
    dv_sR = basis.model.symmetry.symmetrize(dv_sR)

    # Unit norm keeps the Sternheimer right-hand sides of order one
    norm = np.linalg.norm(dv_sR)
    if norm < np.finfo(float).eps:
        if np.any(q_c):
            return np.zeros(dv_sR.shape, complex)
        return np.zeros(dv_sR.shape)
    dv_sR = dv_sR / norm

    with context.timer('Apply dV'):
        dHpsi = multiply_psi_by_blochwave(basis, psi, dv_sR, q_c)
    with context.timer('Solve response equations'):
        dpsi, docc, dfermi = apply_chi0_4p(
            ham, psi, occupations, fermi_level, eigenvalues, dHpsi,
            occupation_threshold=occupation_threshold, q_c=q_c,
            chi0_context=chi0_context, context=context, **kwargs)
    with context.timer('Density response'):
        drho_sR = compute_drho(basis, psi, dpsi, occupations, docc,
                               occupation_threshold, q_c)
    return drho_sR * norm


class Chi0Operator:
    """chi0 of a ground state as a reusable linear operator.

    Example::

        chi0 = Chi0Operator(gs, tol=1e-10)
        drho_sR = chi0.apply(dv_sR)
        op = chi0.aslinearoperator()  # flat arrays, for scipy solvers
    """
    def __init__(self, gs, q_c=(0.0, 0.0, 0.0), cg_tol_type='hdmd',
                 context=None, **kwargs):
        self.gs = gs
        self.q_c = np.array(q_c, dtype=float)
        self.context = ensure_context(context)
        with self.context.timer('Chi0 context'):
            self.chi0_context = gs.chi0_context(q_c=self.q_c,
                                                cg_tol_type=cg_tol_type,
                                                context=self.context)
        self.kwargs = kwargs
        basis = gs.basis
        self.shape_sR = (basis.model.nspins,) + basis.fft_size
        self.dtype = float if self.chi0_context.is_gamma else complex
        self.napplications = 0

    def __str__(self):
        ctx = self.chi0_context
        nocc = sum(len(mask_n) for mask_n in ctx.mask_occ)
        nextra = sum(len(mask_n) for mask_n in ctx.mask_extra)
        return (f'Chi0Operator: q_c={self.q_c.tolist()}, '
                f'{nocc} occupied and {nextra} extra bands, '
                f'cg_tol_type={ctx.cg_tol_type!r}')

    @timer('Apply chi0')
    def apply(self, dv_sR: ArrayND) -> ArrayND:
        gs = self.gs
        self.napplications += 1
        return apply_chi0(gs.ham, gs.psi, gs.occupations, gs.fermi_level,
                          gs.eigenvalues, dv_sR, q_c=self.q_c,
                          chi0_context=self.chi0_context,
                          context=self.context, **self.kwargs)

    def aslinearoperator(self) -> LinearOperator:
        n = int(np.prod(self.shape_sR))

        def matvec(x):
            x = np.reshape(x, self.shape_sR)
            if self.chi0_context.is_gamma:
                x = x.real
            return self.apply(x).ravel()

        return LinearOperator((n, n), matvec=matvec, dtype=self.dtype)
