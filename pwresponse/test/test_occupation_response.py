import numpy as np
import pytest

from pwresponse.response.occupation_response import compute_docc
from pwresponse.response.wavefunction_response import compute_alpha


@pytest.mark.ci
@pytest.mark.parametrize('fm,fn,ratio', [(0.0, 0.0, 0.0),
                                         (2.0, 2.0, -3.0),
                                         (2.0, 0.0, -1.0),
                                         (0.0, 2.0, -1.0),
                                         (1e-3, 1e-3, -1e3),
                                         (1.3, 0.7, -0.4),
                                         (2.0, 2.0, 0.0)])
def test_alpha(fm, fn, ratio):
    amn = compute_alpha(fm, fn, ratio)
    anm = compute_alpha(fn, fm, ratio)
    assert np.isfinite(amn)
    assert fn * amn + fm * anm == pytest.approx(ratio)


def test_alpha_limits():
    # One full and one empty band: 1 / (em - en) behaviour
    em, en = 0.0, 0.5
    ratio = 2 * (1.0 - 0.0) / (em - en)
    assert compute_alpha(2.0, 0.0, ratio) == 0.0
    assert 2.0 * compute_alpha(0.0, 2.0, ratio) == pytest.approx(ratio)
    assert compute_alpha(2.0, 2.0, 0.0) == 0.0


def test_docc(smeared):
    basis = smeared.basis
    psi = smeared.psi
    dHpsi = [psit_nG * 0.1 for psit_nG in psi]
    df_kn, dfermi = compute_docc(basis, psi, smeared.fermi_level,
                                 smeared.eigenvalues, dHpsi)
    # A constant potential shifts the Fermi level by the same amount:
    assert dfermi == pytest.approx(0.1)
    assert abs(df_kn[0]).max() < 1e-12

    rng = np.random.default_rng(7)
    dHpsi = [psit_nG * rng.random((len(psit_nG), 1)) for psit_nG in psi]
    df_kn, dfermi = compute_docc(basis, psi, smeared.fermi_level,
                                 smeared.eigenvalues, dHpsi)
    nel = sum(weight * df_n.sum()
              for weight, df_n in zip(basis.kweights, df_kn))
    assert nel == pytest.approx(0.0, abs=1e-14)
    assert abs(df_kn[0]).max() > 0.0


def test_docc_zero_width(free_electrons):
    psi = free_electrons.psi
    dHpsi = [psit_nG * 0.1 for psit_nG in psi]
    df_kn, dfermi = compute_docc(free_electrons.basis, psi,
                                 free_electrons.fermi_level,
                                 free_electrons.eigenvalues, dHpsi)
    assert dfermi == 0.0
    assert not df_kn[0].any()
