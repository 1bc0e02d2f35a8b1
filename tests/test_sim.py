# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

import numpy as np
import pytest
from numpy.testing import assert_allclose
from hypothesis import given, settings, strategies as st
from svdqmc import Parameters, run_dqmc, hubbard_hypercube
from svdqmc.errors import NumericalInstability

settings.load_profile("svdqmc")


def fermi_density(model, sigma):
    eps = model.dispersion().flatten()
    # The exponent is measured in units of beta
    x = model.beta * eps - model.exponent(sigma)
    return np.mean(1 / (1 + np.exp(x)))


@settings(max_examples=5)
@given(st.floats(-1, 1), st.floats(-1, 1), st.sampled_from([(4, ), (2, 2), (3, 2)]))
def test_noninteracting(mu, field, shape):
    # Without interaction the Trotter decomposition is exact
    p = Parameters(shape, u=0.0, mu=mu, field=field, dt=0.125, num_times=8,
                   slices_per_block=3, num_equil=2, num_sampl=4)
    results = run_dqmc(p)
    n_up, n_dn = results[2], results[3]
    model = hubbard_hypercube(shape, u=0.0, mu=mu, field=field, beta=p.beta)
    assert_allclose(n_up, fermi_density(model, +1), rtol=1e-8)
    assert_allclose(n_dn, fermi_density(model, -1), rtol=1e-8)
    assert results[8] == 1.0


def test_half_filling():
    p = Parameters((2, 2), u=4.0, mu=0.0, dt=0.25, num_times=4, slices_per_block=2,
                   num_equil=1000, num_sampl=1000, seed=42)
    gf_up, gf_dn, n_up, n_dn, n_dbl, moment, corr, kinetic, sign, _ = run_dqmc(p)
    assert gf_up.shape == gf_dn.shape == corr.shape == (4, 4)
    assert 0.9 <= sign <= 1.0
    assert abs(np.mean(n_up + n_dn) - 1.0) < 0.05
    assert np.all(n_dbl >= 0)
    assert np.all(moment >= 0)
    assert kinetic < 0


def test_callback():
    p = Parameters(4, u=2.0, dt=0.25, num_times=4, num_equil=5, num_sampl=10)

    def count_sites(dqmc, factor):
        return factor * dqmc.num_sites

    results = run_dqmc(p, count_sites, False, 2.0)
    assert results[-1] == 8.0


def test_invalid_interaction():
    p = Parameters(4, u=-1.0, num_equil=1, num_sampl=1)
    with pytest.raises(ValueError):
        run_dqmc(p)


def test_non_finite_results():
    p = Parameters(4, u=2.0, dt=0.25, num_times=4, num_equil=1, num_sampl=1)

    def broken(dqmc):
        return np.nan

    results = run_dqmc(p, broken)
    assert np.isnan(results[-1])
    # Only the measured observables are checked
    with pytest.raises(NumericalInstability):
        run_dqmc(p.copy(num_sampl=0))
