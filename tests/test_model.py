# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones

import math
import numpy as np
import pytest
from numpy.testing import assert_equal, assert_allclose
from hypothesis import given, settings, strategies as st
from svdqmc import UP, DN, hubbard_hypercube
from svdqmc.propagator import FFTPropagator, DensePropagator, make_propagator

settings.load_profile("svdqmc")


def tb_hamiltonian_chain(num_sites, hop, periodic=True):
    ham = np.zeros((num_sites, num_sites))
    np.fill_diagonal(ham[1:, :], -hop)
    np.fill_diagonal(ham[:, 1:], -hop)
    if periodic:
        ham[0, -1] = ham[-1, 0] = -hop
    return ham


def tb_hamiltonian_square(size, hop, periodic=True):
    eye = np.eye(size)
    ham_hop_1d = tb_hamiltonian_chain(size, hop, periodic)
    return np.kron(ham_hop_1d, eye) + np.kron(eye, ham_hop_1d)


@given(st.integers(3, 10), st.floats(0, 1), st.booleans())
def test_tb_hamiltonian_1d(num_sites, hop, periodic):
    model = hubbard_hypercube(num_sites, hop=hop, periodic=periodic)
    ham = model.hamiltonian_kinetic()
    expected = tb_hamiltonian_chain(num_sites, hop, periodic)
    assert_equal(expected, ham)


@given(st.integers(3, 10), st.floats(0, 1), st.booleans())
def test_tb_hamiltonian_square(num_sites, hop, periodic):
    shape = (num_sites, num_sites)
    model = hubbard_hypercube(shape, hop=hop, periodic=periodic)
    ham = model.hamiltonian_kinetic()
    expected = tb_hamiltonian_square(num_sites, hop, periodic)
    assert_equal(expected, ham)


def test_tb_hamiltonian_two_sites():
    # Both bonds of a periodic two site chain connect the same pair
    model = hubbard_hypercube(2, hop=1.0, periodic=True)
    assert_equal(model.hamiltonian_kinetic(), [[0, -2], [-2, 0]])
    model = hubbard_hypercube(2, hop=1.0, periodic=False)
    assert_equal(model.hamiltonian_kinetic(), [[0, -1], [-1, 0]])


def test_tb_hamiltonian_mixed_axes():
    # Per axis hopping, the periodic two site axis carries both bonds
    model = hubbard_hypercube((3, 2), hop=(1.0, 0.5), periodic=True)
    ham_y = np.array([[0.0, -1.0], [-1.0, 0.0]])
    expected = np.kron(tb_hamiltonian_chain(3, 1.0), np.eye(2)) + np.kron(np.eye(3), ham_y)
    assert_equal(model.hamiltonian_kinetic(), expected)


def test_build_lattice():
    model = hubbard_hypercube((4, 1, 3), periodic=True)
    latt, axes = model.lattice
    assert axes == [0, 2]
    assert latt.dim == 2
    assert latt.num_sites == model.num_sites == 12
    ham = model.hamiltonian_kinetic()
    assert_equal(ham, ham.T)
    # Every site of the periodic 4x3 lattice has four neighbours
    assert_equal(np.sum(ham != 0, axis=1), 4)


def test_single_site():
    model = hubbard_hypercube(1)
    assert_equal(model.hamiltonian_kinetic(), [[0.0]])


def test_shape_normalization():
    model = hubbard_hypercube((4, 1), hop=(1.0, 0.5))
    assert model.shape == (4, 1, 1)
    assert model.hop == (1.0, 0.0, 0.0)
    assert model.num_sites == 4
    with pytest.raises(ValueError):
        hubbard_hypercube((2, 2, 2, 2))
    with pytest.raises(ValueError):
        hubbard_hypercube(4, u=-1.0)


@given(st.lists(st.integers(1, 5), min_size=1, max_size=3), st.floats(0.1, 2))
def test_dispersion(shape, hop):
    model = hubbard_hypercube(shape, hop=hop, periodic=True)
    expected = np.linalg.eigvalsh(model.hamiltonian_kinetic())
    eps = np.sort(model.dispersion().flatten())
    assert_allclose(eps, expected, atol=1e-10)


def test_staggered_potential():
    model = hubbard_hypercube((2, 2), stagger=0.5)
    assert_equal(model.staggered_potential(), [0.5, -0.5, -0.5, 0.5])


def test_exponents():
    model = hubbard_hypercube(4, u=4.0, mu=0.0, beta=2.0)
    assert model.exponent(UP) == model.exponent(DN) == -4.0
    model = hubbard_hypercube(4, u=4.0, mu=1.0, field=0.5, beta=2.0)
    exps = model.exponents()
    assert_allclose(exps[UP], 2.0 * (1.0 - 2.0 + 0.25))
    assert_allclose(exps[DN], 2.0 * (1.0 - 2.0 - 0.25))


@given(st.floats(0, 8), st.floats(0.01, 0.5))
def test_field_amplitude(u, dt):
    model = hubbard_hypercube(4, u=u)
    amp = model.field_amplitude(dt)
    assert_allclose(amp, math.sqrt(math.exp(u * dt) - 1), rtol=1e-10, atol=1e-14)
    # Decoupling identity e^{U dt} = (1 + A^2) for a doubly occupied site
    assert_allclose(1 + amp ** 2, math.exp(u * dt), rtol=1e-12)


def test_temperature():
    model = hubbard_hypercube(4, beta=2.0)
    model.set_temperature(0.25)
    assert model.beta == 4.0
    model.set_beta(1.0)
    assert model.beta == 1.0


@given(st.lists(st.integers(2, 5), min_size=1, max_size=3),
       st.floats(0.1, 2), st.floats(0.01, 0.5))
def test_fft_propagator(shape, hop, dt):
    model = hubbard_hypercube(shape, hop=hop, periodic=True)
    fft_prop = FFTPropagator(model, dt)
    dense_prop = DensePropagator(model, dt)
    expected = dense_prop.matrix()
    tol = 1e-10 * np.max(np.abs(expected))
    assert_allclose(fft_prop.matrix(), expected, atol=tol)

    rng = np.random.default_rng(0)
    x = rng.normal(size=model.num_sites)
    assert_allclose(fft_prop.apply(x), np.dot(expected, x), atol=10 * tol)
    assert_allclose(fft_prop.apply_transpose(x), np.dot(expected.T, x), atol=10 * tol)
    cols = rng.normal(size=(model.num_sites, 3))
    assert_allclose(fft_prop.apply(cols), np.dot(expected, cols), atol=10 * tol)

    _, logdet = np.linalg.slogdet(expected)
    assert_allclose(fft_prop.log_abs_det(), logdet, rtol=1e-8, atol=1e-8)
    assert_allclose(dense_prop.log_abs_det(), logdet, rtol=1e-8, atol=1e-8)


def test_make_propagator():
    model = hubbard_hypercube((3, 3), periodic=True)
    assert isinstance(make_propagator(model, 0.1), FFTPropagator)
    assert isinstance(make_propagator(model, 0.1, dense=True), DensePropagator)
    model = hubbard_hypercube((3, 3), periodic=False)
    assert isinstance(make_propagator(model, 0.1), DensePropagator)
    with pytest.raises(ValueError):
        FFTPropagator(model, 0.1)
