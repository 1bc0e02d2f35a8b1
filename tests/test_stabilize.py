# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones

import numpy as np
import pytest
from functools import reduce
from numpy.testing import assert_allclose
from hypothesis import given, settings, assume, strategies as st
from svdqmc import SVDFactorization
from svdqmc.errors import InvalidArgument, NumericalInstability

settings.load_profile("svdqmc")

st_size = st.integers(1, 16)
st_seed = st.integers(0, 2**32 - 1)


def random_matrix(n, seed, m=None):
    rng = np.random.default_rng(seed)
    return rng.normal(size=(n, n if m is None else m))


def random_orthogonal(n, rng):
    q, r = np.linalg.qr(rng.normal(size=(n, n)))
    return q * np.sign(np.diag(r))


@given(st_size, st_seed)
def test_from_matrix(n, seed):
    a = random_matrix(n, seed)
    fact = SVDFactorization.from_matrix(a)
    assert fact.shape == (n, n)
    assert fact.is_square
    assert_allclose(fact.matrix(), a, atol=1e-12)
    assert_allclose(np.dot(fact.u.T, fact.u), np.eye(n), atol=1e-12)
    assert_allclose(np.dot(fact.vt, fact.vt.T), np.eye(n), atol=1e-12)


@given(st_size, st.integers(1, 8), st.integers(1, 4), st_seed)
def test_build(n, num_blocks, period, seed):
    rng = np.random.default_rng(seed)
    blocks = rng.normal(size=(num_blocks, n, n))
    expected = reduce(np.dot, blocks[::-1])
    fact = SVDFactorization.build(blocks, period)
    scale = np.max(np.abs(expected))
    assert_allclose(fact.matrix(), expected, rtol=1e-8, atol=1e-10 * scale)
    assert np.all(fact.s >= 0)


@given(st.integers(2, 10), st_seed)
def test_build_large_scales(n, seed):
    # Scales spanning more orders of magnitude than a double can resolve
    rng = np.random.default_rng(seed)
    scales = np.exp(np.linspace(-3, 3, n))
    blocks = [random_orthogonal(n, rng) * scales for _ in range(30)]
    expected = reduce(np.dot, blocks[::-1])
    fact = SVDFactorization.build(blocks)
    assert np.all(np.isfinite(fact.s))
    assert np.all(fact.s > 0)
    norm = np.max(np.abs(expected))
    assert_allclose(fact.matrix(), expected, atol=1e-8 * norm)
    assert_allclose(fact.s[0], np.linalg.svd(expected, compute_uv=False)[0], rtol=1e-8)
    assert_allclose(np.dot(fact.u.T, fact.u), np.eye(n), atol=1e-10)
    assert_allclose(np.dot(fact.vt, fact.vt.T), np.eye(n), atol=1e-10)


@given(st.integers(2, 10), st.integers(1, 3), st_seed)
def test_build_log_abs_det(n, period, seed):
    rng = np.random.default_rng(seed)
    scales = np.exp(np.linspace(-0.5, 0.5, n))
    blocks = [random_orthogonal(n, rng) * scales for _ in range(10)]
    fact = SVDFactorization.build(blocks, period)
    # Every block has unit determinant
    assert_allclose(fact.log_abs_det(), 0.0, atol=1e-8)


@given(st_size, st_seed)
def test_invert(n, seed):
    a = random_matrix(n, seed)
    assume(np.linalg.cond(a) < 1e6)
    fact = SVDFactorization.from_matrix(a)
    inv = fact.invert()
    assert_allclose(np.dot(inv.matrix(), a), np.eye(n), atol=1e-6)
    assert_allclose(inv.inverse(), a, atol=1e-6 * np.max(np.abs(a)))
    # Inverting twice gives back the input factors
    inv2 = inv.invert()
    assert_allclose(inv2.matrix(), a, atol=1e-12)
    # Input is not modified
    assert_allclose(fact.matrix(), a, atol=1e-12)


@given(st_size, st.floats(0.01, 100), st_seed)
def test_add_identity(n, lam, seed):
    a = random_matrix(n, seed)
    fact = SVDFactorization.from_matrix(a)
    expected = np.eye(n) + lam * a
    result = fact.add_identity(lam).matrix()
    assert_allclose(result, expected, atol=1e-10 * np.max(np.abs(expected)))


@given(st_size, st.floats(-10, 10), st_seed)
def test_rank1_update(n, lam, seed):
    rng = np.random.default_rng(seed)
    a = rng.normal(size=(n, n))
    u, v = rng.normal(size=n), rng.normal(size=n)
    fact = SVDFactorization.from_matrix(a)
    expected = a + lam * np.outer(u, v)
    result = fact.rank1_update(u, v, lam).matrix()
    scale = max(1.0, np.max(np.abs(expected)))
    assert_allclose(result, expected, atol=1e-10 * scale)


@given(st.integers(2, 16), st.integers(1, 4), st.floats(-10, 10), st_seed)
def test_add(n, k, lam, seed):
    rng = np.random.default_rng(seed)
    k = min(k, n)
    a = rng.normal(size=(n, n))
    other = SVDFactorization.from_matrix(np.dot(rng.normal(size=(n, k)),
                                                rng.normal(size=(k, n))))
    low_rank = SVDFactorization(other.u[:, :k], other.s[:k], other.vt[:k])
    fact = SVDFactorization.from_matrix(a)
    expected = a + lam * low_rank.matrix()
    result = fact.add(low_rank, lam).matrix()
    scale = max(1.0, np.max(np.abs(expected)))
    assert_allclose(result, expected, atol=1e-10 * scale)


@given(st_size, st_seed)
def test_log_abs_det_and_sign(n, seed):
    a = random_matrix(n, seed)
    assume(np.linalg.cond(a) < 1e8)
    fact = SVDFactorization.from_matrix(a)
    sign, logdet = np.linalg.slogdet(a)
    assert_allclose(fact.log_abs_det(), logdet, rtol=1e-8, atol=1e-10)
    assert fact.sign() == sign


def test_absorb_keeps_matrix():
    rng = np.random.default_rng(0)
    a = rng.normal(size=(6, 6))
    fact = SVDFactorization(np.dot(a, rng.normal(size=(6, 6))), np.ones(6), np.eye(6))
    expected = fact.matrix()
    fact.absorb_u()
    assert_allclose(fact.matrix(), expected, atol=1e-10)
    fact.absorb_vt()
    assert_allclose(fact.matrix(), expected, atol=1e-10)


def test_identity():
    fact = SVDFactorization.identity(4)
    assert_allclose(fact.matrix(), np.eye(4))
    assert fact.log_abs_det() == 0.0
    assert fact.sign() == 1.0
    assert fact.rank == 4


def test_invalid_shapes():
    with pytest.raises(InvalidArgument):
        SVDFactorization(np.eye(3), np.ones(2), np.eye(3))
    with pytest.raises(InvalidArgument):
        SVDFactorization(np.eye(3), np.ones((3, 1)), np.eye(3))
    with pytest.raises(InvalidArgument):
        SVDFactorization.build([])
    with pytest.raises(InvalidArgument):
        SVDFactorization.build([np.eye(3), np.eye(2)])

    low_rank = SVDFactorization(np.ones((4, 1)), np.ones(1), np.ones((1, 4)))
    assert not low_rank.is_square
    with pytest.raises(InvalidArgument):
        low_rank.invert()
    with pytest.raises(InvalidArgument):
        low_rank.add_identity()
    with pytest.raises(InvalidArgument):
        low_rank.log_abs_det()

    fact = SVDFactorization.identity(4)
    with pytest.raises(InvalidArgument):
        fact.rank1_update(np.ones(3), np.ones(4))
    with pytest.raises(InvalidArgument):
        fact.add(SVDFactorization.identity(3))


def test_invert_singular():
    fact = SVDFactorization(np.eye(3), np.array([2.0, 1.0, 0.0]), np.eye(3))
    with pytest.raises(NumericalInstability):
        fact.invert()
    with pytest.raises(NumericalInstability):
        fact.inverse()
