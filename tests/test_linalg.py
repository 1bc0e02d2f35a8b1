# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones

import numpy as np
import pytest
from scipy import linalg as la
from numpy.testing import assert_allclose
from hypothesis import given, settings, strategies as st
import hypothesis.extra.numpy as hnp
from functools import reduce
from svdqmc import linalg
from svdqmc.errors import DecompositionFailure, InvalidArgument, NumericalInstability

settings.load_profile("svdqmc")

xarr = hnp.arrays(dtype=np.float64, shape=7, elements=st.floats(-10., 10))
yarr = hnp.arrays(dtype=np.float64, shape=5, elements=st.floats(-10., 10))
aarr = hnp.arrays(dtype=np.float64, shape=(7, 5), elements=st.floats(-10., 10))
sarr = hnp.arrays(dtype=np.float64, shape=10, elements=st.floats(-10., 10))
marr = hnp.arrays(dtype=np.float64, shape=(10, 10), elements=st.floats(-10., 10))


@given(st.floats(-1.0, +1.0), xarr, yarr, aarr)
def test_blas_dger(alpha, x, y, a):
    expected = la.blas.dger(alpha, np.copy(x), np.copy(y), a=np.copy(a))
    result = np.copy(a)
    linalg.blas_dger(alpha, x, y, result)
    assert_allclose(expected, result, rtol=1e-10, atol=1e-12)


@given(st.floats(-1.0, +1.0), sarr, sarr, marr)
def test_blas_dger_square(alpha, x, y, a):
    expected = a + alpha * np.outer(x, y)
    result = np.copy(a)
    linalg.blas_dger(alpha, x, y, result)
    assert_allclose(expected, result, rtol=1e-10, atol=1e-12)


@given(st.floats(-1.0, +1.0), xarr, yarr, aarr)
def test_dger_numpy(alpha, x, y, a):
    expected = la.blas.dger(alpha, np.copy(x), np.copy(y), a=np.copy(a))
    result = np.copy(a)
    linalg.numpy_dger(alpha, x, y, result)
    assert_allclose(expected, result, rtol=1e-10, atol=1e-12)


@given(st.integers(1, 8), st.integers(0, 2**32 - 1))
def test_mdot(num_mats, seed):
    rng = np.random.default_rng(seed)
    mats = rng.normal(size=(num_mats, 6, 6))
    expected = reduce(np.dot, mats)
    assert_allclose(linalg.mdot(mats), expected, rtol=1e-10, atol=1e-10)


@given(st.integers(1, 12), st.integers(1, 12), st.integers(0, 2**32 - 1))
def test_svd(m, n, seed):
    a = np.random.default_rng(seed).normal(size=(m, n))
    u, s, vt = linalg.svd(a)
    k = min(m, n)
    assert u.shape == (m, k)
    assert s.shape == (k, )
    assert vt.shape == (k, n)
    assert np.all(s >= 0)
    assert np.all(np.diff(s) <= 0)
    assert_allclose(np.dot(u * s, vt), a, atol=1e-12)
    assert_allclose(np.dot(u.T, u), np.eye(k), atol=1e-12)


def test_svd_invalid():
    with pytest.raises(InvalidArgument):
        linalg.svd(np.ones(3))
    with pytest.raises(InvalidArgument):
        linalg.svd(np.ones((0, 3)))
    a = np.eye(3)
    a[1, 2] = np.nan
    with pytest.raises(NumericalInstability):
        linalg.svd(a)
    a[1, 2] = np.inf
    with pytest.raises(NumericalInstability):
        linalg.svd(a)


def test_check_info():
    linalg.check_info(0, "dgesvd")
    linalg.check_info(3, "dgesvd", recoverable=True)
    with pytest.raises(InvalidArgument):
        linalg.check_info(-2, "dgesvd")
    with pytest.raises(DecompositionFailure) as err:
        linalg.check_info(3, "dgesdd")
    assert err.value.info == 3
    assert err.value.routine == "dgesdd"
    assert isinstance(err.value, np.linalg.LinAlgError)
