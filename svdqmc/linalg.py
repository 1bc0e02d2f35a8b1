# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Low level linear algebra: checked SVD drivers and BLAS rank-1 kernels."""

import ctypes
import logging
import numpy as np
from scipy.linalg import lapack
from numba.extending import get_cython_function_address
from numba import njit, float64
from .errors import DecompositionFailure, InvalidArgument, NumericalInstability

logger = logging.getLogger("svdqmc")

_dble = ctypes.POINTER(ctypes.c_double)
_int = ctypes.POINTER(ctypes.c_int)

# dger(M, N, ALPHA, X, INCX, Y, INCY, A, LDA)
_ft = ctypes.CFUNCTYPE(None, _int, _int, _dble, _dble, _int, _dble, _int, _dble, _int)
_dger_fn = _ft(get_cython_function_address("scipy.linalg.cython_blas", "dger"))


@njit((float64, float64[::1], float64[::1], float64[:, ::1]), nogil=True, cache=True)
def blas_dger(alpha, x, y, a):
    """Performs the rank 1 operation .math:`A = α x•y^T + A` via a BLAS call.

    Parameters
    ----------
    alpha : float
        A scalar factor of the rank1 update.
    x : (M, ) np.ndarray
        An M element contiguous column vector.
    y : (N, ) np.ndarray
        An N element contiguous row vector.
    a : (M, N) np.ndarray
        The C-contiguous MxN matrix to be updated in place.
    """
    _m, _n = a.shape

    alpha = np.array(alpha, dtype=np.float64)
    # BLAS sees the row-major array as its transpose
    m = np.array(_n, dtype=np.int32)
    n = np.array(_m, dtype=np.int32)
    incx = np.array(1, np.int32)
    incy = np.array(1, np.int32)
    lda = np.array(_n, np.int32)

    _dger_fn(m.ctypes,
             n.ctypes,
             alpha.ctypes,
             y.view(np.float64).ctypes,
             incy.ctypes,
             x.view(np.float64).ctypes,
             incx.ctypes,
             a.view(np.float64).ctypes,
             lda.ctypes)


@njit(
    (float64, float64[:], float64[:], float64[:, :]),
    nogil=True, cache=True, fastmath=True
)
def numpy_dger(alpha, x, y, a):
    """Performs the rank 1 operation .math:`A = α x•y^T + A` via numpy methods."""
    a[:, :] = alpha * np.outer(x, y) + a


@njit(float64[:, :](float64[:, :, ::1]), fastmath=True, nogil=True, cache=True)
def mdot(mats):
    r"""Computes the dot-product of multiple matrices.

    Parameters
    ----------
    mats : (L, N, N) np.ndarray
        The input matrices in the order they are multiplied.

    Returns
    -------
    prod : (N, N) np.ndarray
        The dot-product of multiple matrices.
    """
    prod = mats[0].copy()
    for mat in mats[1:]:
        prod = np.dot(prod, mat)
    return prod


def svd(a, full_matrices=False):
    """Computes the singular value decomposition :math:`A = U S V^T` of a real matrix.

    The decomposition is computed with the LAPACK driver ``dgesvd``. If the driver
    does not converge the decomposition is retried once with the divide and conquer
    driver ``dgesdd`` before giving up.

    Parameters
    ----------
    a : (M, N) array_like
        The matrix to decompose.
    full_matrices : bool, optional
        If `True` the orthogonal factors are square, otherwise the reduced shapes
        `(M, K)` and `(K, N)` with `K = min(M, N)` are returned.

    Returns
    -------
    u : np.ndarray
        The left singular vectors as columns.
    s : (K, ) np.ndarray
        The singular values in non-increasing order.
    vt : np.ndarray
        The right singular vectors as rows.

    Raises
    ------
    InvalidArgument
        If the input is not a non-empty matrix or LAPACK reports an illegal argument.
    NumericalInstability
        If the input contains non-finite values.
    DecompositionFailure
        If neither driver converges.
    """
    a = np.asarray(a, dtype=np.float64)
    if a.ndim != 2 or a.size == 0:
        raise InvalidArgument(f"Can't decompose array of shape {a.shape}")
    if not np.all(np.isfinite(a)):
        raise NumericalInstability("Matrix passed to the SVD is not finite")

    fm = int(full_matrices)
    u, s, vt, info = lapack.dgesvd(a, compute_uv=1, full_matrices=fm)
    check_info(info, "dgesvd", recoverable=True)
    if info > 0:
        logger.warning("dgesvd did not converge (info=%s), retrying with dgesdd", info)
        u, s, vt, info = lapack.dgesdd(a, compute_uv=1, full_matrices=fm)
        check_info(info, "dgesdd")
    return u, s, vt


def check_info(info, routine, recoverable=False):
    """Checks the status returned by a LAPACK routine.

    A negative status is an illegal argument and always raises `InvalidArgument`.
    A positive status raises `DecompositionFailure` unless `recoverable` is set,
    in which case the caller is responsible for retrying.
    """
    if info < 0:
        raise InvalidArgument(f"Argument {-info} of {routine} had an illegal value")
    if info > 0 and not recoverable:
        raise DecompositionFailure(info, routine)
