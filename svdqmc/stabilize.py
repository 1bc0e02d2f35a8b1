# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Stabilized representation of long matrix products.

The product of many time slice matrices quickly becomes numerically singular: its
singular values span many more orders of magnitude than a double can resolve.
The product is therefore kept in the factored form

.. math::
    B = U S V^T

with orthogonal `U`, `V` and a non-negative diagonal `S`. The scales are kept in
`S`, so the orthogonal factors stay well-conditioned no matter how long the
product gets.

References
----------
.. [1] Z. Bai et al., "Stable solutions of linear systems involving long chain
       of matrix multiplications", Linear Algebra Appl. 435, 659-673 (2011)
"""

import numpy as np
from .linalg import svd
from .errors import InvalidArgument, NumericalInstability


class SVDFactorization:
    """Matrix in the factored form :math:`U \\operatorname{diag}(S) V^T`.

    The factors may be rectangular, `U` of shape `(M, K)`, `S` of shape `(K,)` and
    `Vt` of shape `(K, N)`, which is used for low rank corrections. Operations that
    need orthogonal square factors (inversion, adding the identity) check the shape.

    All methods returning a factorization return a new object. The ``absorb``
    methods are the only in-place operations; they are used while a factorization is
    being built and do not change the represented matrix.

    Parameters
    ----------
    u : (M, K) np.ndarray
        The left factor.
    s : (K, ) np.ndarray
        The diagonal of the non-negative scale matrix.
    vt : (K, N) np.ndarray
        The right factor.
    """

    __slots__ = ["u", "s", "vt"]

    def __init__(self, u, s, vt):
        u = np.asarray(u, dtype=np.float64)
        s = np.asarray(s, dtype=np.float64)
        vt = np.asarray(vt, dtype=np.float64)
        if u.ndim != 2 or s.ndim != 1 or vt.ndim != 2:
            raise InvalidArgument("Factors must be a matrix, a vector and a matrix")
        if u.shape[1] != s.shape[0] or vt.shape[0] != s.shape[0]:
            raise InvalidArgument(f"Factor shapes {u.shape}, {s.shape}, {vt.shape} "
                                  f"don't match")
        self.u = u
        self.s = s
        self.vt = vt

    @classmethod
    def identity(cls, n):
        return cls(np.eye(n), np.ones(n), np.eye(n))

    @classmethod
    def from_matrix(cls, a):
        return cls(*svd(a))

    @classmethod
    def build(cls, blocks, svd_period=1):
        """Builds the stabilized product :math:`B_{M-1} \\cdots B_1 B_0` of matrices.

        Starting from the identity, `U` is left-multiplied by each block in order.
        Every `svd_period` blocks, and always after the last block, the scales are
        re-extracted by an SVD of :math:`U S` (see `absorb_u`).

        Parameters
        ----------
        blocks : (M, N, N) np.ndarray or sequence of (N, N) np.ndarray
            The matrices in the order they are applied.
        svd_period : int, optional
            The number of blocks multiplied between two decompositions.

        Returns
        -------
        factorization : SVDFactorization
        """
        if len(blocks) == 0:
            raise InvalidArgument("Can't build a factorization of zero matrices")
        n = blocks[0].shape[0]
        svd_period = max(1, int(svd_period))
        fact = cls.identity(n)
        last = len(blocks) - 1
        for i, block in enumerate(blocks):
            if block.shape != (n, n):
                raise InvalidArgument(f"Block {i} has shape {block.shape}, "
                                      f"expected {(n, n)}")
            fact.u = np.dot(block, fact.u)
            if i % svd_period == 0 or i == last:
                fact.absorb_u()
        return fact

    @property
    def shape(self):
        return self.u.shape[0], self.vt.shape[1]

    @property
    def rank(self):
        return self.s.shape[0]

    @property
    def is_square(self):
        m, n = self.shape
        return m == n == self.rank

    def _require_square(self, name):
        if not self.is_square:
            raise InvalidArgument(f"{name} requires square factors, got "
                                  f"{self.u.shape}, {self.s.shape}, {self.vt.shape}")

    def copy(self):
        return self.__class__(self.u.copy(), self.s.copy(), self.vt.copy())

    def matrix(self):
        """Returns the dense matrix :math:`U S V^T`."""
        return np.dot(self.u * self.s, self.vt)

    def absorb_u(self):
        """Re-decomposes :math:`U S` and folds the new right factor into `Vt`.

        .. math::
            U S = U' S' W  \\Rightarrow  U S V^T = U' S' (W V^T)
        """
        u, s, w = svd(self.u * self.s)
        self.u = u
        self.s = s
        self.vt = np.dot(w, self.vt)

    def absorb_vt(self):
        """Re-decomposes :math:`S V^T` and folds the new left factor into `U`.

        .. math::
            S V^T = W S' V'^T  \\Rightarrow  U S V^T = (U W) S' V'^T
        """
        w, s, vt = svd(self.s[:, np.newaxis] * self.vt)
        self.u = np.dot(self.u, w)
        self.s = s
        self.vt = vt

    def invert(self):
        """Returns the factorization of the inverse matrix.

        Since `U` and `V` are orthogonal the inverse is exactly
        :math:`V S^{-1} U^T`. No decomposition is computed: the diagonal is
        inverted and the orderings are reversed to keep the scales sorted.

        Raises
        ------
        NumericalInstability
            If the represented matrix is singular.
        """
        self._require_square("Inversion")
        if np.any(self.s <= 0.0):
            raise NumericalInstability("Can't invert a singular factorization")
        u = self.vt.T[:, ::-1]
        s = 1.0 / self.s[::-1]
        vt = self.u.T[::-1, :]
        return self.__class__(np.ascontiguousarray(u), s, np.ascontiguousarray(vt))

    def inverse(self):
        """Returns the dense inverse :math:`V S^{-1} U^T`."""
        self._require_square("Inversion")
        if np.any(self.s <= 0.0):
            raise NumericalInstability("Can't invert a singular factorization")
        return np.dot(self.vt.T / self.s, self.u.T)

    def add_identity(self, lam=1.0):
        """Returns the factorization of :math:`I + λ B`.

        With orthogonal factors
        .. math::
            I + λ U S V^T = U (U^T V + λ S) V^T

        so only the small core matrix in brackets has to be decomposed.
        """
        self._require_square("Adding the identity")
        core = np.dot(self.u.T, self.vt.T)
        core[np.diag_indices_from(core)] += lam * self.s
        u2, s2, w2 = svd(core)
        return self.__class__(np.dot(self.u, u2), s2, np.dot(w2, self.vt))

    def rank1_update(self, u, v, lam=1.0):
        """Returns the factorization of :math:`B + λ u v^T`.

        The vectors are projected into the bases of the factors and the rank one
        correction is added to the diagonal core:
        .. math::
            B + λ u v^T = U (S + λ (U^T u) (V^T v)^T) V^T
        """
        self._require_square("A rank-1 update")
        u = np.asarray(u, dtype=np.float64)
        v = np.asarray(v, dtype=np.float64)
        n = self.rank
        if u.shape != (n,) or v.shape != (n,):
            raise InvalidArgument(f"Update vectors of shape {u.shape}, {v.shape} don't "
                                  f"match factorization of size {n}")
        core = lam * np.outer(np.dot(self.u.T, u), np.dot(self.vt, v))
        core[np.diag_indices_from(core)] += self.s
        u2, s2, w2 = svd(core)
        return self.__class__(np.dot(self.u, u2), s2, np.dot(w2, self.vt))

    def add(self, other, lam=1.0):
        """Returns the factorization of :math:`B + λ B_o` for a (low rank) `B_o`.

        .. math::
            B + λ U_o S_o V_o^T = U (S + λ (U^T U_o) S_o (V_o^T V)) V^T
        """
        self._require_square("Adding a factorization")
        if other.shape != self.shape:
            raise InvalidArgument(f"Can't add factorization of shape {other.shape} "
                                  f"to shape {self.shape}")
        left = np.dot(self.u.T, other.u) * other.s
        right = np.dot(other.vt, self.vt.T)
        core = lam * np.dot(left, right)
        core[np.diag_indices_from(core)] += self.s
        u2, s2, w2 = svd(core)
        return self.__class__(np.dot(self.u, u2), s2, np.dot(w2, self.vt))

    def log_abs_det(self):
        """Returns :math:`\\log |\\det B| = \\sum \\log S`."""
        self._require_square("The determinant")
        with np.errstate(divide="ignore"):
            return float(np.sum(np.log(self.s)))

    def sign(self):
        """Returns the sign of the determinant, given by the orthogonal factors."""
        self._require_square("The determinant")
        sign_u, _ = np.linalg.slogdet(self.u)
        sign_vt, _ = np.linalg.slogdet(self.vt)
        return float(sign_u * sign_vt)

    def __repr__(self):
        return f"{self.__class__.__name__}(shape={self.shape}, rank={self.rank})"
