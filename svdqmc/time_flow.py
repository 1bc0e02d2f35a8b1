# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Time slice matrices and their products.

Notes
-----
The time slice matrix of slice `t` is
.. math::
    B_t = P \\operatorname{diag}((1 + σ_t) f)

where `P` is the free propagator, :math:`σ_t` the auxiliary field column read by
slice `t` and `f` the on-site factor of the static potential. Consecutive slices
are grouped into blocks, and only the block products are stored.
"""

import logging
import numpy as np
from .linalg import blas_dger, mdot
from .stabilize import SVDFactorization
from .errors import InvalidArgument

logger = logging.getLogger("svdqmc")


class SlicedPropagator:
    """Block products of the time slice matrices of one auxiliary field.

    Parameters
    ----------
    propagator : FreePropagator
        The free propagation operator of one time slice.
    field : (N, L) np.ndarray
        The auxiliary field of `N` sites and `L` time slices, as returned by
        `init_configuration`. The array is shared and flipped in place.
    onsite : (N, ) np.ndarray, optional
        The on-site factors `f` of the static potential. Defaults to ones.
    slices_per_block : int, optional
        The number of slices multiplied into one block. If `None` or not positive
        all slices are stored in a single block.
    """

    def __init__(self, propagator, field, onsite=None, slices_per_block=None):
        num_sites, num_times = field.shape
        if propagator.num_sites != num_sites:
            raise InvalidArgument(f"Propagator of size {propagator.num_sites} doesn't "
                                  f"match field with {num_sites} sites")
        if onsite is None:
            onsite = np.ones(num_sites, dtype=np.float64)
        if not slices_per_block or slices_per_block <= 0:
            slices_per_block = num_times

        self.propagator = propagator
        self.field = field
        self.onsite = np.asarray(onsite, dtype=np.float64)
        self.num_sites = num_sites
        self.num_times = num_times
        self.slices_per_block = min(int(slices_per_block), num_times)
        self.num_blocks = -(-num_times // self.slices_per_block)
        self.time_shift = 0
        self.blocks = np.empty((self.num_blocks, num_sites, num_sites), dtype=np.float64)
        self.make_blocks()

    def column(self, t):
        """Returns the field column read by time slice `t`."""
        return (t + self.time_shift) % self.num_times

    def diagonal(self, t):
        """Returns the diagonal :math:`(1 + σ_t) f` of slice `t`."""
        return (1.0 + self.field[:, self.column(t)]) * self.onsite

    def block_index(self, t):
        return t // self.slices_per_block

    def block_range(self, b):
        start = b * self.slices_per_block
        end = min(start + self.slices_per_block, self.num_times)
        return start, end

    def accumulate_forward(self, start=0, end=None):
        """Returns the time ordered product :math:`B_{end-1} \\cdots B_{start}`."""
        end = self.num_times if end is None else min(end, self.num_times)
        mat = np.eye(self.num_sites)
        for t in range(start, end):
            mat = self.diagonal(t)[:, np.newaxis] * mat
            mat = self.propagator.apply(mat)
        return mat

    def make_blocks(self):
        """Recomputes all block products from the auxiliary field."""
        for b in range(self.num_blocks):
            start, end = self.block_range(b)
            self.blocks[b] = self.accumulate_forward(start, end)
        return self.blocks

    def dense_product(self):
        """Returns the unstabilized product of all blocks."""
        return mdot(np.ascontiguousarray(self.blocks[::-1]))

    def flip(self, t, sites):
        """Flips the sign of the field at the given sites of slice `t`."""
        self.field[sites, self.column(t)] *= -1

    def compute_uv(self, t, sites):
        """Computes the vectors of the block update of flipping `sites` at slice `t`.

        With :math:`[s, e)` the slice range of the block containing `t`, the block
        changes by :math:`\\sum_x u_x v_x^T` where
        .. math::
            u_x = -2 σ_t[x] f[x] \\; B_{e-1} \\cdots B_{t+1} P e_x
            v_x = (B_{t-1} \\cdots B_{s})^T e_x

        Parameters
        ----------
        t : int
            The time slice of the flip.
        sites : (K, ) array_like
            The distinct sites flipped simultaneously.

        Returns
        -------
        u : (N, K) np.ndarray
        v : (N, K) np.ndarray
        """
        sites = np.atleast_1d(np.asarray(sites, dtype=np.int64))
        if not 0 <= t < self.num_times:
            raise InvalidArgument(f"Time slice {t} out of range [0, {self.num_times})")
        k = len(sites)
        cols = np.arange(k)
        start, end = self.block_range(self.block_index(t))

        u = np.zeros((self.num_sites, k), dtype=np.float64)
        u[sites, cols] = 1.0
        for i in range(t + 1, end):
            u = self.propagator.apply(u)
            u *= self.diagonal(i)[:, np.newaxis]
        u = self.propagator.apply(u)
        sigma = self.field[sites, self.column(t)]
        u *= -2.0 * sigma * self.onsite[sites]

        v = np.zeros((self.num_sites, k), dtype=np.float64)
        v[sites, cols] = 1.0
        for i in range(t - 1, start - 1, -1):
            v = self.propagator.apply_transpose(v)
            v *= self.diagonal(i)[:, np.newaxis]
        return u, v

    def make_correction(self, t, u, v):
        """Extends a block update to a stabilized update of the full product.

        The block update :math:`u v^T` of the block containing `t` changes the full
        product by :math:`L u v^T R`, where `L` and `R` are the products of the
        blocks after and before it. The correction is kept as a rank `K`
        factorization which is re-decomposed after every block multiplication.

        Returns
        -------
        correction : SVDFactorization
            The factorization with shapes `(N, K)`, `(K,)` and `(K, N)`.
        """
        b = self.block_index(t)
        k = u.shape[1]
        corr = SVDFactorization(u.copy(), np.ones(k), v.T.copy())
        corr.absorb_u()
        corr.absorb_vt()
        for block in self.blocks[b + 1:]:
            corr.u = np.dot(block, corr.u)
            corr.absorb_u()
        for block in self.blocks[:b][::-1]:
            corr.vt = np.dot(corr.vt, block)
            corr.absorb_vt()
        return corr

    def fold(self, t, u, v):
        """Adds the update :math:`\\sum_x u_x v_x^T` to the block containing `t`."""
        block = self.blocks[self.block_index(t)]
        for j in range(u.shape[1]):
            x = np.ascontiguousarray(u[:, j])
            y = np.ascontiguousarray(v[:, j])
            blas_dger(1.0, x, y, block)

    def log_abs_det(self):
        """Returns :math:`\\log |\\det B|` of the full product computed from the field.

        Since every slice is a product of `P` and a diagonal matrix, the determinant
        factorizes and does not need any matrix product.
        """
        n = self.num_times
        with np.errstate(divide="ignore"):
            logdet = n * self.propagator.log_abs_det()
            logdet += np.sum(np.log(np.abs(1.0 + self.field)))
            logdet += n * np.sum(np.log(np.abs(self.onsite)))
        return float(logdet)
