# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Local updates of the auxiliary field via low rank corrections.

Notes
-----
Flipping the field at the sites `X` of slice `t` changes the full product of the
time slices by a rank `K = |X|` correction :math:`B \\rightarrow B + U_c S_c V_c^T`.
The weight ratio of the flip only needs the factorization of
:math:`I + e^{s_σ} B`:

.. math::
    \\frac{w_σ(B + U_c S_c V_c^T)}{w_σ(B)} = \\det(I + e^{s_σ} C)

where :math:`C` is the `K×K` core matrix of the correction (see
`GreenFunctionEngine.core`). An accepted correction is added to the factorization
of every species, so the next proposal is again scored against the current
configuration. The weight changes are collected in a batch, which is flushed once
it reaches its maximal size: the block products already contain the folded
corrections, so the factorization is simply rebuilt from the blocks.
"""

import math
import logging
from dataclasses import dataclass, field
import numpy as np
from .model import UP, DN
from .stabilize import SVDFactorization
from .greens import GreenFunctionEngine

logger = logging.getLogger("svdqmc")


@dataclass
class Proposal:
    """A computed, not yet applied, flip of the auxiliary field."""

    time: int
    sites: np.ndarray
    u: np.ndarray
    v: np.ndarray
    correction: SVDFactorization
    log_ratio: float
    sign: float
    logdets: dict = field(default_factory=dict)
    signs: dict = field(default_factory=dict)


class UpdateBatch:
    """Accepted corrections whose weight change is not yet added to the weight.

    The corrections themselves are already contained in the factorizations of the
    engine, the batch only counts them and accumulates their weight ratios.

    Parameters
    ----------
    max_size : int
        The number of accepted correction vectors at which the batch is flushed.
    """

    def __init__(self, max_size=1):
        self.max_size = max(1, int(max_size))
        self.size = 0
        self.logdets = dict()
        self.signs = dict()
        self.reset()

    def reset(self):
        self.size = 0
        self.logdets = {UP: 0.0, DN: 0.0}
        self.signs = {UP: 1.0, DN: 1.0}

    @property
    def full(self):
        return self.size >= self.max_size

    @property
    def log_prob(self):
        """The accumulated log-weight change of the pending corrections."""
        return self.logdets[UP] + self.logdets[DN]

    @property
    def sign(self):
        """The accumulated sign change of the pending corrections."""
        return self.signs[UP] * self.signs[DN]

    def append(self, correction, logdets, signs):
        """Adds the per-species log-ratios and signs of an accepted correction."""
        self.size += correction.rank
        for sigma in (UP, DN):
            self.logdets[sigma] += logdets[sigma]
            self.signs[sigma] *= signs[sigma]


class LocalUpdateSampler:
    """Computes and applies local flips of the auxiliary field.

    Parameters
    ----------
    sliced : SlicedPropagator
        The block products of the time slices. Accepted flips are folded into the
        blocks in place.
    exponents : dict
        The exponents :math:`s_σ` of both species.
    svd_period : int, optional
        The number of blocks multiplied between two decompositions when the
        factorization is built.
    batch_size : int, optional
        The number of accepted correction vectors after which the factorization is
        rebuilt from the blocks.
    """

    def __init__(self, sliced, exponents, svd_period=1, batch_size=1):
        self.sliced = sliced
        self.exponents = dict(exponents)
        self.svd_period = svd_period
        self.batch = UpdateBatch(batch_size)
        self.factorization = None
        self.engine = None
        self.refactorize()

    def refactorize(self):
        """Rebuilds the factorization and the weights from the current blocks."""
        self.factorization = SVDFactorization.build(self.sliced.blocks, self.svd_period)
        self.engine = GreenFunctionEngine(self.factorization, self.exponents)
        self.batch.reset()

    def rebuild(self):
        """Recomputes the blocks from the auxiliary field and refactorizes."""
        self.sliced.make_blocks()
        self.refactorize()

    def log_probability(self):
        """Returns the log-weight and sign of the current factorizations."""
        return self.engine.log_probability()

    def _rank1_ratios(self, correction):
        x = correction.u[:, 0] * correction.s[0]
        y = correction.vt[0]
        logdets, signs = dict(), dict()
        for sigma in self.engine.species:
            a = self.engine.project(sigma, x, y)
            r = 1.0 + math.exp(self.exponents[sigma]) * a
            signs[sigma] = math.copysign(1.0, r) if r != 0 else 0.0
            logdets[sigma] = math.log(abs(r)) if r != 0 else -math.inf
        return logdets, signs

    def _core_ratios(self, correction):
        eye = np.eye(correction.rank)
        logdets, signs = dict(), dict()
        for sigma in self.engine.species:
            core = self.engine.core(sigma, correction.u, correction.s, correction.vt)
            sign, logdet = np.linalg.slogdet(eye + math.exp(self.exponents[sigma]) * core)
            signs[sigma] = float(sign)
            logdets[sigma] = float(logdet)
        return logdets, signs

    def propose(self, t, sites):
        """Computes the weight ratio of flipping the field at `sites` of slice `t`.

        Parameters
        ----------
        t : int
            The time slice.
        sites : (K, ) array_like
            The distinct sites flipped together.

        Returns
        -------
        proposal : Proposal
            The proposal, including the log of the absolute weight ratio relative to
            the current (tracked) weight.
        """
        sites = np.atleast_1d(np.asarray(sites, dtype=np.int64))
        u, v = self.sliced.compute_uv(t, sites)
        correction = self.sliced.make_correction(t, u, v)
        if len(sites) == 1:
            # Scalar projections a, b through (I + e^s B)^{-1}
            logdets, signs = self._rank1_ratios(correction)
        else:
            logdets, signs = self._core_ratios(correction)

        log_ratio = 0.0
        sign = 1.0
        for sigma in self.engine.species:
            log_ratio += logdets[sigma]
            sign *= signs[sigma]
        return Proposal(t, sites, u, v, correction, log_ratio, sign, logdets, signs)

    def accept(self, proposal):
        """Applies an accepted flip.

        The field is flipped, the block update is folded into its block and the
        correction is added to the factorizations of the engine.
        """
        self.sliced.flip(proposal.time, proposal.sites)
        self.sliced.fold(proposal.time, proposal.u, proposal.v)
        self.engine.update(proposal.correction)
        self.batch.append(proposal.correction, proposal.logdets, proposal.signs)

    def flush(self):
        """Absorbs the pending corrections by refactorizing the updated blocks.

        Returns
        -------
        log_prob : float
            The log-weight change of the flushed corrections.
        sign : float
            The sign change of the flushed corrections.
        """
        log_prob, sign = self.batch.log_prob, self.batch.sign
        if self.batch.size:
            self.refactorize()
        return log_prob, sign

    def _fresh_log_probability(self):
        self.sliced.make_blocks()
        fact = SVDFactorization.build(self.sliced.blocks, self.svd_period)
        return GreenFunctionEngine(fact, self.exponents).log_probability()

    def exact_log_ratio(self, t, sites):
        """Computes the weight ratio of a flip by rebuilding everything from scratch.

        This is the slow reference path of `propose`. The field and the blocks are
        restored afterwards.

        Returns
        -------
        log_ratio : float
        sign : float
        """
        blocks = self.sliced.blocks.copy()
        try:
            plog_old, sign_old = self._fresh_log_probability()
            self.sliced.flip(t, sites)
            try:
                plog_new, sign_new = self._fresh_log_probability()
            finally:
                self.sliced.flip(t, sites)
        finally:
            self.sliced.blocks[...] = blocks
        return plog_new - plog_old, sign_new * sign_old
