# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Equal time Green's functions and configuration weights from a stabilized product.

For the stabilized product `B` of all time slices the weight of species `σ` is
.. math::
    w_σ = \\det(I + e^{s_σ} B)

and the equal time Green's function is :math:`G_σ = (I + e^{s_σ} B)^{-1}`, so that
the density is :math:`<n_{iσ}> = 1 - [G_σ]_{ii}`. Both are obtained from the
factorization of :math:`I + e^{s_σ} B`, never from the dense product.
"""

import math
import numpy as np
from .model import UP, DN
from .errors import InvalidArgument


class GreenFunctionEngine:
    """Derives weights and Green's functions from the factorization of `B`.

    Parameters
    ----------
    factorization : SVDFactorization
        The stabilized product `B` of all time slices.
    exponents : dict
        The exponents :math:`s_σ` of the species `UP` and `DN`.
    """

    species = (UP, DN)

    def __init__(self, factorization, exponents):
        self.base = factorization
        self.exponents = {sigma: float(exponents[sigma]) for sigma in self.species}
        self._factors = dict()
        for sigma in self.species:
            lam = math.exp(self.exponents[sigma])
            self._factors[sigma] = factorization.add_identity(lam)

    def update(self, correction):
        """Adds a low rank correction :math:`U_c S_c V_c^T` of `B` to all species.

        The factorizations of :math:`I + e^{s_σ} B` are updated in place of a
        rebuild, `base` still refers to the product the engine was built from.
        """
        for sigma in self.species:
            lam = math.exp(self.exponents[sigma])
            fact = self._factors[sigma]
            if correction.rank == 1:
                u = correction.u[:, 0] * correction.s[0]
                self._factors[sigma] = fact.rank1_update(u, correction.vt[0], lam)
            else:
                self._factors[sigma] = fact.add(correction, lam)

    def factorization(self, sigma):
        """Returns the factorization of :math:`I + e^{s_σ} B`."""
        try:
            return self._factors[sigma]
        except KeyError:
            raise InvalidArgument(f"Unknown species {sigma}") from None

    def log_probability(self):
        """Returns the log-weight :math:`\\sum_σ \\log|w_σ|` and the sign of the weight.

        The scales of the factorizations are non-negative, the sign is carried by the
        determinants of the orthogonal factors.
        """
        plog = 0.0
        psign = 1.0
        for sigma in self.species:
            fact = self._factors[sigma]
            plog += fact.log_abs_det()
            psign *= fact.sign()
        return plog, psign

    def greens(self, sigma):
        """Returns the Green's function :math:`G_σ = (I + e^{s_σ} B)^{-1}`."""
        return self.factorization(sigma).inverse()

    def density_matrix(self, sigma):
        """Returns :math:`I - G_σ`, computed in the inverse form.

        .. math::
            I - (I + e^{s} B)^{-1} = (I + e^{-s} B^{-1})^{-1}

        which only needs the inverted factorization of `B`.
        """
        lam = math.exp(-self.exponents[sigma])
        return self.base.invert().add_identity(lam).inverse()

    def project(self, sigma, u, v):
        """Returns :math:`v^T (I + e^{s_σ} B)^{-1} u` through the factors."""
        fact = self.factorization(sigma)
        x = np.dot(fact.u.T, u) / fact.s
        return float(np.dot(np.dot(fact.vt, v), x))

    def core(self, sigma, u, s, vt):
        """Returns the core matrix of a low rank correction :math:`U_c S_c V_c^T`.

        The core
        .. math::
            C = (V_c^T V) S^{-1} (U^T U_c) S_c

        satisfies :math:`\\det(I + e^{s}(B + U_c S_c V_c^T)) = w_σ \\det(I + e^{s} C)`.
        """
        fact = self.factorization(sigma)
        if u.shape[0] != fact.u.shape[0] or vt.shape[1] != fact.vt.shape[1]:
            raise InvalidArgument(f"Correction of shape {u.shape}, {vt.shape} doesn't "
                                  f"match factorization of shape {fact.shape}")
        left = np.dot(vt, fact.vt.T) / fact.s
        right = np.dot(fact.u.T, u) * s
        return np.dot(left, right)
