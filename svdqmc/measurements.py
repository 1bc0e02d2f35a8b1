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
from numba import float64, int64
from numba.experimental import jitclass

gmat_t = float64[:, ::1]


@jitclass([
    ("count", int64),
    ("num_sites", int64),
    ("_sign", float64),
    ("_kinetic", float64),
    ("_gf_up", gmat_t),
    ("_gf_dn", gmat_t),
    ("_n_up", float64[::1]),
    ("_n_dn", float64[::1]),
    ("_n_dbl", float64[::1]),
    ("_mz2", float64[::1]),
    ("_corr", gmat_t),
])
class MeasurementData:
    """Sign weighted measurement container for equal time observables."""
    def __init__(self, num_sites):
        self.count = 0
        self.num_sites = num_sites
        self._sign = 0.0
        self._kinetic = 0.0

        # Initialize measurement data
        self._gf_up = np.zeros((num_sites, num_sites), dtype=np.float64)
        self._gf_dn = np.zeros((num_sites, num_sites), dtype=np.float64)
        self._n_up = np.zeros(num_sites, dtype=np.float64)
        self._n_dn = np.zeros(num_sites, dtype=np.float64)
        self._n_dbl = np.zeros(num_sites, dtype=np.float64)
        self._mz2 = np.zeros(num_sites, dtype=np.float64)
        self._corr = np.zeros((num_sites, num_sites), dtype=np.float64)

    def _norm(self):
        # Observables are normalized by the sum of the signs
        if self._sign == 0.0:
            return np.nan
        return self._sign

    @property
    def sign(self):
        if self.count == 0:
            return np.nan
        return self._sign / self.count

    @property
    def n_up(self):
        return self._n_up / self._norm()

    @property
    def n_dn(self):
        return self._n_dn / self._norm()

    @property
    def n_dbl(self):
        return self._n_dbl / self._norm()

    @property
    def mz2(self):
        return self._mz2 / self._norm()

    @property
    def kinetic(self):
        return self._kinetic / self._norm()

    def accumulate(self, gf_up, gf_dn, ham, sign):
        """Acummulate (unnormalized) equal time measurements of observables.

        Parameters
        ----------
        gf_up : (N, N) np.ndarray
            The current spin-up Green's function matrix :math:`G_↑`.
        gf_dn : (N, N) np.ndarray
            The current spin-down Green's function matrix :math:`G_↓`.
        ham : (N, N) np.ndarray
            The hopping matrix of the model.
        sign : float
            The sign of the weight of the current configuration.

        Notes
        -----
        With :math:`ρ_{ij} = <c^†_i c_j> = δ_{ij} - [G]_{ji}` the measured observables
        are defined as
        .. math::
            <n_{iσ}>  = 1 - [G_σ]_{ii}
            <n_↑ n_↓> = (1 - [G_↑]_{ii}) (1 - [G_↓]_{ii})
            <m_z^2> = <n_↑> + <n_↓> - 2 <n_↑ n_↓>
            E_kin = \\sum_σ (\\tr H - \\tr H G_σ) / N
            <m_i m_j> = \\sum_σ (<n_{iσ}> <n_{jσ}> + ρ^σ_{ij} G^σ_{ij})
                        - <n_{i↑}> <n_{j↓}> - <n_{i↓}> <n_{j↑}>
        """
        n = self.num_sites
        eye = np.eye(n)

        n_up = 1 - np.diag(gf_up)
        n_dn = 1 - np.diag(gf_dn)
        n_dbl = n_up * n_dn
        mz2 = n_up + n_dn - 2 * n_dbl

        trace = np.trace(ham)
        kinetic = 2 * trace - np.sum(ham * gf_up.T) - np.sum(ham * gf_dn.T)

        rho_up = eye - gf_up.T
        rho_dn = eye - gf_dn.T
        corr = np.outer(n_up, n_up) + rho_up * gf_up
        corr += np.outer(n_dn, n_dn) + rho_dn * gf_dn
        corr -= np.outer(n_up, n_dn) + np.outer(n_dn, n_up)

        self.count += 1
        self._sign += sign
        self._kinetic += kinetic / n * sign
        self._gf_up += gf_up * sign
        self._gf_dn += gf_dn * sign
        self._n_up += n_up * sign
        self._n_dn += n_dn * sign
        self._n_dbl += n_dbl * sign
        self._mz2 += mz2 * sign
        self._corr += corr * sign

    def normalize(self):
        """Normalizes and returns all equal time measurements of observables."""
        norm = self._norm()
        gf_up = self._gf_up / norm
        gf_dn = self._gf_dn / norm
        n_up = self._n_up / norm
        n_dn = self._n_dn / norm
        n_dbl = self._n_dbl / norm
        mz2 = self._mz2 / norm
        corr = self._corr / norm
        kinetic = self._kinetic / norm
        return gf_up, gf_dn, n_up, n_dn, n_dbl, mz2, corr, kinetic, self.sign
