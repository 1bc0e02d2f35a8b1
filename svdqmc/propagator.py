# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Free propagation operators :math:`P = e^{-Δτ H_0}` of one time slice.

The stabilization engine only relies on the interface of `FreePropagator`: a linear
operator that can be applied (and transposed) to single vectors of shape `(N,)`
or to the columns of matrices of shape `(N, M)`.
"""

import logging
import numpy as np
from scipy import fft
from scipy.linalg import expm

logger = logging.getLogger("svdqmc")


class FreePropagator:
    """Interface of the free propagation operator of one time slice."""

    num_sites = 0

    def apply(self, x):
        """Returns :math:`P x` for a vector or the columns of a matrix."""
        raise NotImplementedError

    def apply_transpose(self, x):
        """Returns :math:`P^T x` for a vector or the columns of a matrix."""
        raise NotImplementedError

    def log_abs_det(self):
        """Returns :math:`\\log |\\det P|`."""
        raise NotImplementedError

    def matrix(self):
        return self.apply(np.eye(self.num_sites))


class FFTPropagator(FreePropagator):
    """Propagator of a periodic lattice, applied in momentum space.

    The kinetic term is diagonal in momentum space, so applying `P` costs two
    Fourier transforms and a diagonal multiplication.

    Parameters
    ----------
    model : HubbardModel
        The periodic lattice model.
    dt : float
        The imaginary time step `Δτ`.
    """

    def __init__(self, model, dt):
        if not model.periodic:
            raise ValueError("The FFT propagator requires periodic boundary conditions")
        self.shape = model.shape
        self.num_sites = model.num_sites
        self.dt = dt
        self.energies = model.dispersion()
        self.factors = np.exp(-dt * self.energies)

    def apply(self, x):
        x = np.asarray(x, dtype=np.float64)
        vector = x.ndim == 1
        cols = x.reshape(self.shape + (-1, ))
        xk = fft.fftn(cols, axes=(0, 1, 2))
        xk *= self.factors[..., np.newaxis]
        out = fft.ifftn(xk, axes=(0, 1, 2)).real
        out = out.reshape(self.num_sites, -1)
        return out[:, 0] if vector else out

    def apply_transpose(self, x):
        # Real symmetric hopping
        return self.apply(x)

    def log_abs_det(self):
        return float(-self.dt * np.sum(self.energies))


class DensePropagator(FreePropagator):
    """Propagator stored as a dense matrix, valid for any boundary conditions.

    Parameters
    ----------
    model : HubbardModel
        The lattice model.
    dt : float
        The imaginary time step `Δτ`.
    """

    def __init__(self, model, dt):
        self.num_sites = model.num_sites
        self.dt = dt
        self.ham = model.hamiltonian_kinetic()
        self.expk = expm(-dt * self.ham)
        logger.debug("min(e^k)=%s", np.min(self.expk))
        logger.debug("max(e^k)=%s", np.max(self.expk))

    def apply(self, x):
        return np.dot(self.expk, x)

    def apply_transpose(self, x):
        return np.dot(self.expk.T, x)

    def log_abs_det(self):
        return float(-self.dt * np.trace(self.ham))

    def matrix(self):
        return self.expk.copy()


def make_propagator(model, dt, dense=False):
    """Returns the FFT propagator for periodic lattices and the dense one otherwise."""
    if model.periodic and not dense:
        return FFTPropagator(model, dt)
    return DensePropagator(model, dt)
