# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

import math
import logging
import numpy as np
from scipy.sparse import csr_matrix
from lattpy import Lattice

__all__ = ["UP", "DN", "HubbardModel", "hubbard_hypercube"]

logger = logging.getLogger("svdqmc")

UP, DN = +1, -1


def _normalize_shape(shape, hop):
    shape = (shape, ) if isinstance(shape, (int, np.integer)) else tuple(shape)
    if len(shape) > 3:
        raise ValueError(f"Only lattices up to three dimensions supported, got {shape}")
    shape = tuple(int(x) for x in shape) + (1, ) * (3 - len(shape))
    if isinstance(hop, (int, float, np.number)):
        hop = (float(hop), ) * 3
    else:
        hop = tuple(float(x) for x in hop) + (0.0, ) * (3 - len(hop))
    # Collapse axes without neighbours
    hop = tuple(t if n >= 2 else 0.0 for n, t in zip(shape, hop))
    shape = tuple(n if n >= 2 else 1 for n in shape)
    return shape, hop


def build_lattice(shape, periodic=True):
    """Builds the simple hypercubic `lattpy` lattice of the non-trivial axes.

    Parameters
    ----------
    shape : (3, ) tuple of int
        The number of sites along each axis. Axes with a single site are skipped.
    periodic : bool, optional
        Periodic boundary conditions along all axes with more than two sites.

    Returns
    -------
    latt : Lattice
        The built lattice with nearest neighbor connections.
    axes : list of int
        The axes of `shape` spanned by the lattice vectors.
    """
    axes = [ax for ax, n in enumerate(shape) if n >= 2]
    # On two sites the periodic neighbor is the regular one
    periodic_axes = [i for i, ax in enumerate(axes) if periodic and shape[ax] > 2]
    latt = Lattice(np.eye(len(axes)))
    latt.add_atom()
    latt.add_connections(1)
    latt.build([shape[ax] - 1 for ax in axes], periodic=periodic_axes or None)
    return latt, axes


class HubbardModel:
    """Hubbard model with an attractive on-site interaction on a hyper-rectangle.

    The Hamiltonian is
    .. math::
        H = -\\sum_{<ij>σ} t_{ij} c^†_{iσ} c_{jσ} + \\sum_{iσ} (w_i - μ' - σ B/2) n_{iσ}
            - U \\sum_i n_{i↑} n_{i↓}

    where :math:`w_i = h (-1)^{x+y+z}` is a staggered potential and the absolute
    chemical potential :math:`μ' = μ - U/2` is measured from half filling, so that
    `mu=0` is half filled on a bipartite lattice.

    Parameters
    ----------
    shape : int or sequence of int
        The number of sites along each axis, at most three axes.
    u : float, optional
        The (non-negative) strength `U` of the attractive interaction.
    hop : float or sequence of float, optional
        The hopping energy `t`, either for all axes or per axis.
    mu : float, optional
        The chemical potential `μ` relative to half filling.
    field : float, optional
        The magnetic field `B` coupling to the spin.
    stagger : float, optional
        The amplitude `h` of the staggered on-site potential.
    beta : float, optional
        The inverse of the temperature `β=1/T`.
    periodic : bool, optional
        Periodic boundary conditions along all axes.
    """

    def __init__(self, shape, u=4.0, hop=1.0, mu=0.0, field=0.0, stagger=0.0, beta=1.0,
                 periodic=True):
        if u < 0:
            raise ValueError(f"Interaction has to be attractive (u >= 0), got {u}")
        self.shape, self.hop = _normalize_shape(shape, hop)
        self.u = u
        self.mu = mu
        self.field = field
        self.stagger = stagger
        self.beta = beta
        self.periodic = bool(periodic)
        self._lattice = None

    @property
    def num_sites(self):
        return int(np.prod(self.shape))

    def set_beta(self, beta):
        """Set's the inverse temperature `β=1/T`."""
        self.beta = beta

    def set_temperature(self, temp):
        """Set's the temperature `T` by computing the inverse temperature `β=1/T`."""
        self.beta = 1 / temp

    def positions(self):
        """Returns the lattice positions of the sites in row-major order."""
        idx = np.indices(self.shape).reshape(3, -1)
        return idx.T

    @property
    def lattice(self):
        """The `lattpy` lattice of the model and the axes it spans."""
        if self._lattice is None:
            self._lattice = build_lattice(self.shape, self.periodic)
        return self._lattice

    def hamiltonian_kinetic(self):
        r"""Builds the tight-binding hopping matrix of the model.

        .. math::
            H = - \sum_{<ij>} t_{ij} c^†_i c_j

        The nearest neighbor bonds are taken from the `lattpy` lattice, the sites
        are ordered by the row-major index :math:`i = (x L_y + y) L_z + z`.

        Returns
        -------
        ham : (N, N) np.ndarray
            The hopping matrix, where `N` is the number of lattice sites.
        """
        num_sites = self.num_sites
        if num_sites == 1:
            return np.zeros((1, 1), dtype=np.float64)
        latt, axes = self.lattice
        if latt.num_sites != num_sites:
            raise ValueError(f"Lattice has {latt.num_sites} sites, expected {num_sites}")

        # Map the lattice sites to the row-major index of their position
        coords = np.zeros((latt.num_sites, 3), dtype=np.int64)
        coords[:, axes] = np.rint(latt.data.positions).astype(np.int64)
        index = np.ravel_multi_index(coords.T, self.shape)

        hop = np.array(self.hop)
        for ax in axes:
            if self.periodic and self.shape[ax] == 2:
                # Both bonds of a periodic two site axis connect the same pair
                hop[ax] *= 2

        dmap = latt.data.map()
        rows, cols = dmap.indices
        data = np.zeros(dmap.size, dtype=np.float64)
        bonds = dmap.hopping(0)
        delta = latt.data.positions[cols[bonds]] - latt.data.positions[rows[bonds]]
        bond_axes = np.asarray(axes)[np.argmax(np.abs(delta), axis=1)]
        data[bonds] = -hop[bond_axes]
        shape = (num_sites, num_sites)
        return csr_matrix((data, (index[rows], index[cols])), shape=shape).toarray()

    def dispersion(self):
        r"""Returns the band energies :math:`ε_k = -2 \sum_d t_d \cos(2π k_d / L_d)`.

        The energies are returned on the grid of the discrete Fourier transform,
        with shape `(Lx, Ly, Lz)`.
        """
        eps = np.zeros(self.shape, dtype=np.float64)
        for axis, (n, t) in enumerate(zip(self.shape, self.hop)):
            k = 2 * np.pi * np.arange(n) / n
            shape = [1, 1, 1]
            shape[axis] = n
            eps = eps - 2 * t * np.cos(k).reshape(shape)
        return eps

    def staggered_potential(self):
        """Returns the on-site potential :math:`h (-1)^{x+y+z}` of all sites."""
        parity = np.sum(self.positions(), axis=1) % 2
        return self.stagger * (1 - 2 * parity).astype(np.float64)

    def field_amplitude(self, dt):
        r"""Returns the amplitude `A` of the auxiliary field.

        The discrete decoupling
        .. math::
            e^{U Δτ n_↑ n_↓} = \frac{1}{2} \sum_{σ=\pm A} (1 + σ n_↑)(1 + σ n_↓)

        holds for :math:`A = \sqrt{e^{U Δτ} - 1}`.
        """
        check = self.u * max(self.hop) * dt ** 2
        if check > 0.1:
            logger.warning(
                "Increase number of time steps: Check-value %.2f should be <0.1!", check
            )
        else:
            logger.debug("Check-value %.4f is <0.1!", check)
        return math.sqrt(math.expm1(self.u * dt))

    def exponent(self, sigma):
        """Returns the exponent :math:`s_σ = β (μ - U/2 + σ B/2)` of species `σ`."""
        return self.beta * (self.mu - 0.5 * self.u + 0.5 * sigma * self.field)

    def exponents(self):
        return {UP: self.exponent(UP), DN: self.exponent(DN)}

    def __repr__(self):
        return (f"{self.__class__.__name__}(shape={self.shape}, u={self.u}, "
                f"hop={self.hop}, mu={self.mu}, field={self.field}, "
                f"stagger={self.stagger}, beta={self.beta})")


def hubbard_hypercube(shape, u=0.0, hop=1.0, mu=0.0, field=0.0, stagger=0.0, beta=1.0,
                      periodic=True):
    """Construct a `d`-dimensional Hubbard model.

    Parameters
    ----------
    shape : array_like or int
        The shape of the model. If a sequence is passed the length determines
        the dimensionality of the lattice. In case of an integer a 1D lattice
        is constructed.
    u : float, optional
        The strength of the attractive onsite interaction `U`.
    hop : float or sequence of float, optional
        The absolut value of the hopping parameter `t`.
    mu : float, optional
        The chemical potential `μ`, measured from half filling.
    field : float, optional
        The magnetic field `B`.
    stagger : float, optional
        The amplitude of the staggered on-site potential.
    beta : float, optional
        The inverse of the temperature `β=1/T`
    periodic : bool, optional
        Periodic boundary conditions.

    Returns
    -------
    model : HubbardModel
    """
    return HubbardModel(shape, u, hop, mu, field, stagger, beta, periodic)
