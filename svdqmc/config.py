# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Auxiliary field generation and proposal policies for local updates."""

import numpy as np


def init_configuration(rng, num_sites: int, num_times: int, amplitude: float,
                       p_plus: float = 0.5) -> np.ndarray:
    """Initializes the auxiliary field with a random distribution of `-A` and `+A`.

    Parameters
    ----------
    rng : np.random.Generator
        The random generator of the simulation.
    num_sites : int
        The number of sites `N` of the lattice model.
    num_times : int
        The number of time steps `L` used in the Monte Carlo simulation.
    amplitude : float
        The amplitude `A` of the field.
    p_plus : float, optional
        The probability of an entry to be `+A`.

    Returns
    -------
    config : (N, L) np.ndarray
        The array representing the configuration of the auxiliary field.
    """
    plus = rng.random((num_sites, num_times)) < p_plus
    return np.where(plus, amplitude, -amplitude).astype(np.float64)


class RandomProposals:
    """Proposes flips at a random time slice and distinct random sites."""

    def __init__(self, rng, num_sites, num_times, flips_per_step=1):
        if not 1 <= flips_per_step <= num_sites:
            raise ValueError(f"Number of flips per step must be between 1 and "
                             f"{num_sites}, got {flips_per_step}")
        self.rng = rng
        self.num_sites = num_sites
        self.num_times = num_times
        self.flips_per_step = flips_per_step

    def propose(self):
        t = int(self.rng.integers(self.num_times))
        if self.flips_per_step == 1:
            sites = np.array([self.rng.integers(self.num_sites)], dtype=np.int64)
        else:
            sites = self.rng.choice(self.num_sites, self.flips_per_step, replace=False)
        return t, np.asarray(sites, dtype=np.int64)


class SequentialProposals:
    """Walks through all sites of a time slice before advancing to the next slice."""

    def __init__(self, rng, num_sites, num_times, flips_per_step=1):
        if not 1 <= flips_per_step <= num_sites:
            raise ValueError(f"Number of flips per step must be between 1 and "
                             f"{num_sites}, got {flips_per_step}")
        self.rng = rng
        self.num_sites = num_sites
        self.num_times = num_times
        self.flips_per_step = flips_per_step
        self.t = 0
        self.site = 0

    def propose(self):
        sites = (self.site + np.arange(self.flips_per_step)) % self.num_sites
        t = self.t
        self.site += self.flips_per_step
        if self.site >= self.num_sites:
            self.site = 0
            self.t = (self.t + 1) % self.num_times
        return t, sites.astype(np.int64)


def make_proposals(policy, rng, num_sites, num_times, flips_per_step=1):
    """Creates the proposal policy `"random"` or `"sequential"`."""
    policies = {"random": RandomProposals, "sequential": SequentialProposals}
    try:
        cls = policies[policy]
    except KeyError:
        raise ValueError(f"Proposal policy '{policy}' not supported! "
                         f"Valid policies: {list(policies)}") from None
    return cls(rng, num_sites, num_times, flips_per_step)
