# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Main simulator object driving the Metropolis sampling of the auxiliary field."""

import time
import logging
import numpy as np
from tqdm import tqdm
from .model import UP, DN, hubbard_hypercube
from .propagator import make_propagator
from .config import init_configuration, make_proposals
from .time_flow import SlicedPropagator
from .dqmc import LocalUpdateSampler
from .errors import DecompositionFailure, DriftReport, NumericalInstability
from .measurements import MeasurementData
from .params import Parameters, parse, log_parameters  # noqa: F401

logger = logging.getLogger("svdqmc")


class DQMC:
    """Metropolis controller of a single simulation.

    Parameters
    ----------
    model : HubbardModel
        The lattice model, including the inverse temperature.
    num_times : int
        The number of time slices `L`.
    slices_per_block : int, optional
        The number of time slices multiplied into one stored block.
    svd_period : int, optional
        The number of blocks multiplied between two decompositions.
    batch_size : int, optional
        The number of accepted correction vectors collected before the
        factorization is rebuilt.
    rebuild_period : int, optional
        The number of sweeps between two full rebuilds from the auxiliary field.
    flips_per_step : int, optional
        The number of sites of one time slice flipped in a single Metropolis step.
    proposal : str, optional
        The proposal policy, `"random"` or `"sequential"`.
    random_shift : bool, optional
        If `True`, a random time shift is drawn before every full rebuild.
    seed : int, optional
        The seed of the random generator of the simulation.
    progress : bool, optional
        If `True` progress bars are printed.
    tolerance : float, optional
        The relative tolerance of the weight consistency check after a rebuild.
    dense : bool, optional
        If `True` the dense propagator is used even for periodic lattices.
    """

    def __init__(self, model, num_times, slices_per_block=10, svd_period=1, batch_size=8,
                 rebuild_period=1, flips_per_step=1, proposal="random", random_shift=True,
                 seed=None, progress=False, tolerance=1e-6, dense=False):
        if num_times < 1:
            raise ValueError("Number of time steps has to be positive!")
        if seed is None:
            seed = 0
        self.rng = np.random.default_rng(seed)
        self.progress = progress
        self.tolerance = tolerance

        self.model = model
        self.num_sites = model.num_sites
        self.num_times = num_times
        self.dt = model.beta / num_times
        self.rebuild_period = max(1, int(rebuild_period))
        self.random_shift = random_shift
        self.flips_per_step = flips_per_step

        # Init QMC variables
        self.amplitude = model.field_amplitude(self.dt)
        self.field = init_configuration(self.rng, self.num_sites, num_times,
                                        self.amplitude)
        self.propagator = make_propagator(model, self.dt, dense)
        onsite = np.exp(-self.dt * model.staggered_potential())
        self.sliced = SlicedPropagator(self.propagator, self.field, onsite,
                                       slices_per_block)
        self.sampler = LocalUpdateSampler(self.sliced, model.exponents(), svd_period,
                                          batch_size)
        self.proposals = make_proposals(proposal, self.rng, self.num_sites, num_times,
                                        flips_per_step)
        logger.debug("A=%s", self.amplitude)
        logger.debug("blocks=%s msvd=%s batch=%s", self.sliced.num_blocks,
                     svd_period, self.sampler.batch.max_size)

        # Running weight
        self.plog, self.psign = self.sampler.log_probability()
        if not np.isfinite(self.plog):
            raise NumericalInstability("Weight of the initial configuration not finite")

        # Initialize QMC statistics
        self.it = 0
        self.sweeps = 0
        self.status = ""
        self.steps = 0
        self.accepted = 0
        self.unreliable = 0
        self.drifts = 0
        self.acceptance_probs = list()

        # Measurement data
        self.ham = model.hamiltonian_kinetic()
        self.measurements = MeasurementData(self.num_sites)

    @property
    def time_shift(self):
        return self.sliced.time_shift

    def log_probability(self):
        """Returns the current log-weight and sign, including pending updates."""
        batch = self.sampler.batch
        return self.plog + batch.log_prob, self.psign * batch.sign

    def flush(self):
        """Absorbs the pending corrections and updates the running weight."""
        log_prob, sign = self.sampler.flush()
        self.plog += log_prob
        self.psign *= sign

    def rebuild(self):
        """Recomputes everything from the auxiliary field and checks the weight.

        Returns
        -------
        report : DriftReport
            The comparison of the tracked and the recomputed weight. The recomputed
            weight is used from now on, a detected drift is only logged.
        """
        tracked_log, tracked_sign = self.log_probability()
        self.sampler.rebuild()
        fresh_log, fresh_sign = self.sampler.log_probability()
        report = DriftReport(tracked_log, fresh_log, tracked_sign, fresh_sign,
                             self.tolerance)
        if not report.finite:
            raise NumericalInstability(f"Weight not finite after rebuild: "
                                       f"{fresh_log} ({fresh_sign:+})")
        if report.detected:
            self.drifts += 1
            logger.warning("Weight drift detected: tracked %.10g (%+d) <> fresh %.10g "
                           "(%+d) ~~ %.3g", tracked_log, tracked_sign, fresh_log,
                           fresh_sign, report.difference)
        self.plog = fresh_log
        self.psign = fresh_sign
        return report

    def set_time_shift(self, t):
        """Sets the field column read by the first time slice and rebuilds."""
        self.sliced.time_shift = int(t) % self.num_times
        return self.rebuild()

    def shift_time(self):
        """Advances the time shift by one block. Returns `True` if it wrapped around."""
        shift = self.sliced.time_shift + self.sliced.slices_per_block
        wrapped = shift >= self.num_times
        if wrapped:
            shift -= self.num_times
        self.set_time_shift(shift)
        return wrapped

    def metropolis_step(self):
        """Proposes a local flip and accepts or rejects it.

        Returns
        -------
        accepted : bool
        """
        t, sites = self.proposals.propose()
        self.steps += 1
        try:
            proposal = self.sampler.propose(t, sites)
        except DecompositionFailure as e:
            self.unreliable += 1
            logger.warning("Step %s at t=%s unreliable: %s. Rebuilding...",
                           self.steps, t, e)
            self.rebuild()
            return False

        accepted = -self.rng.exponential() < proposal.log_ratio
        if accepted:
            self.sampler.accept(proposal)
            self.accepted += 1
            if self.sampler.batch.full:
                self.flush()
        return accepted

    def sweep(self):
        """Performs one sweep of local updates followed by a rebuild or a flush."""
        num_steps = max(1, self.num_sites * self.num_times // self.flips_per_step)
        accepted = 0
        for _ in range(num_steps):
            accepted += self.metropolis_step()
        self.sweeps += 1
        if self.sweeps % self.rebuild_period == 0:
            if self.random_shift:
                self.sliced.time_shift = int(self.rng.integers(self.num_times))
            self.rebuild()
        else:
            self.flush()
        return accepted / num_steps

    def iteration(self):
        acc_ratio = self.sweep()
        self.acceptance_probs.append(acc_ratio)
        logger.debug("[%s] %3d Ratio: %.2f  Sign: %+d  Log-weight: %.4f",
                     self.status, self.it, acc_ratio, self.psign, self.plog)

    def greens(self, sigma):
        """Returns the equal time Green's function :math:`(I + e^{s_σ} B)^{-1}`."""
        self.flush()
        return self.sampler.engine.greens(sigma)

    def density_matrix(self, sigma):
        """Returns the equal time density matrix :math:`I - G_σ`."""
        self.flush()
        return self.sampler.engine.density_matrix(sigma)

    def accumulate_measurements(self):
        gf_up = self.greens(UP)
        gf_dn = self.greens(DN)
        self.measurements.accumulate(gf_up, gf_dn, self.ham, self.psign)

    def warmup(self, sweeps):
        self.it = 0
        self.status = "warm"
        for _ in tqdm(range(sweeps), desc="Warmup", disable=not self.progress):
            self.iteration()
            self.it += 1

    def measure(self, sweeps, callback=None, *args, **kwargs):
        out = 0.0
        self.status = "meas"
        for _ in tqdm(range(sweeps), desc="Sample", disable=not self.progress):
            self.iteration()
            # perform measurements
            self.accumulate_measurements()
            # user measurement callback
            if callback is not None:
                out += np.asarray(callback(self, *args, **kwargs))
            self.it += 1
        return out / max(sweeps, 1)

    def simulate(self, num_equil, num_sampl, callback=None, *args, **kwargs):
        total_sweeps = num_equil + num_sampl
        t0 = time.perf_counter()

        logger.info("Running %s equilibrium sweeps...", num_equil)
        t0_equil = time.perf_counter()
        self.warmup(num_equil)
        t_equil = time.perf_counter() - t0_equil

        logger.info("Running %s sampling sweeps...", num_sampl)
        t0_sampl = time.perf_counter()
        extra_results = self.measure(num_sampl, callback, *args, **kwargs)
        t_sampl = time.perf_counter() - t0_sampl

        t = time.perf_counter() - t0
        acc = self.accepted / max(self.steps, 1)
        logger.info("%s iterations completed!", total_sweeps)
        logger.info("      Sign: %+d", self.psign)
        logger.info("Log weight: %.2f", self.plog)
        logger.info("Acceptance: %.4f", acc)
        logger.info("    Drifts: %s  Unreliable steps: %s", self.drifts, self.unreliable)
        logger.info("Equil CPU time: %6.1fs  (%.4f s/it)", t_equil,
                    t_equil / max(num_equil, 1))
        logger.info("Sampl CPU time: %6.1fs  (%.4f s/it)", t_sampl,
                    t_sampl / max(num_sampl, 1))
        logger.info("Total CPU time: %6.1fs  (%.4f s/it)", t, t / max(total_sweeps, 1))
        return self.measurements, extra_results


def init_simulator(p, progress=False):
    model = hubbard_hypercube(p.shape, p.u, p.t, p.mu, p.field, p.stagger, p.beta,
                              p.periodic)
    return DQMC(model, p.num_times, p.slices_per_block, p.svd_period, p.batch_size,
                p.rebuild_period, p.flips_per_step, p.proposal, p.random_shift, p.seed,
                progress)


def run_dqmc(p, callback=None, progress=False, *args, **kwargs):
    """Runs a DQMC simulation.

    Parameters
    ----------
    p : Parameters
        The input parameters of the DQMC simulation.
    callback : callable, optional
        A optional callback method for measuring additional observables.
    progress : bool
        If `True` a progressbar will be printed.
    *args : tuple, optional
        Optional positional arguments for the user callback method.
    **kwargs : dict, optional
        Optional keyword arguments for the user callback method.

    Returns
    -------
    results : List
        The normalized measurements `gf_up, gf_dn, n_up, n_dn, n_dbl, moment,
        spin_corr, kinetic, sign` followed by the result of the user callback.

    Raises
    ------
    NumericalInstability
        If any of the measured observables is not finite.
    """
    dqmc = init_simulator(p, progress)
    results, extra = dqmc.simulate(p.num_equil, p.num_sampl, callback, *args, **kwargs)
    result_arr = list(results.normalize())
    for res in result_arr:
        if not np.all(np.isfinite(res)):
            raise NumericalInstability("Measured observables are not finite")
    return result_arr + [extra]


def log_results(*results):
    n_up = np.mean(results[2])
    n_dn = np.mean(results[3])
    n_double = np.mean(results[4])
    local_moment = np.mean(results[5])
    kinetic = results[7]
    sign = results[8]

    logger.info("_" * 60)
    logger.info("Simulation results")
    logger.info("")
    logger.info("     Total density: %8.4f", n_up + n_dn)
    logger.info("   Spin-up density: %8.4f", n_up)
    logger.info(" Spin-down density: %8.4f", n_dn)
    logger.info("  Double occupancy: %8.4f", n_double)
    logger.info("      Local moment: %8.4f", local_moment)
    logger.info("    Kinetic energy: %8.4f", kinetic)
    logger.info("      Average sign: %8.4f", sign)
    logger.info("")
