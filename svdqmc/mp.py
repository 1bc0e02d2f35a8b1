# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Multiprocessing tools."""

import time
import logging
import threading
import functools
import concurrent.futures
import psutil
from tqdm import tqdm
from .simulator import run_dqmc, Parameters

logger = logging.getLogger("svdqmc")

PROGRESS_INTERVAL = 5.0


# noinspection PyShadowingNames
def map_params(p, **kwargs):
    """Maps arrays to the attributes of a default Parameter object.

    Parameters
    ----------
    p : Parameters
        The default parameters. A copy of the parameters is created
        before replacing the attributes from the keyword arguments
    **kwargs
        Keyword arguments containing arrays of values that are mapped to the
        attributes of the default parameters. If multiple keyword arguments
        are given the length of all arrays have to match.
    Returns
    -------
    params : list of Parameters
        The parameters with the mapped keyword arguments.

    Examples
    --------
    >>> p = Parameters((4, 4), u=4.0, num_times=40)  # Default parameters
    >>> u = np.arange(1, 3, 0.5)  # Interactions
    >>> params = map_params(p, u=u)  # Map interaction array to parameters
    >>> [p.u for p in params]  # Interaction has mapped values
    [1.0, 1.5, 2.0, 2.5]
    >>> [p.t for p in params]  # Hopping is constant for all parameters
    [1.0, 1.0, 1.0, 1.0]
    """
    num_params = 0
    # Check number of values for each keyword argument
    for key, vals in kwargs.items():
        num_vals = len(vals)
        if num_params == 0:
            num_params = num_vals
        elif num_vals != num_params:
            raise ValueError(f"Length {num_vals} of keyword argument {key} does not "
                             f"match the previous lengths {num_params}")
    # Map parameters
    params = list()
    for i in range(num_params):
        # Copy default parameters
        p_new = Parameters(**p.__dict__)
        # Update new parameters with given kwargs
        for key, vals in kwargs.items():
            setattr(p_new, key, vals[i])
        params.append(p_new)
    return params


def get_max_workers(max_workers=None):
    """Returns the number of processes to use.

    If `None` or `0` the number of logical cores of the system is used. If a negative
    integer is passed it is subtracted from the number of logical cores.
    """
    num_cores = psutil.cpu_count(logical=True) or 1
    if max_workers is None or max_workers == 0:
        return num_cores
    elif max_workers < 0:
        return max(1, num_cores + max_workers)
    return max_workers


def run_job(p, callback=None):
    """Runs a single simulation and isolates its failures.

    Any exception raised by the simulation is logged together with the parameters
    of the job and `None` is returned instead of the results.
    """
    try:
        return run_dqmc(p, callback)
    except Exception:  # noqa
        logger.exception("DQMC job failed for parameters %s", p)
        return None


class ResultWriter:
    """Collects the results of finished jobs, optionally writing them to a database.

    The writer is called from the completion callbacks of the futures, so storing a
    result and writing to the output are guarded by a lock.
    """

    def __init__(self, db=None):
        self.db = db
        self.results = dict()
        self.failed = 0
        self._lock = threading.Lock()

    def write(self, index, params, result):
        with self._lock:
            if result is None:
                self.failed += 1
                return
            self.results[index] = result
            if self.db is not None:
                self.db.save_results(params, result)

    def done_callback(self, index, params, future):
        try:
            result = future.result()
        except Exception as e:  # noqa
            # Only raised if the worker process itself died
            logger.error("Worker of job %s with parameters %s failed: %s",
                         index, params, e)
            result = None
        self.write(index, params, result)

    def collect(self, num_jobs):
        return [self.results.get(i) for i in range(num_jobs)]


# noinspection PyShadowingNames
def run_dqmc_parallel(params, callback=None, max_workers=None, progress=True,
                      header=None, db=None):
    """Runs multiple DQMC simulations in parallel.

    Parameters
    ----------
    params : Iterable of Parameters
        The input parameters to map to the processes. The list of results preserves
        the input order of the parameters.
    callback : callable, optional
        A optional callback method for measuring additional observables.
    max_workers : int, optional
        The number of processes to use. If `None` or `0` the number of
        logical cores of the system is used. If a negative integer is passed it
        is subtracted from the number of logical cores. For example, `max_workers=-1`
        uses the number of cores minus one as number of processes.
    progress : bool, optional
        If `True` a progresss bar is printed.
    header : str, optional
        A header for printing the progress bar.
    db : Database, optional
        If given, the results are written to the database as soon as a job finishes.
    Returns
    -------
    results : List
        The results of the DQMC simulations in the order of the input parameters.
        Failed jobs are `None`.

    Examples
    --------
    >>> p = Parameters((4, 4), u=4.0, num_times=40)  # Default parameters
    >>> u = np.arange(1, 3, 0.5)  # Interactions
    >>> params = map_params(p, u=u)  # Map interaction array to parameters
    >>> res = run_dqmc_parallel(params, max_workers=-1)
    """
    params = list(params)
    num_jobs = len(params)
    max_workers = min(get_max_workers(max_workers), max(num_jobs, 1))
    writer = ResultWriter(db)

    t0 = time.perf_counter()
    t_last = t0
    with concurrent.futures.ProcessPoolExecutor(max_workers) as executor:
        futures = list()
        for i, p in enumerate(params):
            future = executor.submit(run_job, p, callback)
            future.add_done_callback(functools.partial(writer.done_callback, i, p))
            futures.append(future)

        completed = concurrent.futures.as_completed(futures)
        for num_done, _ in enumerate(tqdm(completed, total=num_jobs, desc=header,
                                          disable=not progress), start=1):
            t_now = time.perf_counter()
            if t_now - t_last >= PROGRESS_INTERVAL:
                t_last = t_now
                logger.info("%s/%s jobs done (%.1fs)", num_done, num_jobs, t_now - t0)

    if writer.failed:
        logger.warning("%s of %s jobs failed", writer.failed, num_jobs)
    return writer.collect(num_jobs)
