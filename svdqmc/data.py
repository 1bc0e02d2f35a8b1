# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""HDF5 storage of simulation states and results."""

import json
import h5py
import hashlib
import logging
import numpy as np
from typing import Union
from .errors import InvalidArgument
from .params import Parameters
from .mp import get_max_workers, run_dqmc_parallel

logger = logging.getLogger("svdqmc")

RESULT_KEYS = ["gf_up", "gf_dn", "n_up", "n_dn", "n_dbl", "moment", "spin_corr",
               "kinetic", "sign", "user"]


def save_state(file, dqmc):
    """Writes the state needed to resume a simulation to an HDF5 file.

    The state consists of the auxiliary field, the running weight, the time shift
    and the state of the random generator.
    """
    with h5py.File(file, "w") as h5:
        h5.create_dataset("field", data=dqmc.field)
        h5.attrs["plog"], h5.attrs["psign"] = dqmc.log_probability()
        h5.attrs["time_shift"] = dqmc.sliced.time_shift
        h5.attrs["sweeps"] = dqmc.sweeps
        h5.attrs["rng"] = json.dumps(dqmc.rng.bit_generator.state)
        proposals = dqmc.proposals
        if hasattr(proposals, "site"):
            h5.attrs["proposal"] = (proposals.t, proposals.site)
    logger.debug("Saved state to %s", file)


def load_state(file, dqmc):
    """Restores a state written by `save_state` into a simulation.

    The simulation has to be created with the same parameters. The blocks and the
    factorization are rebuilt from the loaded field.

    Returns
    -------
    report : DriftReport
        The comparison of the stored weight and the weight of the loaded field.
    """
    with h5py.File(file, "r") as h5:
        field = np.array(h5["field"])
        if field.shape != dqmc.field.shape:
            raise InvalidArgument(f"Stored field of shape {field.shape} doesn't match "
                                  f"simulation of shape {dqmc.field.shape}")
        dqmc.field[...] = field
        dqmc.sliced.time_shift = int(h5.attrs["time_shift"])
        dqmc.sweeps = int(h5.attrs["sweeps"])
        dqmc.rng.bit_generator.state = json.loads(h5.attrs["rng"])
        if "proposal" in h5.attrs and hasattr(dqmc.proposals, "site"):
            t, site = h5.attrs["proposal"]
            dqmc.proposals.t, dqmc.proposals.site = int(t), int(site)
        plog, psign = float(h5.attrs["plog"]), float(h5.attrs["psign"])

    # Pending updates belong to the old state
    dqmc.sampler.batch.reset()
    dqmc.plog, dqmc.psign = plog, psign
    report = dqmc.rebuild()
    logger.debug("Loaded state from %s", file)
    return report


def hash_params(**kwargs):
    keys = sorted(kwargs.keys())
    data = "; ".join([str(kwargs[k]) for k in keys])
    m = hashlib.md5(data.encode("utf-8"))
    return m.hexdigest()


def check_attrs(item: Union[h5py.File, h5py.Group, h5py.Dataset],
                attrs: dict, mode: str = "equals") -> bool:
    """Checks if the attributes of an hdf5-object match the given attributes.

    Parameters
    ----------
    item : h5py.File or h5py.Group or h5py.Database
        The attributes of the item are checked.
    attrs : dict
        The attributes for matching.
    mode : str, optional
        Mode for matching attributes. Valid modes are 'equals' and 'contains'.
        If the mode is 'equals', the dictionary of the item attributes has to be
        equal to the giben dictionary. If the mode is 'contains', the item dictionary
        can contain any number of values, but the values of the given dictionary have
        to be included. The default is 'equals'.

    Returns
    -------
    matches: bool
    """
    if mode == "contains":
        for key, val in attrs.items():
            if key not in item.attrs.keys() or np.any(item.attrs[key] != val):
                return False
        return True
    elif mode == "equals":
        if set(item.attrs.keys()) != set(attrs.keys()):
            return False
        return all(np.all(item.attrs[k] == v) for k, v in attrs.items())
    else:
        modes = ["contains", "equals"]
        raise ValueError(f"Mode '{mode}' not supported! Valid modes: {modes}")


class Database:
    """HDF5 database for storing DQMC simulation results.

    Uses the hash of the input parameters (`dict` or `Parameters`) as key to store
    the results of a DQMC simulation.
    """

    def __init__(self, file="svdqmc.hdf5", mode="a"):
        self.file = file if isinstance(file, h5py.File) else h5py.File(file, mode)

    def close(self):
        self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @staticmethod
    def get_group_name(kwargs: Union[dict, Parameters]):
        if isinstance(kwargs, Parameters):
            kwargs = kwargs.__dict__
        return str(hash_params(**kwargs))

    def get_simulation_group(self, kwargs):
        name = self.get_group_name(kwargs)
        return self.file.get(name, default=None)

    def create_simulation_group(self, kwargs):
        name = self.get_group_name(kwargs)
        group = self.file.get(name, default=None)
        if group is None:
            group = self.file.create_group(name, track_order=True)
        return group

    def find_groups(self, attrs, mode="contains"):
        groups = list()
        for k in self.file.keys():
            item = self.file[k]
            if check_attrs(item, attrs, mode):
                groups.append(item)
        return groups

    def find_missing(self, params, overwrite=False):
        if overwrite:
            return list(params)
        return [p for p in params if not self.get_results(p)]

    def get_results(self, *params):
        results = list()
        for param in params:
            group = self.get_simulation_group(param)
            if group is None or len(group) == 0:
                return list()
            res = [np.array(group[k]) for k in RESULT_KEYS if k in group]
            results.append(res)
        return results[0] if len(params) == 1 else results

    def save_results(self, kwargs: Union[dict, Parameters], results):
        if isinstance(kwargs, Parameters):
            kwargs = kwargs.__dict__
        group = self.create_simulation_group(kwargs)
        # Create datasets
        for k, res in zip(RESULT_KEYS, results):
            if k in group:
                del group[k]
            group.create_dataset(k, data=np.asarray(res))

        # Update attributes of group
        for k, v in kwargs.items():
            group.attrs[k] = v
        return group


def compute_datasets(db, params, max_workers=None, batch_size=None, callback=None,
                     progress=True, header=None):
    """Runs multiple DQMC simulations in parallel and stores the results in a database.

    Parameters
    ----------
    db : Database
        The database instance used to store the DQMC simulation results.
    params : Iterable of Parameters
        The input parameters to map to the processes. The hash of the parameters
        are used as a key to store the results of the DQMC simulation in the database.
    max_workers : int, optional
        The number of processes to use (see `get_max_workers`).
    batch_size : int, optional
        The number of simulations run before the database file is flushed to disk.
        If `None` all simulations are run in a single batch, if `0` the batch
        size is set to the number of processes.
    callback : callable, optional
        A optional callback method for measuring additional observables.
    progress : bool, optional
        If `True` a progresss bar is printed.
    header : str, optional
        A header for printing the progress bar. Ignored if `progress=False`.
    Returns
    -------
    results : List
        The results of the DQMC simulations in the order of the input parameters.
        Failed simulations are not stored.
    """
    params = list(params)
    if not params:
        return list()

    # Get number of processes here to use for calculation of batch size
    max_workers = get_max_workers(max_workers)
    if batch_size is None:
        batch_size = len(params)
    elif batch_size == 0:
        batch_size = max_workers

    # Warn if batch size to small
    if batch_size < max_workers:
        logger.warning("Batch size `%s` is lower than the number of processes `%s`",
                       batch_size, max_workers)

    num_params = len(params)
    num_batches = -(-num_params // batch_size)
    desc = None
    for batch, i in enumerate(range(0, num_params, batch_size)):
        batch_params = params[i:i + batch_size]
        if header is not None:
            desc = header
            if batch_size != num_params:
                desc += f" {batch + 1}/{num_batches}"
        # Results are written by the worker pool as jobs finish
        run_dqmc_parallel(batch_params, callback, max_workers, progress, desc, db=db)
        db.file.flush()

    return [db.get_results(p) for p in params]


def update_datasets(db, params, max_workers=None, batch_size=None, callback=None,
                    overwrite=False, progress=True, header=None):
    """Updates the database to contain all results of the passed simulation parameters.

    Checks which datasets are missing in the database and computes the missing results
    of DQMC simulations in parallel and stores them in the database.

    See Also
    --------
    compute_datasets : Runs DQMC simulations and stores the results in the database.
    """
    # Check which datasets allready exist
    missing = db.find_missing(params, overwrite)
    # Compute missing datasets and store in database
    if missing:
        compute_datasets(db, missing, max_workers, batch_size, callback, progress,
                         header)
    # Get all results (existing and new) from the database
    return [db.get_results(p) for p in params]
