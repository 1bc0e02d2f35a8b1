# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Simulation parameter object and parameter file parser."""

import logging
from typing import Union
from dataclasses import dataclass

logger = logging.getLogger("svdqmc")


def _to_bool(value: str) -> bool:
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Can't interpret '{value}' as boolean")


# maps label to attribute name and types
ATTR_LABEL_MAP = {
    "shape": [("shape", ), int, 4],
    "u": [("u", ), float, 0.0],
    "t": [("t", "hop"), float, 1.0],
    "mu": [("mu", ), float, 0.0],
    "field": [("b", "field"), float, 0.0],
    "stagger": [("h", "stagger"), float, 0.0],
    "dt": [("dt", ), float, 0.1],
    "beta": [("beta",), float],
    "temp": [("temp",), float],
    "num_times": [("l", "n", "num_times"), int, 40],
    "slices_per_block": [("mslices", "slices_per_block"), int, 10],
    "svd_period": [("msvd", "svd_period"), int, 1],
    "batch_size": [("batch", "batch_size"), int, 8],
    "rebuild_period": [("rebuild", "rebuild_period"), int, 1],
    "flips_per_step": [("flips", "flips_per_step"), int, 1],
    "proposal": [("proposal", ), str, "random"],
    "random_shift": [("shift", "random_shift"), _to_bool, True],
    "periodic": [("periodic", ), _to_bool, True],
    "num_equil": [("nequil", "num_equil"), int, 512],
    "num_sampl": [("nsampl", "num_sampl"), int, 512],
    "seed": [("seed", ), int, 0],
}


@dataclass
class Parameters:

    shape: Union[int, tuple]
    u: float = 0.0
    t: float = 1.0
    mu: float = 0.0
    field: float = 0.0
    stagger: float = 0.0
    dt: float = 0.1
    num_times: int = 40
    slices_per_block: int = 10
    svd_period: int = 1
    batch_size: int = 8
    rebuild_period: int = 1
    flips_per_step: int = 1
    proposal: str = "random"
    random_shift: bool = True
    periodic: bool = True
    num_equil: int = 512
    num_sampl: int = 512
    seed: int = 0

    def copy(self, **kwargs):
        # Copy parameters
        p = Parameters(**self.__dict__)
        # Update new parameters with given kwargs
        for key, val in kwargs.items():
            setattr(p, key, val)
        return p

    @property
    def beta(self):
        return self.num_times * self.dt

    @beta.setter
    def beta(self, beta):
        self.dt = beta / self.num_times

    @property
    def temp(self):
        return 1 / (self.num_times * self.dt)

    @temp.setter
    def temp(self, temp):
        self.dt = 1 / (temp * self.num_times)


def _build_attribute_map():
    attr_map = dict()
    for attr, info in ATTR_LABEL_MAP.items():
        keys = info[0]
        attr_type = info[1]
        default = None if len(info) == 2 else info[2]
        for key in keys:
            if key in attr_map:
                raise ValueError(f"Key {key} already registered in attribute map!")
            attr_map[key] = [attr, attr_type, default]
    return attr_map


def _read_param_file(file):
    # Initialize attribute map
    attr_map = _build_attribute_map()
    # Fill items with default values
    items = dict()
    for (attr, _, default) in attr_map.values():
        if default is not None:
            items[attr] = default
    # Read file content
    with open(file, "r") as fh:
        text = fh.read()
    # Parse lines of file
    for line in text.splitlines(keepends=False):
        # Strip comments
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        label, data = line.split(maxsplit=1)
        label = label.lower()
        data = data.replace(",", " ").split()
        try:
            template = attr_map[label]
        except KeyError:
            logger.warning("Parameter %s of file '%s' not recognized!", label, file)
            continue
        # Parse value and cast to type
        key, datatype = template[0], template[1]
        values = [datatype(x) for x in data]
        # Store values in dictionary
        items[key] = tuple(values) if len(values) > 1 else values[0]
    return items


def parse(file):
    """Parses an input text file and extracts the simulation parameters.

    Each line of the file contains a label followed by one or more values, separated
    by blanks or commas. Everything after a `#` is ignored. The temperature can be
    given by `dt`, `beta` or `temp` together with the number of time slices `L`.
    If `dt` is zero it is computed from the inverse temperature, if `L` is zero it is
    computed from `dt` and the inverse temperature.

    Parameters
    ----------
    file : str
        The path of the input file.
    Returns
    -------
    p : Parameters
        The parsed parameters of the input file.
    """
    logger.info("Parsing parameters from file %s...", file)
    items = _read_param_file(file)
    beta = items.pop("beta", None)
    temp = items.pop("temp", None)
    if temp:
        beta = 1 / temp
    if beta:
        if items.get("num_times", 0) == 0:
            items["num_times"] = int(round(beta / items["dt"]))
        else:
            items["dt"] = beta / items["num_times"]
    return Parameters(**items)


def log_parameters(p):
    logger.info("_" * 60)
    logger.info("Simulation parameters")
    logger.info("")
    logger.info("     Shape: %s", p.shape)
    logger.info("         U: %s", p.u)
    logger.info("         t: %s", p.t)
    logger.info("        mu: %s", p.mu)
    logger.info("         B: %s", p.field)
    logger.info("         h: %s", p.stagger)
    logger.info("      beta: %s", p.beta)
    logger.info("      temp: %s", 1 / p.beta)
    logger.info(" time-step: %s", p.dt)
    logger.info("         L: %s", p.num_times)
    logger.info("   mslices: %s", p.slices_per_block)
    logger.info("      msvd: %s", p.svd_period)
    logger.info("     batch: %s", p.batch_size)
    logger.info("   rebuild: %s", p.rebuild_period)
    logger.info("     flips: %s", p.flips_per_step)
    logger.info("  proposal: %s", p.proposal)
    logger.info("     shift: %s", p.random_shift)
    logger.info("  periodic: %s", p.periodic)
    logger.info("    nequil: %s", p.num_equil)
    logger.info("    nsampl: %s", p.num_sampl)
    logger.info("      seed: %s", p.seed)
    logger.info("")
