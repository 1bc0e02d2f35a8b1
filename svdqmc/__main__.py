# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

import sys
import logging
import argparse
import numpy as np
import matplotlib.pyplot as plt
from svdqmc import (
    parse,
    run_dqmc,
    map_params,
    run_dqmc_parallel,
    log_parameters,
    log_results
)
from svdqmc.logging import log_to_file

logger = logging.getLogger("svdqmc")

# Index of the observables in the result list of `run_dqmc`
RESULT_INDEX = {"nup": 2, "ndn": 3, "n2": 4, "moment": 5, "sign": 8}

ARRAY_ARGS = {
    "u": "interaction strength",
    "t": "hopping energy",
    "mu": "chemical potential",
    "field": "magnetic field",
    "dt": "imaginary time step size",
    "temp": "temperature",
}


# noinspection PyShadowingBuiltins
def parse_array_args(strings, type=float):
    if "..." in strings:
        a, b = type(strings[0]), type(strings[-1])
        if len(strings) == 3:
            step = 1.0
        else:
            step = type(strings[1]) - a
        values = np.arange(a, b + 0.1 * step, step)
    else:
        values = [type(s) for s in strings]
    return np.array(values, dtype=type)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="svdqmc")
    parser.add_argument("file", type=str)
    parser.add_argument("--processes", "-mp", type=int, default=1,
                        help="Number of processes used if multiple simulations are run")
    for key, name in ARRAY_ARGS.items():
        parser.add_argument(f"-{key}", type=str, nargs="+",
                            help=f"Use array for {name}. Pass explicit values or: "
                                 f"start [start+step] ... stop")
    parser.add_argument("--plot", "-p", type=str, default="moment",
                        choices=list(RESULT_INDEX.keys()),
                        help="Observable to plot")
    parser.add_argument("--log", type=str, default=None,
                        help="Write the debug log to a file")
    args = parser.parse_args(argv)
    argdict = dict(args.__dict__)

    p = parse(argdict.pop("file"))
    plot = argdict.pop("plot")
    logfile = argdict.pop("log")
    processes = argdict.pop("processes")
    if processes == -1:
        processes = None
    # Parse arguments
    kwargs = dict()
    for key in argdict.keys():
        if argdict[key] is not None:
            kwargs[key] = parse_array_args(argdict[key], type=float)
    return p, kwargs, plot, processes, logfile


def main(argv=None):
    ylabels = {
        "nup": "$<n_↑>$",
        "ndn": "$<n_↓>$",
        "n2": "$<n_↑ n_↓>$",
        "moment": "$<m_z^2>$",
        "sign": "$<s>$",
    }
    xlabel_aliases = {
        "temp": "T",
        "field": "B",
    }

    args = sys.argv[1:] if argv is None else argv
    p, kwargs, plot, max_workers, logfile = parse_args(args)
    if logfile:
        log_to_file(logfile)

    if kwargs:
        logger.setLevel(logging.WARNING)

        params = map_params(p, **kwargs)
        results = run_dqmc_parallel(params, max_workers=max_workers)
        i = RESULT_INDEX[plot]
        xlabel = list(kwargs.keys())[0]
        x = kwargs[xlabel]
        y = [np.mean(res[i]) if res is not None else np.nan for res in results]
        fig, ax = plt.subplots()
        ax.plot(x, y)
        ax.set_xlabel(xlabel_aliases.get(xlabel, xlabel))
        ax.set_ylabel(ylabels.get(plot))
        plt.show()
    else:
        logger.setLevel(logging.DEBUG)

        log_parameters(p)
        logger.info("Starting DQMC simulation...")
        results = run_dqmc(p)
        log_results(*results)


if __name__ == "__main__":
    main()
