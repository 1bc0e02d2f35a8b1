# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

import logging

logger = logging.getLogger("svdqmc")

# Logging format
frmt = "[%(asctime)s] %(name)s:%(levelname)-8s - %(message)s"
formatter = logging.Formatter(frmt, datefmt="%H:%M:%S")

# Set up console logger
sh = logging.StreamHandler()
sh.setLevel(logging.DEBUG)
sh.setFormatter(formatter)
logger.addHandler(sh)

# Set logging level
logger.setLevel(logging.WARNING)
logging.root.setLevel(logging.NOTSET)


def log_to_file(file="svdqmc.log", mode="w", level=logging.DEBUG):
    """Adds a file handler with the package format to the `svdqmc` logger.

    Parameters
    ----------
    file : str, optional
        The path of the log file.
    mode : str, optional
        The mode used for opening the log file.
    level : int, optional
        The level of the file handler. The level of the logger itself is not changed.

    Returns
    -------
    fh : logging.FileHandler
        The new handler, which can be passed to `logger.removeHandler`.
    """
    fh = logging.FileHandler(file, mode=mode)
    fh.setLevel(level)
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    return fh
