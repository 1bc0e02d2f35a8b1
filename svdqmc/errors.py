# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

"""Error types and the drift report of the stabilized QMC engine."""

import math
from dataclasses import dataclass
import numpy as np


class DecompositionFailure(np.linalg.LinAlgError):
    """Raised when a LAPACK decomposition routine does not converge.

    Parameters
    ----------
    info : int
        The (positive) status returned by the LAPACK driver.
    routine : str, optional
        The name of the failed routine.
    """

    def __init__(self, info, routine="dgesvd"):
        self.info = info
        self.routine = routine
        super().__init__(f"{routine} did not converge (info={info})")


class InvalidArgument(ValueError):
    """Raised for malformed arguments passed to a decomposition or correction."""


class NumericalInstability(ArithmeticError):
    """Raised when weights or observables are no longer finite."""


@dataclass
class DriftReport:
    """Comparison of the tracked and the freshly recomputed weight after a rebuild.

    Attributes
    ----------
    tracked_log : float
        The incrementally tracked log-weight (including pending updates).
    fresh_log : float
        The log-weight computed from scratch.
    tracked_sign : float
        The incrementally tracked sign.
    fresh_sign : float
        The sign computed from scratch.
    tolerance : float
        The relative tolerance of the log-weight comparison.
    """

    tracked_log: float
    fresh_log: float
    tracked_sign: float
    fresh_sign: float
    tolerance: float = 1e-6

    @property
    def difference(self) -> float:
        return self.fresh_log - self.tracked_log

    @property
    def detected(self) -> bool:
        """`True` if the tracked weight disagrees with the fresh one."""
        if self.tracked_sign != self.fresh_sign:
            return True
        limit = self.tolerance * max(1.0, abs(self.fresh_log))
        return not abs(self.difference) <= limit

    @property
    def finite(self) -> bool:
        return math.isfinite(self.fresh_log) and math.isfinite(self.fresh_sign)
