# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones
#
# This code is licensed under the MIT License. The copyright notice in the
# LICENSE file in the root directory and this permission notice shall
# be included in all copies or substantial portions of the Software.

from .logging import logger
from .errors import DecompositionFailure, InvalidArgument, NumericalInstability
from .errors import DriftReport
from .model import UP, DN, HubbardModel, hubbard_hypercube
from .stabilize import SVDFactorization
from .greens import GreenFunctionEngine
from .dqmc import LocalUpdateSampler
from .simulator import DQMC, run_dqmc, parse, Parameters, log_parameters, log_results
from .mp import map_params, run_dqmc_parallel

__version__ = "0.1.0"
