# coding: utf-8
#
# This code is part of svdqmc.
#
# Copyright (c) 2022, Dylan Jones

import logging
from numpy.testing import assert_allclose
from svdqmc import Parameters, parse
from svdqmc.params import log_parameters

PARAM_TEXT = """
# Lattice
shape   4, 4
U       4.0
t       1.0
mu      0.5    # relative to half filling
B       0.1
h       0.0

# Time discretization
beta    4.0
L       40
mslices 8
msvd    2
batch   16
rebuild 2
flips   2
proposal sequential
shift   no

nequil  100
nsampl  200
seed    7
"""


def write_file(tmp_path, text, name="params.txt"):
    file = tmp_path / name
    file.write_text(text)
    return str(file)


def test_parse(tmp_path):
    p = parse(write_file(tmp_path, PARAM_TEXT))
    assert p.shape == (4, 4)
    assert p.u == 4.0
    assert p.t == 1.0
    assert p.mu == 0.5
    assert p.field == 0.1
    assert p.stagger == 0.0
    assert p.num_times == 40
    assert_allclose(p.dt, 0.1)
    assert_allclose(p.beta, 4.0)
    assert p.slices_per_block == 8
    assert p.svd_period == 2
    assert p.batch_size == 16
    assert p.rebuild_period == 2
    assert p.flips_per_step == 2
    assert p.proposal == "sequential"
    assert p.random_shift is False
    assert p.num_equil == 100
    assert p.num_sampl == 200
    assert p.seed == 7


def test_parse_defaults(tmp_path):
    p = parse(write_file(tmp_path, "shape 6\n"))
    assert p == Parameters(6)


def test_parse_temperature(tmp_path):
    # The number of time slices is derived from the time step
    p = parse(write_file(tmp_path, "shape 4\ntemp 0.5\ndt 0.05\nL 0\n"))
    assert p.num_times == 40
    assert_allclose(p.beta, 2.0)


def test_parse_unknown_label(tmp_path, caplog):
    caplog.set_level(logging.WARNING, logger="svdqmc")
    p = parse(write_file(tmp_path, "shape 4\nfoo 1.0\n"))
    assert p.shape == 4
    assert any("foo" in rec.getMessage() for rec in caplog.records)


def test_beta_and_temp():
    p = Parameters(4, dt=0.1, num_times=20)
    assert_allclose(p.beta, 2.0)
    assert_allclose(p.temp, 0.5)
    p.beta = 4.0
    assert_allclose(p.dt, 0.2)
    p.temp = 1.0
    assert_allclose(p.dt, 0.05)


def test_copy():
    p = Parameters(4, u=2.0)
    p2 = p.copy(u=3.0)
    assert p.u == 2.0
    assert p2.u == 3.0
    assert p2.shape == p.shape


def test_log_parameters(caplog):
    caplog.set_level(logging.INFO, logger="svdqmc")
    log_parameters(Parameters((2, 2), u=4.0))
    assert any("Shape" in rec.getMessage() for rec in caplog.records)
