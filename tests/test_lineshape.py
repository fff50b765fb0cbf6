# test_lineshape.py
import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.integrate import trapezoid

from magsqw.lineshape import KB_MEV, bose, bose_cutoff, gauss_model


# --- Tests for gauss_model ---
@pytest.mark.parametrize("sigma,amp", [(0.05, 1.0), (0.3, 2.5), (1.0, 0.0), (2e-3, 7.0)])
def test_gauss_model_integral_equals_amplitude(sigma, amp):
    x = np.linspace(1.0 - 20 * sigma, 1.0 + 20 * sigma, 20001)
    y = gauss_model(x, 1.0, sigma, amp)
    assert_allclose(trapezoid(y, x), amp, rtol=1e-6, atol=1e-12)


def test_gauss_model_peak_value():
    sigma = 0.1
    assert_allclose(gauss_model(2.0, 2.0, sigma, 1.0), 1.0 / (sigma * np.sqrt(2 * np.pi)))


def test_gauss_model_offset_and_symmetry():
    assert gauss_model(100.0, 0.0, 0.1, 1.0, 0.5) == pytest.approx(0.5)
    assert gauss_model(1.3, 1.0, 0.2, 1.0) == pytest.approx(gauss_model(0.7, 1.0, 0.2, 1.0))


def test_gauss_model_array_input():
    x = np.array([-1.0, 0.0, 1.0])
    y = gauss_model(x, 0.0, 0.5, 1.0)
    assert y.shape == (3,)
    assert np.all(y >= 0.0)
    assert y[1] > y[0]


def test_gauss_model_tiny_width_is_finite():
    assert np.isfinite(gauss_model(0.0, 0.0, 1e-12, 1.0))
    assert gauss_model(1.0, 0.0, 1e-12, 1.0) == 0.0


@pytest.mark.parametrize("sigma", [0.0, -0.1])
def test_gauss_model_rejects_non_positive_width(sigma):
    with pytest.raises(ValueError):
        gauss_model(0.0, 0.0, sigma, 1.0)


# --- Tests for bose ---
def test_bose_energy_loss_and_gain():
    E, T = 1.0, 10.0
    n = 1.0 / (np.exp(E / (KB_MEV * T)) - 1.0)
    assert bose(E, T) == pytest.approx(n + 1.0)
    assert bose(-E, T) == pytest.approx(n)


def test_bose_detailed_balance():
    E = np.array([0.5, 1.0, 3.0])
    T = 20.0
    assert_allclose(bose(E, T) / bose(-E, T), np.exp(E / (KB_MEV * T)))


def test_bose_returns_float_for_scalar():
    assert isinstance(bose(1.0, 5.0), float)


@pytest.mark.parametrize("T", [0.0, -5.0])
def test_bose_rejects_non_positive_temperature(T):
    with pytest.raises(ValueError):
        bose(1.0, T)


# --- Tests for bose_cutoff ---
def test_bose_cutoff_inside_band_is_one():
    assert bose_cutoff(0.0, 10.0, 0.02) == 1.0
    assert bose_cutoff(0.01, 10.0, 0.02) == 1.0
    assert bose_cutoff(-0.019, 10.0, -0.02) == 1.0


def test_bose_cutoff_outside_band_is_bose():
    for E in (0.5, -0.5, 0.02):
        assert bose_cutoff(E, 10.0, 0.02) == pytest.approx(bose(E, 10.0))


def test_bose_cutoff_array():
    E = np.array([-1.0, 0.0, 0.001, 1.0])
    factor = bose_cutoff(E, 50.0, 0.02)
    assert factor.shape == E.shape
    assert_allclose(factor[1:3], 1.0)
    assert_allclose(factor[[0, 3]], bose(E[[0, 3]], 50.0))
    assert np.all(np.isfinite(factor))


def test_bose_cutoff_rejects_non_positive_temperature():
    with pytest.raises(ValueError):
        bose_cutoff(1.0, 0.0, 0.02)


def test_bose_cutoff_zero_band_is_finite_at_elastic_line():
    assert bose_cutoff(0.0, 10.0, 0.0) == 1.0
    factor = bose_cutoff(np.array([-1.0, 0.0, 1.0]), 10.0, 0.0)
    assert np.all(np.isfinite(factor))
    assert factor[1] == 1.0
    assert factor[2] == pytest.approx(bose(1.0, 10.0))
