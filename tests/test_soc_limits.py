import numpy as np
import pytest

from ess_vreg.soc_limits import TRANSITION_WIDTH, charge_factor, discharge_factor, soc_power_limits


def test_charge_limit_zero_above_max(params):
    charge, discharge = soc_power_limits(0.96, params)
    assert charge == 0.0
    assert discharge == pytest.approx(125.0)


def test_charge_limit_zero_exactly_at_max(params):
    assert soc_power_limits(0.95, params)[0] == 0.0


def test_discharge_limit_zero_at_or_below_min(params):
    for soc in (0.0, 0.10, 0.15):
        assert soc_power_limits(soc, params)[1] == 0.0


def test_full_power_away_from_the_bands(params):
    for soc in (0.20, 0.5, 0.90):
        charge, discharge = soc_power_limits(soc, params)
        assert charge == pytest.approx(125.0)
        assert discharge == pytest.approx(125.0)


def test_band_midpoints_are_half_power(params):
    assert soc_power_limits(0.925, params)[0] == pytest.approx(62.5)
    assert soc_power_limits(0.175, params)[1] == pytest.approx(62.5)


def test_cosine_shape_inside_band():
    # x = 0.2 into the band
    assert discharge_factor(0.16, 0.15) == pytest.approx(0.5*(1 - np.cos(0.2*np.pi)))
    assert charge_factor(0.91, 0.95) == pytest.approx(0.5*(1 + np.cos(0.2*np.pi)))


def test_discharge_curve_monotone_and_continuous(params):
    soc = np.linspace(0.0, 1.0, 2001)
    d = np.array([soc_power_limits(s, params)[1] for s in soc])
    c = np.array([soc_power_limits(s, params)[0] for s in soc])
    assert np.all(np.diff(d) >= -1e-12)
    assert np.all(np.diff(c) <= 1e-12)
    # max slope of a half-cosine over 0.05 SOC is P*pi/(2*0.05); grid step is 0.0005
    max_jump = 125.0*np.pi/(2*TRANSITION_WIDTH)*0.0005*1.01
    assert np.max(np.abs(np.diff(d))) <= max_jump
    assert np.max(np.abs(np.diff(c))) <= max_jump
    assert np.all(d >= 0.0) and np.all(c >= 0.0)


def test_custom_width(params):
    assert soc_power_limits(0.85, params, width=0.2)[0] == pytest.approx(62.5)
