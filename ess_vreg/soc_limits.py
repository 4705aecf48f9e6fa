# ess_vreg/soc_limits.py
from __future__ import annotations
import numpy as np

__all__ = ["TRANSITION_WIDTH", "charge_factor", "discharge_factor", "soc_power_limits"]

TRANSITION_WIDTH = 0.05  # SOC band over which a limit eases between full power and zero


def charge_factor(soc, soc_max, *, width=TRANSITION_WIDTH):
    """1 well below soc_max, 0 at/above it, half-cosine fall in between."""
    soc = float(soc)
    if soc >= soc_max: return 0.0
    if soc <= soc_max - width: return 1.0
    x = (soc - (soc_max - width)) / width
    return float(0.5*(1.0 + np.cos(np.pi*x)))


def discharge_factor(soc, soc_min, *, width=TRANSITION_WIDTH):
    """Mirror of charge_factor around soc_min: 0 at/below it, 1 from soc_min+width."""
    soc = float(soc)
    if soc <= soc_min: return 0.0
    if soc >= soc_min + width: return 1.0
    x = (soc - soc_min) / width
    return float(0.5*(1.0 - np.cos(np.pi*x)))


def soc_power_limits(soc, params, *, width=TRANSITION_WIDTH) -> tuple[float, float]:
    """
    SOC-derived ceilings (charge_limit_kw, discharge_limit_kw), both >= 0.
    High SOC throttles charging, low SOC throttles discharging.
    """
    charge = params.p_charge_max*charge_factor(soc, params.soc_max, width=width)
    discharge = params.p_discharge_max*discharge_factor(soc, params.soc_min, width=width)
    return max(0.0, charge), max(0.0, discharge)
