# ess_vreg/pi_control.py
from __future__ import annotations
from .system_model import ControlMode, ControlParams, TelemetrySample


def classify_mode(v_meas: float, params: ControlParams) -> ControlMode:
    # Boundary values fall on the Normal side of each dead-band.
    if v_meas > params.v_over_threshold:
        return ControlMode.OVER_VOLTAGE
    # V_enter_lower keeps a dead or disconnected feeder from triggering discharge
    if params.v_enter_lower < v_meas < params.v_under_threshold:
        return ControlMode.UNDER_VOLTAGE
    return ControlMode.NORMAL


def step_over_voltage(
    sample: TelemetrySample, params: ControlParams, integral_upper: float,
) -> tuple[float, float]:
    """
    One PI step while the feeder is above V_ref_upper + Deadband_upper.
    Returns (charge command kW >= 0, updated accumulator).
    """
    error = max(0.0, sample.v_meas - params.v_over_threshold)

    # Accumulator is not clamped; it is cleared when the mode is left.
    integral_upper += error*params.ki_upper
    p_calc = min(error*params.kp_upper + integral_upper, params.p_step_max)

    # p_calc is an increment on top of what the PCS is already doing
    p_cmd = p_calc + sample.p_meas
    p_cmd = min(p_cmd, sample.p_soc_charge_limit, params.p_charge_max)
    return max(p_cmd, 0.0), integral_upper


def step_under_voltage(
    sample: TelemetrySample, params: ControlParams, integral_lower: float,
) -> tuple[float, float]:
    """
    One PI step while the feeder sags below V_ref_lower - Deadband_lower.
    Returns (discharge command kW <= 0, updated accumulator).
    """
    error = max(0.0, params.v_under_threshold - sample.v_meas)

    integral_lower += error*params.ki_lower
    # Magnitude of extra discharge wanted this tick
    p_calc = min(error*params.kp_lower + integral_lower, params.p_step_max)
    target = sample.p_meas - p_calc

    capacity = min(params.p_discharge_max, sample.p_soc_discharge_limit)
    lower_bound = -capacity

    if target > 0.0:
        return 0.0, integral_lower
    if target < lower_bound:
        return lower_bound, integral_lower
    return target, integral_lower
