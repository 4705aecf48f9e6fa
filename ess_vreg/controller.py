# ess_vreg/controller.py
from __future__ import annotations
import logging
from dataclasses import replace

import pandas as pd

from .system_model import ControlMode, ControlParams, ControllerState, TelemetrySample, TickResult
from .soc_limits import soc_power_limits
from .pi_control import classify_mode, step_over_voltage, step_under_voltage

logger = logging.getLogger(__name__)

TELEMETRY_COLUMNS = ("v_meas", "soc", "p_meas")


class VoltageController:
    """
    Per-tick orchestrator. Owns the only mutable controller state; the
    parameter set is shared read-only.
    """

    def __init__(self, params: ControlParams):
        self.params = params
        self.state = ControllerState()

    def reset(self) -> None:
        self.state = ControllerState()

    def tick(self, sample: TelemetrySample) -> TickResult:
        params, state = self.params, self.state

        charge_lim, discharge_lim = soc_power_limits(sample.soc, params)
        sample = replace(sample, p_soc_charge_limit=charge_lim, p_soc_discharge_limit=discharge_lim)

        state.mode = classify_mode(sample.v_meas, params)

        if state.mode is ControlMode.OVER_VOLTAGE:
            p_cmd, state.integral_upper = step_over_voltage(sample, params, state.integral_upper)
            state.integral_lower = 0.0
        elif state.mode is ControlMode.UNDER_VOLTAGE:
            p_cmd, state.integral_lower = step_under_voltage(sample, params, state.integral_lower)
            state.integral_upper = 0.0
        else:
            # Clear both so a stale integral cannot kick the next excursion
            p_cmd = 0.0
            state.integral_upper = 0.0
            state.integral_lower = 0.0

        logger.debug(
            "V=%.2f SOC=%.3f P=%.2f lim=(%.2f, %.2f) -> %s %.3f kW",
            sample.v_meas, sample.soc, sample.p_meas, charge_lim, discharge_lim,
            state.mode.name, p_cmd,
        )
        return TickResult(
            mode=state.mode,
            command_kw=p_cmd,
            sample=sample,
            integral_upper=state.integral_upper,
            integral_lower=state.integral_lower,
        )


def run_controller(df: pd.DataFrame, params: ControlParams) -> pd.DataFrame:
    """
    Replay a telemetry frame (v_meas, soc, p_meas) through a fresh controller.
    Each row is one tick; the returned copy carries the controller outputs.
    """
    missing = [c for c in TELEMETRY_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"telemetry frame lacks columns {missing}")

    ctrl = VoltageController(params)
    out = df.copy()
    rows = []
    for v, soc, p in out[list(TELEMETRY_COLUMNS)].itertuples(index=False, name=None):
        res = ctrl.tick(TelemetrySample(v_meas=float(v), soc=float(soc), p_meas=float(p)))
        rows.append((
            res.mode.name, res.command_kw,
            res.sample.p_soc_charge_limit, res.sample.p_soc_discharge_limit,
            res.integral_upper, res.integral_lower,
        ))

    cols = ["mode", "p_cmd", "p_soc_charge_limit", "p_soc_discharge_limit", "integral_upper", "integral_lower"]
    res_df = pd.DataFrame(rows, columns=cols, index=out.index)
    for c in cols:
        out[c] = res_df[c]
    return out
