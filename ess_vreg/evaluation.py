# ess_vreg/evaluation.py
from __future__ import annotations
import numpy as np, pandas as pd
from typing import Dict, Any
from .system_model import ControlMode, ControlParams

def kpi_mode_share(df: pd.DataFrame) -> Dict[str, Any]:
    counts = df["mode"].value_counts()
    n = max(len(df), 1)
    out = {}
    for m in ControlMode:
        c = int(counts.get(m.name, 0))
        out[f"ticks_{m.name.lower()}"] = c
        out[f"share_{m.name.lower()}"] = c / n
    return out

def kpi_voltage_quality(df: pd.DataFrame, params: ControlParams) -> Dict[str, Any]:
    v = df["v_meas"].astype(float)
    over = v > params.v_over_threshold
    under = (v < params.v_under_threshold) & (v > params.v_enter_lower)
    return {
        "over_voltage_ticks": int(over.sum()),
        "under_voltage_ticks": int(under.sum()),
        "v_max": float(v.max()) if len(v) else float("nan"),
        "v_min": float(v.min()) if len(v) else float("nan"),
        "worst_over_excursion_v": float((v - params.v_over_threshold).clip(lower=0.0).max()) if len(v) else 0.0,
        "worst_under_excursion_v": float((params.v_under_threshold - v).where(under, 0.0).max()) if len(v) else 0.0,
    }

def kpi_energy(df: pd.DataFrame, dt_h: float) -> Dict[str, Any]:
    p = df["p_cmd"].astype(float)
    return {
        "energy_charged_kwh": float(p.clip(lower=0.0).sum() * dt_h),
        "energy_discharged_kwh": float((-p).clip(lower=0.0).sum() * dt_h),
        "peak_charge_kw": float(p.max()) if len(p) and p.max() > 0 else 0.0,
        "peak_discharge_kw": float(-p.min()) if len(p) and p.min() < 0 else 0.0,
    }

def kpi_smoothness(df: pd.DataFrame) -> Dict[str, Any]:
    p = df["p_cmd"].astype(float).values
    steps = np.abs(np.diff(p)) if len(p) > 1 else np.zeros(1)
    return {
        "mean_abs_cmd_step_kw": float(steps.mean()),
        "max_abs_cmd_step_kw": float(steps.max()),
        "max_integral_upper": float(df["integral_upper"].max()) if "integral_upper" in df.columns else 0.0,
        "max_integral_lower": float(df["integral_lower"].max()) if "integral_lower" in df.columns else 0.0,
    }

def summarize_kpis(df: pd.DataFrame, dt_h: float, params: ControlParams) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    out.update(kpi_mode_share(df))
    out.update(kpi_voltage_quality(df, params))
    out.update(kpi_energy(df, dt_h))
    out.update(kpi_smoothness(df))
    return out
